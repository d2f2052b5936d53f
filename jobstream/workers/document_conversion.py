"""Demo worker: a document conversion batch reporting four steps."""

from __future__ import annotations

import asyncio

from jobstream.jobs.publisher import JobReporter

# Step label -> progress reached once the step is underway
CONVERSION_STEPS: list[tuple[str, int]] = [
    ("Separando documentos", 10),
    ("Validando", 35),
    ("Convertendo", 65),
    ("Finalizando", 100),
]


async def convert_documents(reporter: JobReporter, step_delay: float = 1.0) -> None:
    """Walk through the conversion steps, pausing ``step_delay`` between them."""
    for index, (step, progress) in enumerate(CONVERSION_STEPS):
        if index:
            await asyncio.sleep(step_delay)
        await reporter.emit(step, progress)
