"""Tests for StreamDispatcher -- live sequences, fan-out, disconnects."""

import asyncio

import pytest

from jobstream.errors import JobNotFound
from jobstream.models.enums import JobState

CONVERSION = [
    ("Separando documentos", 10),
    ("Validando", 35),
    ("Convertendo", 65),
    ("Finalizando", 100),
]


async def _collect(stream) -> list:
    return [event async for event in stream]


@pytest.fixture
def running_job(registry, publisher) -> str:
    job_id = registry.create_job()
    publisher.start(job_id)
    return job_id


class TestAttach:
    @pytest.mark.asyncio
    async def test_subscriber_receives_conversion_steps(self, dispatcher, publisher, running_job):
        """A subscriber attached before the first emit gets all four records, then the end."""
        subscriber = asyncio.create_task(_collect(dispatcher.attach(running_job)))
        await asyncio.sleep(0.01)
        for step, progress in CONVERSION:
            await publisher.emit(running_job, step, progress)

        events = await asyncio.wait_for(subscriber, timeout=1.0)
        assert [e.to_record() for e in events] == [
            {"step": step, "progress": progress} for step, progress in CONVERSION
        ]
        assert [e.seq for e in events] == [0, 1, 2, 3]

    def test_attach_unknown_job_raises_immediately(self, dispatcher):
        with pytest.raises(JobNotFound):
            dispatcher.attach("nope")

    @pytest.mark.asyncio
    async def test_attach_after_eviction_not_found(self, registry, dispatcher, publisher, running_job, clock):
        await publisher.emit(running_job, "Finalizando", 100)
        clock.advance(registry.retention_seconds + 1)
        registry.evict_expired()
        with pytest.raises(JobNotFound):
            dispatcher.attach(running_job)

    @pytest.mark.asyncio
    async def test_attach_after_completion_ends_without_hanging(self, dispatcher, publisher, running_job):
        first = asyncio.create_task(_collect(dispatcher.attach(running_job)))
        await asyncio.sleep(0.01)
        for step, progress in CONVERSION:
            await publisher.emit(running_job, step, progress)
        await asyncio.wait_for(first, timeout=1.0)

        late = await asyncio.wait_for(_collect(dispatcher.attach(running_job)), timeout=1.0)
        assert late == []

    @pytest.mark.asyncio
    async def test_first_subscriber_drains_unread_backlog(self, dispatcher, publisher, running_job):
        """Events nobody has read yet stay available to the first subscriber."""
        for step, progress in CONVERSION:
            await publisher.emit(running_job, step, progress)
        events = await asyncio.wait_for(_collect(dispatcher.attach(running_job)), timeout=1.0)
        assert [e.progress for e in events] == [10, 35, 65, 100]

    @pytest.mark.asyncio
    async def test_failure_record_ends_sequence(self, dispatcher, publisher, running_job):
        subscriber = asyncio.create_task(_collect(dispatcher.attach(running_job)))
        await asyncio.sleep(0.01)
        await publisher.emit(running_job, "Validando", 35)
        await publisher.fail(running_job, "invalid document")

        events = await asyncio.wait_for(subscriber, timeout=1.0)
        assert events[0].to_record() == {"step": "Validando", "progress": 35}
        assert events[-1].to_record() == {"error": "invalid document"}


class TestIndependentSubscribers:
    @pytest.mark.asyncio
    async def test_disconnect_does_not_affect_other_subscriber(
        self, registry, dispatcher, publisher, running_job
    ):
        """One subscriber leaves after seq=1; the other still gets everything."""

        async def leave_after_seq_1():
            seen = []
            stream = dispatcher.attach(running_job)
            async for event in stream:
                seen.append(event.seq)
                if event.seq == 1:
                    break
            await stream.aclose()
            return seen

        leaver = asyncio.create_task(leave_after_seq_1())
        stayer = asyncio.create_task(_collect(dispatcher.attach(running_job)))
        await asyncio.sleep(0.01)

        for progress in (0, 20, 40, 60, 80, 100):
            await publisher.emit(running_job, f"step {progress}", progress)

        assert await asyncio.wait_for(leaver, timeout=1.0) == [0, 1]
        events = await asyncio.wait_for(stayer, timeout=1.0)
        assert [e.seq for e in events] == [0, 1, 2, 3, 4, 5]
        assert events[-1].progress == 100
        assert registry.get_channel(running_job).reader_count == 0

    @pytest.mark.asyncio
    async def test_progress_seen_by_every_subscriber_is_non_decreasing(
        self, dispatcher, publisher, running_job
    ):
        subscribers = [asyncio.create_task(_collect(dispatcher.attach(running_job))) for _ in range(5)]
        await asyncio.sleep(0.01)
        for progress in (5, 5, 30, 70, 70, 100):
            await publisher.emit(running_job, "step", progress)

        for task in subscribers:
            events = await asyncio.wait_for(task, timeout=1.0)
            values = [e.progress for e in events]
            seqs = [e.seq for e in events]
            assert values == sorted(values)
            assert values[-1] == 100
            assert seqs == sorted(set(seqs))

    @pytest.mark.asyncio
    async def test_disconnected_subscriber_releases_backpressure(
        self, registry, dispatcher, publisher, running_job
    ):
        """Closing a lagging subscriber lets the blocked publisher continue."""
        fast = asyncio.create_task(_collect(dispatcher.attach(running_job)))
        await asyncio.sleep(0.01)
        await publisher.emit(running_job, "step", 0)

        slow = dispatcher.attach(running_job)
        first = await slow.__anext__()
        assert first.seq == 0

        for progress in (10, 20, 30, 40):
            await publisher.emit(running_job, "step", progress)
        blocked = asyncio.create_task(publisher.emit(running_job, "step", 50))
        await asyncio.sleep(0.05)
        assert not blocked.done()

        await slow.aclose()
        await asyncio.wait_for(blocked, timeout=1.0)
        await publisher.emit(running_job, "done", 100)

        events = await asyncio.wait_for(fast, timeout=1.0)
        assert [e.seq for e in events] == [0, 1, 2, 3, 4, 5, 6]
        assert registry.get_job(running_job).state is JobState.COMPLETED

    @pytest.mark.asyncio
    async def test_cancelled_subscriber_is_released(self, registry, dispatcher, running_job):
        channel = registry.get_channel(running_job)
        subscriber = asyncio.create_task(_collect(dispatcher.attach(running_job)))
        await asyncio.sleep(0.01)
        assert channel.reader_count == 1

        subscriber.cancel()
        with pytest.raises(asyncio.CancelledError):
            await subscriber
        assert channel.reader_count == 0


class TestEventStream:
    @pytest.mark.asyncio
    async def test_sse_frames_for_completed_job(self, dispatcher, publisher, running_job):
        for step, progress in CONVERSION:
            await publisher.emit(running_job, step, progress)

        frames = await asyncio.wait_for(_collect(dispatcher.event_stream(running_job)), timeout=1.0)
        assert frames[0] == ": connected\n\n"
        assert len(frames) == 5
        assert frames[1] == (
            'event: progress\ndata: {"step": "Separando documentos", "progress": 10}\nid: 0\n\n'
        )
        assert frames[-1].startswith("event: progress\n")
        assert "id: 3\n" in frames[-1]

    @pytest.mark.asyncio
    async def test_sse_error_frame(self, dispatcher, publisher, running_job):
        await publisher.fail(running_job, "timeout")
        frames = await asyncio.wait_for(_collect(dispatcher.event_stream(running_job)), timeout=1.0)
        assert frames[-1] == 'event: error\ndata: {"error": "timeout"}\nid: 0\n\n'

    def test_event_stream_unknown_job(self, dispatcher):
        with pytest.raises(JobNotFound):
            dispatcher.event_stream("nope")
