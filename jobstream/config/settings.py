from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    channel_capacity: int = 64
    retention_seconds: float = 300.0
    sweep_interval_seconds: float = 30.0
    step_delay_seconds: float = 1.0
    cors_origins: list[str] = ["http://localhost:3000"]
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_prefix = "JOBSTREAM_"
