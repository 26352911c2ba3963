from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class WriterSettings(BaseSettings):
    """Tunables for SqlLogWriter. Durations are in seconds.

    Every value can come from the environment (SQLLOG_DSN, SQLLOG_AUTOFLUSH_WAIT,
    ...) or a .env file.
    """

    dsn: str
    application_name: str = "sqllog"

    autoflush_wait: float = 5.0
    close_wait: float = 10.0
    retry_wait_increment: float = 5 * 60.0
    retry_wait_max: float = 60 * 60.0

    max_message_length: int = Field(default=1024, gt=0, le=1024)
    command_timeout: float = 3 * 60.0
    check_connection: bool = False  # ping the server before each batch

    model_config = SettingsConfigDict(
        env_prefix="SQLLOG_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator(
        "autoflush_wait",
        "close_wait",
        "retry_wait_increment",
        "retry_wait_max",
        "command_timeout",
    )
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("durations must be >= 0")
        return v


@lru_cache()
def get_settings() -> WriterSettings:
    return WriterSettings()
