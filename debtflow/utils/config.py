"""Application settings.

Pydantic-based configuration loaded from environment variables (prefix
``DEBTFLOW_``) and an optional ``.env`` file. Default paths follow the
platform conventions from platformdirs.

Environment Variables:
- DEBTFLOW_DATABASE_URL: SQLAlchemy URL (default: sqlite file in data_dir)
- DEBTFLOW_DATA_DIR: Data directory
- DEBTFLOW_OFFLINE_QUEUE_PATH: JSON file backing the offline queue
- DEBTFLOW_OFFLINE_MAX_RETRIES: Replay retries before abandoning (default: 3)
- DEBTFLOW_LOG_LEVEL: Logging level (default: INFO)
"""

from pathlib import Path

from platformdirs import PlatformDirs
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from debtflow.exceptions import PersistenceError
from debtflow.utils.retry import RetryConfig

dirs = PlatformDirs("debtflow", "debtflow")


class Settings(BaseSettings):
    """DebtFlow configuration.

    Example:
        >>> settings = Settings(offline_max_retries=5)
        >>> settings.replay_retry_config().max_retries
        5
    """

    model_config = SettingsConfigDict(
        env_prefix="DEBTFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    data_dir: Path = Field(
        default=Path(dirs.user_data_dir),
        description="Directory holding the local database and offline queue",
    )
    database_url: str | None = Field(
        default=None,
        description="SQLAlchemy database URL (defaults to a SQLite file in data_dir)",
    )
    offline_queue_path: Path | None = Field(
        default=None,
        description="JSON file backing the offline action queue",
    )

    # Offline replay
    offline_max_retries: int = Field(
        default=3,
        ge=0,
        le=20,
        description="Replay retries before a queued action is abandoned",
    )
    offline_base_delay: float = Field(
        default=1.0,
        gt=0,
        description="Delay in seconds before the first replay retry",
    )
    offline_max_delay: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound in seconds for the replay backoff",
    )

    # Payments
    default_payment_method: str = Field(
        default="dinheiro",
        description="Payment method recorded when none is given",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    json_logs: bool = Field(default=False, description="Emit JSON log lines")

    @model_validator(mode="after")
    def _derive_paths(self) -> "Settings":
        if self.database_url is None:
            self.database_url = f"sqlite:///{self.data_dir / 'debtflow.db'}"
        if self.offline_queue_path is None:
            self.offline_queue_path = self.data_dir / "offline_queue.json"
        return self

    def replay_retry_config(self) -> RetryConfig:
        """Backoff configuration for offline replay."""
        return RetryConfig(
            max_retries=self.offline_max_retries,
            base_delay=self.offline_base_delay,
            max_delay=max(self.offline_max_delay, self.offline_base_delay),
            backoff_factor=2.0,
            jitter=False,
            retryable_exceptions=(PersistenceError,),
        )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """Re-read settings from the environment."""
    global _settings

    _settings = Settings()
    return _settings
