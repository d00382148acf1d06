"""Application settings loaded from the environment."""
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration.

    Every field can be overridden with a ``TASKFLOW_``-prefixed environment
    variable or a ``.env`` file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="TASKFLOW_",
        env_file=".env",
        extra="ignore",
    )

    database_url: str = Field("sqlite:///./data/taskflow.db")
    sql_echo: bool = False
    data_dir: Path = Field(Path("./data"))
    auth_pepper: str = Field("change-me-in-production")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    seed_demo_data: bool = False

    # Upload limits in bytes
    max_avatar_bytes: int = 5 * 1024 * 1024
    max_report_file_bytes: int = 50 * 1024 * 1024
    max_chat_attachment_bytes: int = 25 * 1024 * 1024

    @property
    def avatars_dir(self) -> Path:
        return self.data_dir / "avatars"

    @property
    def reports_dir(self) -> Path:
        return self.data_dir / "reports"

    @property
    def messages_dir(self) -> Path:
        return self.data_dir / "messages"


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
