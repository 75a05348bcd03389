"""Configuration management."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Remote agent endpoint
    agent_scheme: str = "ws"
    agent_host: str = "localhost"
    agent_port: int = 8000
    agent_path: str = "/ws"
    reconnect_delay: float = Field(default=2.0, gt=0, description="Seconds between reconnect attempts")

    # Local snapshot storage
    storage_dir: Path = Field(default=Path("~/.companion"), description="Directory holding one JSON file per collection")  # noqa: E501
    storage_prefix: str = "companion_"

    # Conversation archive
    conversation_limit: int = Field(default=50, ge=1, description="Archived conversations kept, newest first")
    preview_length: int = Field(default=50, ge=1)

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    model_config = SettingsConfigDict(
        env_prefix="COMPANION_",
        env_file=".env",
        extra="ignore",  # Ignore extra fields in .env file
        env_nested_delimiter="__",
    )

    @property
    def agent_url(self) -> str:
        """Full URL of the remote agent channel."""
        path = self.agent_path if self.agent_path.startswith("/") else f"/{self.agent_path}"
        return f"{self.agent_scheme}://{self.agent_host}:{self.agent_port}{path}"

    @property
    def storage_path(self) -> Path:
        return self.storage_dir.expanduser()


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
