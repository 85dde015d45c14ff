"""Central settings — loads from ~/.cronx/config.json + environment variables."""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cronx.config.constants import CONFIG_FILE, CRONX_HOME, DATA_DIR
from cronx.config.models import SchedulerConfig, ServerConfig

logger = logging.getLogger("cronx.config.settings")


class Settings(BaseSettings):
    """All cronx configuration in one place.

    Priority (highest → lowest):
      1. Environment variables (CRONX_ prefix, ``__`` for nested keys)
      2. .env file
      3. ~/.cronx/config.json
      4. Defaults defined here
    """

    model_config = SettingsConfigDict(
        env_prefix="CRONX_",
        env_nested_delimiter="__",
        env_file=(".env", str(CRONX_HOME / ".env")),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Sub-configs ---
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    # --- Top-level settings ---
    data_dir: str = str(DATA_DIR)
    log_level: str = "INFO"

    @model_validator(mode="before")
    @classmethod
    def load_config_file(cls, values: dict) -> dict:
        """Merge config.json values as defaults (explicit values still override)."""
        if CONFIG_FILE.exists():
            try:
                file_data = json.loads(CONFIG_FILE.read_text(encoding="utf-8"))
                values = {**file_data, **{k: v for k, v in values.items() if v is not None}}
            except (json.JSONDecodeError, OSError) as exc:
                logger.warning("Ignoring unreadable config file %s: %s", CONFIG_FILE, exc)
        return values

    @property
    def data_path(self) -> Path:
        """Resolved data directory."""
        return Path(self.data_dir).expanduser()

    def save(self) -> None:
        """Persist current settings to config.json."""
        CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
        data = self.model_dump(mode="json")
        CONFIG_FILE.write_text(json.dumps(data, indent=2), encoding="utf-8")

    @classmethod
    def config_exists(cls) -> bool:
        return CONFIG_FILE.exists()


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance for the CLI."""
    return Settings()
