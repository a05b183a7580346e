"""Configuración de entorno (API key de Gemini, base SQLite, logging)."""

from __future__ import annotations

from datetime import tzinfo
from pathlib import Path

from dateutil import tz
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from ``GLUCO_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="GLUCO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Gemini
    gemini_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("GLUCO_GEMINI_API_KEY", "GEMINI_API_KEY"),
    )
    gemini_model: str = "gemini-2.5-flash"

    # Storage
    db_path: Path = Path.home() / ".gluco_tool" / "gluco_tool.sqlite3"

    # Timezone used for form dates and naive timestamps ('' -> system local)
    timezone: str = ""

    # Logging
    log_format: str = "text"  # 'json' or 'text'
    log_level: str = "WARNING"

    def local_tz(self) -> tzinfo:
        """Configured timezone, or the system one."""
        if self.timezone:
            zone = tz.gettz(self.timezone)
            if zone is None:
                raise ValueError(f"Unknown timezone: {self.timezone}")
            return zone
        return tz.tzlocal()


def get_settings() -> Settings:
    """Read settings from the environment."""
    return Settings()
