"""Application configuration utilities."""
from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

_PACKAGE_DIR = Path(__file__).resolve().parent


class AppConfig(BaseModel):
    """Strongly typed configuration loaded from config.json."""

    database_path: str = Field(default="./data/mamacare.db")
    vaccine_schedule_path: Optional[str] = Field(default=None)
    default_country: str = Field(default="United Kingdom")
    legacy_profile_key: str = Field(default="currentUser")

    @property
    def resolved_database_path(self) -> Path:
        """Return the absolute path for the SQLite database file."""
        return (_PACKAGE_DIR.parent / self.database_path).resolve()

    @property
    def resolved_schedule_path(self) -> Path:
        """Return the vaccine schedule file, defaulting to the packaged table."""
        if self.vaccine_schedule_path:
            return (_PACKAGE_DIR.parent / self.vaccine_schedule_path).resolve()
        return _PACKAGE_DIR / "data" / "vaccine_schedules.json"


def _config_path() -> Path:
    return _PACKAGE_DIR.parent / "config.json"


def load_config() -> AppConfig:
    """Load configuration from config.json, raising helpful errors if missing."""

    config_file = _config_path()
    if not config_file.exists():
        example = config_file.with_name("config.example.json")
        raise FileNotFoundError(
            "Missing config.json. Copy config.example.json and adjust the paths."
            f" Expected at {config_file}. Example file: {example}"
        )

    contents: Dict[str, Any] = json.loads(config_file.read_text())
    return AppConfig(**contents)


@lru_cache
def supabase_config() -> tuple[str, str]:
    url = os.getenv("SUPABASE_URL")
    anon_key = os.getenv("SUPABASE_ANON_KEY")
    if not url or not anon_key:
        raise RuntimeError("Missing SUPABASE_URL/SUPABASE_ANON_KEY for cloud access.")
    return url.rstrip("/"), anon_key


@lru_cache
def legacy_key() -> Optional[bytes]:
    key = os.getenv("MAMACARE_LEGACY_KEY")
    return key.encode("ascii") if key else None


CONFIG = load_config()
