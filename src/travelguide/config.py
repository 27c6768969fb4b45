"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (TRAVELGUIDE__API__BASE_URL=https://...)
  2. travelguide.yaml       (searched in cwd, then the platform config dir)
  3. Hardcoded defaults

The config file is optional.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("travelguide")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "cache.db")


def _find_config_file() -> str | None:
    """Return the path of the first travelguide.yaml found, or None."""
    candidates = [
        Path("travelguide.yaml"),
        Path(platformdirs.user_config_dir("travelguide")) / "travelguide.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ApiSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    base_url: str = "http://localhost:8080"
    timeout_seconds: float = 30.0


class CacheSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ttl_hours: int = 24
    db_path: str = _DEFAULT_DB_PATH


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "text"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: TRAVELGUIDE__CACHE__TTL_HOURS=12
        env_prefix="TRAVELGUIDE__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    api: ApiSettings = ApiSettings()
    cache: CacheSettings = CacheSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
        )
