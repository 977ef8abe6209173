"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Constructor arguments
  2. Environment variables  (DICTBRIDGE__TIMEOUTS__QUERY_SECONDS=3)
  3. dictbridge.yaml        (searched in cwd, then the platform config dir)
  4. Hardcoded defaults

The config file is optional; all fields have defaults.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_APP_NAME = "dictbridge"
_DEFAULT_DATA_DIR = platformdirs.user_data_dir(_APP_NAME)
_DB_FILENAME = "dictbridge.db"


def _find_config_file() -> str | None:
    """Return the path of the first dictbridge.yaml found, or None."""
    candidates = [
        Path("dictbridge.yaml"),
        Path(platformdirs.user_config_dir(_APP_NAME)) / "dictbridge.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class WorkerSettings(_Section):
    python_executable: str = sys.executable
    # module:attribute of the ReaderBackend used inside the worker
    reader_backend: str = "dictbridge.readers.mdict:MdictBackend"
    # Reply lines carry base64 resources, so the default 64 KiB line limit is far too small
    stream_limit_bytes: int = Field(default=64 * 1024 * 1024, ge=64 * 1024)


class TimeoutSettings(_Section):
    discover_seconds: float = Field(default=30.0, gt=0)
    load_base_seconds: float = Field(default=60.0, gt=0)
    load_seconds_per_mb: float = Field(default=0.5, ge=0)
    load_max_seconds: float = Field(default=600.0, gt=0)
    query_seconds: float = Field(default=5.0, gt=0)
    resource_seconds: float = Field(default=20.0, gt=0)
    assets_seconds: float = Field(default=10.0, gt=0)
    shutdown_seconds: float = Field(default=5.0, gt=0)


class QuerySettings(_Section):
    max_results: int = Field(default=10, ge=1)
    suggest_distance: int = Field(default=2, ge=0)
    fuzzy_size: int = Field(default=10, ge=1)
    fuzzy_ed_gap: int = Field(default=2, ge=0)
    max_redirect_depth: int = Field(default=5, ge=0)


class TranscoderSettings(_Section):
    ffmpeg_path: str = "ffmpeg"
    timeout_seconds: float = Field(default=15.0, gt=0)


class StorageSettings(_Section):
    # None means <data_dir>/dictbridge.db, filled in by Settings
    db_path: str | None = None


class LoggingSettings(_Section):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: DICTBRIDGE__QUERY__MAX_RESULTS=20
        env_prefix="DICTBRIDGE__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    data_dir: str = _DEFAULT_DATA_DIR
    # Used only until a scan path list has been saved to the store
    scan_paths: list[str] = []
    worker: WorkerSettings = WorkerSettings()
    timeouts: TimeoutSettings = TimeoutSettings()
    query: QuerySettings = QuerySettings()
    transcoder: TranscoderSettings = TranscoderSettings()
    storage: StorageSettings = StorageSettings()
    logging: LoggingSettings = LoggingSettings()

    @model_validator(mode="after")
    def _default_db_path(self) -> Settings:
        if self.storage.db_path is None:
            self.storage = self.storage.model_copy(
                update={"db_path": str(Path(self.data_dir) / _DB_FILENAME)}
            )
        return self

    @property
    def db_path(self) -> Path:
        assert self.storage.db_path is not None
        return Path(self.storage.db_path)

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
            # dotenv and file secrets intentionally excluded
        )
