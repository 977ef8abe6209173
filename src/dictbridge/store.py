"""SQLite persistence for dictionary configs and scan paths.

All store operations catch ``aiosqlite.Error`` internally and degrade
gracefully: read failures return empty results (callers then fall back to
fresh defaults from reconciliation), write failures are logged and ignored
(the in-memory state used for the current session is still correct).
Errors are logged with ``exc_info=True`` so they remain observable via stderr.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import UTC, datetime

import aiosqlite
import structlog
from pydantic import ValidationError

from dictbridge.models import DictionaryConfig

log = structlog.get_logger()

_CREATE_CONFIG_TABLE = """
CREATE TABLE IF NOT EXISTS dictionary_config (
    dictionary_id     TEXT PRIMARY KEY,
    enabled           INTEGER NOT NULL,
    custom_name       TEXT,
    enabled_resources TEXT NOT NULL DEFAULT '{}',
    updated_at        TEXT NOT NULL
)
"""

_CREATE_SCAN_PATH_TABLE = """
CREATE TABLE IF NOT EXISTS scan_path (
    position INTEGER PRIMARY KEY,
    path     TEXT NOT NULL UNIQUE
)
"""

_CREATE_STATE_TABLE = """
CREATE TABLE IF NOT EXISTS store_state (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""

# Present once the user has saved a scan path list, even an empty one
_SCAN_PATHS_SET = "scan_paths_set"


class ConfigStore:
    """Persisted state: group id -> DictionaryConfig, plus ordered scan directories."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def init_db(self) -> None:
        """Create tables and set WAL mode. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_CONFIG_TABLE)
        await self._db.execute(_CREATE_SCAN_PATH_TABLE)
        await self._db.execute(_CREATE_STATE_TABLE)
        await self._db.commit()

    # ------------------------------------------------------------------
    # Dictionary configs
    # ------------------------------------------------------------------

    async def get_configs(self) -> dict[str, DictionaryConfig]:
        """Read every saved config. Returns ``{}`` on read failure."""
        try:
            cursor = await self._db.execute(
                "SELECT dictionary_id, enabled, custom_name, enabled_resources "
                "FROM dictionary_config"
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error:
            log.warning("store_read_error", key="dictionary_config", exc_info=True)
            return {}

        configs: dict[str, DictionaryConfig] = {}
        for dictionary_id, enabled, custom_name, enabled_resources in rows:
            try:
                configs[dictionary_id] = DictionaryConfig(
                    enabled=bool(enabled),
                    custom_name=custom_name,
                    enabled_resources=json.loads(enabled_resources),
                )
            except (ValueError, ValidationError):
                # A corrupt row is dropped; reconciliation recreates it with defaults
                log.warning("store_row_invalid", dictionary_id=dictionary_id, exc_info=True)
        return configs

    async def save_configs(self, configs: Mapping[str, DictionaryConfig]) -> None:
        """Upsert configs. Configs not in ``configs`` are left untouched. Non-fatal on failure."""
        now = datetime.now(UTC).isoformat()
        try:
            await self._db.executemany(
                "INSERT OR REPLACE INTO dictionary_config "
                "(dictionary_id, enabled, custom_name, enabled_resources, updated_at) "
                "VALUES (?, ?, ?, ?, ?)",
                [
                    (
                        dictionary_id,
                        int(config.enabled),
                        config.custom_name,
                        json.dumps(config.enabled_resources),
                        now,
                    )
                    for dictionary_id, config in configs.items()
                ],
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("store_write_error", key="dictionary_config", exc_info=True)

    # ------------------------------------------------------------------
    # Scan paths
    # ------------------------------------------------------------------

    async def get_scan_paths(self) -> list[str] | None:
        """Ordered scan directories.

        Returns ``None`` when no list was ever saved (or on read failure), so
        callers can tell "never configured" apart from "configured as empty".
        """
        try:
            cursor = await self._db.execute(
                "SELECT 1 FROM store_state WHERE key = ?", (_SCAN_PATHS_SET,)
            )
            if await cursor.fetchone() is None:
                return None
            cursor = await self._db.execute("SELECT path FROM scan_path ORDER BY position")
            rows = await cursor.fetchall()
        except aiosqlite.Error:
            log.warning("store_read_error", key="scan_path", exc_info=True)
            return None
        return [row[0] for row in rows]

    async def set_scan_paths(self, paths: list[str]) -> None:
        """Replace the scan path list. Duplicates keep their first position. Non-fatal."""
        unique = list(dict.fromkeys(paths))
        try:
            await self._db.execute("DELETE FROM scan_path")
            await self._db.executemany(
                "INSERT INTO scan_path (position, path) VALUES (?, ?)",
                list(enumerate(unique)),
            )
            await self._db.execute(
                "INSERT OR REPLACE INTO store_state (key, value) VALUES (?, ?)",
                (_SCAN_PATHS_SET, datetime.now(UTC).isoformat()),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("store_write_error", key="scan_path", exc_info=True)
