"""Controller-side facade over the worker.

``DictionaryService`` is what a UI talks to. It owns the persisted configs,
the last discovery result and the broker of the current worker; every query
is forwarded to the worker with the timeout configured for its operation.
Results are validated back into pydantic models on the way out.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

import structlog
from pydantic import TypeAdapter

from dictbridge import reconcile
from dictbridge.errors import InvalidInputError, TranscodingError, WorkerFailureError
from dictbridge.models import (
    DictionaryConfig,
    DictionaryGroup,
    DictionaryLoadConfig,
    DiscoveryResult,
    FuzzyWord,
    KeywordItem,
    LoadReport,
    LookupRecord,
    ResolvedEntry,
    ResourceResult,
)
from dictbridge.protocol import Operation

if TYPE_CHECKING:
    from dictbridge.broker import RequestBroker
    from dictbridge.config import Settings
    from dictbridge.store import ConfigStore

log = structlog.get_logger()

T = TypeVar("T")

_BYTES_PER_MB = 1024 * 1024

_LOOKUP_RECORDS = TypeAdapter(list[LookupRecord])
_RESOLVED_ENTRIES = TypeAdapter(list[ResolvedEntry])
_KEYWORDS = TypeAdapter(list[KeywordItem])
_FUZZY_WORDS = TypeAdapter(list[FuzzyWord])
_HEADWORDS = TypeAdapter(list[str])
_ASSETS = TypeAdapter(dict[str, str])


class WorkerHandle(Protocol):
    async def start(self) -> RequestBroker: ...

    async def stop(self) -> None: ...


def _file_size(path: str) -> int:
    try:
        return os.path.getsize(path)
    except OSError:
        return 0


def _normalize_path(path: str) -> str:
    return os.path.abspath(os.path.expanduser(path))


def _load_size(configs: list[DictionaryLoadConfig]) -> int:
    return sum(
        _file_size(path)
        for config in configs
        for path in (config.mdx_path, *config.enabled_archive_paths)
    )


class DictionaryService:
    def __init__(
        self,
        settings: Settings,
        store: ConfigStore,
        worker_factory: Callable[[], WorkerHandle],
    ) -> None:
        self._settings = settings
        self._store = store
        self._worker_factory = worker_factory
        self._worker: WorkerHandle | None = None
        self._broker: RequestBroker | None = None
        self._groups: list[DictionaryGroup] = []
        self._configs: dict[str, DictionaryConfig] = {}

    @property
    def groups(self) -> list[DictionaryGroup]:
        """Groups found by the last discovery, in discovery order."""
        return list(self._groups)

    @property
    def configs(self) -> dict[str, DictionaryConfig]:
        return dict(self._configs)

    # ------------------------------------------------------------------
    # Worker lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._worker is not None:
            return
        worker = self._worker_factory()
        self._broker = await worker.start()
        self._worker = worker

    async def stop(self) -> None:
        worker, self._worker, self._broker = self._worker, None, None
        if worker is not None:
            await worker.stop()

    async def restart(self) -> LoadReport:
        """Replace the worker (after a crash, typically) and reload everything."""
        log.info("worker_restart")
        await self.stop()
        await self.start()
        return await self.refresh()

    async def _call(self, operation: Operation, payload: dict[str, Any], timeout: float) -> Any:
        if self._broker is None:
            raise WorkerFailureError("Worker not started")
        return await self._broker.send(str(operation), payload, timeout)

    # ------------------------------------------------------------------
    # Discovery and loading
    # ------------------------------------------------------------------

    async def discover(self, scan_paths: list[str] | None = None) -> DiscoveryResult:
        """Scan directories for bundles. Defaults to the stored scan paths."""
        if scan_paths is None:
            scan_paths = await self.get_scan_paths()
        raw = await self._call(
            Operation.DISCOVER,
            {"scan_paths": scan_paths},
            self._settings.timeouts.discover_seconds,
        )
        result = DiscoveryResult.model_validate(raw)
        self._groups = result.groups
        for failure in result.failures:
            log.warning("scan_path_unreadable", path=failure.path, error=failure.message)
        return result

    async def load(self, configs: list[DictionaryLoadConfig]) -> LoadReport:
        """Replace the worker's loaded dictionaries with ``configs``."""
        timeout = await self._load_timeout(configs)
        raw = await self._call(
            Operation.LOAD,
            {"configs": [c.model_dump() for c in configs]},
            timeout,
        )
        report = LoadReport.model_validate(raw)
        log.info("dictionaries_loaded", loaded=len(report.loaded), failed=len(report.failures))
        return report

    async def _load_timeout(self, configs: list[DictionaryLoadConfig]) -> float:
        timeouts = self._settings.timeouts
        size = await asyncio.to_thread(_load_size, configs)
        timeout = timeouts.load_base_seconds + timeouts.load_seconds_per_mb * size / _BYTES_PER_MB
        return min(timeout, timeouts.load_max_seconds)

    async def refresh(self) -> LoadReport:
        """Discover, reconcile with saved configs, persist, then load enabled dictionaries."""
        result = await self.discover()
        stored = await self._store.get_configs()
        self._configs = reconcile.reconcile(result.groups, stored)
        await self._store.save_configs(self._configs)
        return await self._reload()

    async def _reload(self) -> LoadReport:
        return await self.load(reconcile.build_load_configs(self._groups, self._configs))

    async def get_assets(self, asset_paths: list[str]) -> dict[str, str]:
        if not asset_paths:
            return {}
        raw = await self._call(
            Operation.GET_ASSETS,
            {"asset_paths": asset_paths},
            self._settings.timeouts.assets_seconds,
        )
        return _ASSETS.validate_python(raw)

    def enabled_asset_paths(self) -> list[str]:
        return reconcile.enabled_asset_paths(self._groups, self._configs)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def get_scan_paths(self) -> list[str]:
        """Saved scan directories; ``Settings.scan_paths`` until a list was ever saved."""
        stored = await self._store.get_scan_paths()
        if stored is None:
            return [_normalize_path(p) for p in self._settings.scan_paths]
        return stored

    async def add_scan_paths(self, paths: list[str]) -> list[str]:
        current = await self.get_scan_paths()
        added = [
            path
            for path in dict.fromkeys(_normalize_path(p) for p in paths)
            if path not in current
        ]
        if not added:
            return current
        updated = [*current, *added]
        await self._store.set_scan_paths(updated)
        await self.refresh()
        return updated

    async def remove_scan_path(self, path: str) -> list[str]:
        current = await self.get_scan_paths()
        path = _normalize_path(path)
        updated = [p for p in current if p != path]
        if updated == current:
            return current
        await self._store.set_scan_paths(updated)
        await self.refresh()
        return updated

    async def update_config(
        self,
        dictionary_id: str,
        *,
        enabled: bool | None = None,
        custom_name: str | None = None,
        resources: Mapping[str, bool] | None = None,
    ) -> DictionaryConfig:
        """Change one dictionary's settings, persist them and reload.

        An empty ``custom_name`` clears the custom name. ``resources`` entries
        for paths that do not belong to the dictionary are ignored.
        """
        config = self._configs.get(dictionary_id)
        group = next((g for g in self._groups if g.id == dictionary_id), None)
        if config is None or group is None:
            raise InvalidInputError(f"Unknown dictionary: {dictionary_id}")

        update: dict[str, Any] = {}
        if enabled is not None:
            update["enabled"] = enabled
        if custom_name is not None:
            update["custom_name"] = custom_name.strip() or None
        if resources is not None:
            known = {r.path for r in group.resources}
            update["enabled_resources"] = {
                **config.enabled_resources,
                **{path: value for path, value in resources.items() if path in known},
            }

        updated = config.model_copy(update=update)
        self._configs[dictionary_id] = updated
        await self._store.save_configs({dictionary_id: updated})
        await self._reload()
        return updated

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def _query(
        self, operation: Operation, payload: dict[str, Any], adapter: TypeAdapter[T]
    ) -> T:
        raw = await self._call(operation, payload, self._settings.timeouts.query_seconds)
        return adapter.validate_python(raw)

    async def lookup(self, word: str) -> list[LookupRecord]:
        word = word.strip()
        if not word:
            return []
        return await self._query(Operation.LOOKUP, {"word": word}, _LOOKUP_RECORDS)

    async def lookup_in_dict(self, word: str, dictionary_id: str) -> LookupRecord | None:
        word = word.strip()
        if not word:
            return None
        raw = await self._call(
            Operation.LOOKUP_IN_DICT,
            {"word": word, "dictionary_id": dictionary_id},
            self._settings.timeouts.query_seconds,
        )
        return LookupRecord.model_validate(raw) if raw is not None else None

    async def lookup_resolved(self, word: str, max_depth: int | None = None) -> list[ResolvedEntry]:
        word = word.strip()
        if not word:
            return []
        if max_depth is None:
            max_depth = self._settings.query.max_redirect_depth
        return await self._query(
            Operation.LOOKUP_RESOLVED, {"word": word, "max_depth": max_depth}, _RESOLVED_ENTRIES
        )

    async def get_resource(self, key: str, dictionary_id: str) -> ResourceResult | None:
        """Fetch an embedded resource. Missing resources and failed transcodes give None."""
        try:
            raw = await self._call(
                Operation.GET_RESOURCE,
                {"key": key, "dictionary_id": dictionary_id},
                self._settings.timeouts.resource_seconds,
            )
        except TranscodingError as e:
            log.warning(
                "resource_unavailable", key=key, dictionary_id=dictionary_id, error=e.message
            )
            return None
        return ResourceResult.model_validate(raw) if raw is not None else None

    async def prefix(self, prefix: str, max_results: int | None = None) -> list[str]:
        if not prefix.strip():
            return []
        return await self._query(
            Operation.PREFIX,
            {"prefix": prefix, "max_results": max_results or self._settings.query.max_results},
            _HEADWORDS,
        )

    async def associate(self, phrase: str, max_results: int | None = None) -> list[KeywordItem]:
        if not phrase.strip():
            return []
        return await self._query(
            Operation.ASSOCIATE,
            {"phrase": phrase, "max_results": max_results or self._settings.query.max_results},
            _KEYWORDS,
        )

    async def suggest(
        self, phrase: str, distance: int | None = None, max_results: int | None = None
    ) -> list[KeywordItem]:
        if not phrase.strip():
            return []
        query = self._settings.query
        return await self._query(
            Operation.SUGGEST,
            {
                "phrase": phrase,
                "distance": query.suggest_distance if distance is None else distance,
                "max_results": max_results or query.max_results,
            },
            _KEYWORDS,
        )

    async def fuzzy_search(
        self, word: str, fuzzy_size: int | None = None, ed_gap: int | None = None
    ) -> list[FuzzyWord]:
        if not word.strip():
            return []
        query = self._settings.query
        return await self._query(
            Operation.FUZZY_SEARCH,
            {
                "word": word,
                "fuzzy_size": fuzzy_size or query.fuzzy_size,
                "ed_gap": query.fuzzy_ed_gap if ed_gap is None else ed_gap,
            },
            _FUZZY_WORDS,
        )
