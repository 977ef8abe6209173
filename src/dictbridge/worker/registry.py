"""The set of opened dictionaries, and the gate that guards swapping it.

``Registry`` is an immutable value. Load builds a complete new one off to the
side and the dispatcher swaps it in with a single assignment, so a query
always sees either the old set or the new set.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
from collections.abc import AsyncIterator, Iterator
from dataclasses import dataclass

import structlog

from dictbridge.errors import LoadInstanceError
from dictbridge.models import DictionaryLoadConfig, LoadFailure, LoadReport
from dictbridge.readers.base import DictionaryReader, ReaderBackend, ResourceArchive

log = structlog.get_logger()


@dataclass(frozen=True)
class LoadedDictionary:
    id: str
    name: str
    reader: DictionaryReader
    archives: tuple[ResourceArchive, ...] = ()


@dataclass(frozen=True)
class Registry:
    instances: tuple[LoadedDictionary, ...] = ()

    def __iter__(self) -> Iterator[LoadedDictionary]:
        return iter(self.instances)

    def __len__(self) -> int:
        return len(self.instances)

    def get(self, dictionary_id: str) -> LoadedDictionary | None:
        for instance in self.instances:
            if instance.id == dictionary_id:
                return instance
        return None


async def _open_archives(
    backend: ReaderBackend, config: DictionaryLoadConfig, failures: list[LoadFailure]
) -> tuple[ResourceArchive, ...]:
    archives: list[ResourceArchive] = []
    for archive_path in config.enabled_archive_paths:
        try:
            archives.append(await asyncio.to_thread(backend.open_archive, archive_path))
        except Exception as e:
            error = LoadInstanceError(archive_path, str(e))
            log.warning("archive_load_failed", dictionary_id=config.id, error=error.message)
            failures.append(LoadFailure(dictionary_id=config.id, path=archive_path, message=str(e)))
    return tuple(archives)


async def build_registry(
    backend: ReaderBackend, configs: list[DictionaryLoadConfig]
) -> tuple[Registry, LoadReport]:
    """Open every configured dictionary. Failed ones are reported and left out."""
    instances: list[LoadedDictionary] = []
    failures: list[LoadFailure] = []
    seen: set[str] = set()

    for config in configs:
        if config.id in seen:
            log.warning("duplicate_load_config", dictionary_id=config.id)
            continue
        seen.add(config.id)

        log.info("dictionary_loading", dictionary_id=config.id, path=config.mdx_path)
        try:
            reader = await asyncio.to_thread(backend.open_dictionary, config.mdx_path)
        except Exception as e:
            error = LoadInstanceError(config.mdx_path, str(e))
            log.warning("dictionary_load_failed", dictionary_id=config.id, error=error.message)
            failures.append(
                LoadFailure(dictionary_id=config.id, path=config.mdx_path, message=str(e))
            )
            continue

        archives = await _open_archives(backend, config, failures)
        instances.append(
            LoadedDictionary(
                id=config.id,
                name=config.name or os.path.basename(config.mdx_path),
                reader=reader,
                archives=archives,
            )
        )

    registry = Registry(tuple(instances))
    log.info("dictionaries_loaded", loaded=len(registry), failed=len(failures))
    return registry, LoadReport(loaded=[i.id for i in registry], failures=failures)


class AccessGate:
    """Many concurrent queries, or one exclusive operation (Discovery/Load).

    Queries arriving while an exclusive operation runs or is waiting are queued
    behind it, so a steady stream of lookups cannot starve a reload.
    """

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextlib.asynccontextmanager
    async def shared(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._writers_waiting == 0)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                self._cond.notify_all()

    @contextlib.asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        async with self._cond:
            self._writers_waiting += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            finally:
                self._writers_waiting -= 1
                self._cond.notify_all()
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()
