"""Application wiring.

``open_app`` builds every long-lived component, starts the worker and runs the
startup refresh. On exit the worker is stopped and the database closed, in
that order.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass

import aiosqlite
import structlog

from dictbridge.config import Settings
from dictbridge.service import DictionaryService, WorkerHandle
from dictbridge.store import ConfigStore
from dictbridge.worker_process import WorkerProcess

log = structlog.get_logger()


@dataclass
class AppState:
    settings: Settings
    store: ConfigStore
    service: DictionaryService


@asynccontextmanager
async def open_app(
    settings: Settings,
    *,
    worker_factory: Callable[[], WorkerHandle] | None = None,
    refresh: bool = True,
) -> AsyncIterator[AppState]:
    """Open the store, start a worker and load the enabled dictionaries.

    ``worker_factory`` defaults to spawning ``python -m dictbridge.worker``
    with ``settings``. With ``refresh=False`` nothing is discovered or loaded
    until the caller asks for it.
    """
    db_path = settings.db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)

    factory = worker_factory or (lambda: WorkerProcess(settings))

    async with aiosqlite.connect(db_path) as db:
        store = ConfigStore(db)
        await store.init_db()
        service = DictionaryService(settings, store, factory)
        await service.start()
        try:
            if refresh:
                report = await service.refresh()
                log.info(
                    "app_ready",
                    dictionaries=len(report.loaded),
                    failures=len(report.failures),
                )
            yield AppState(settings=settings, store=store, service=service)
        finally:
            await service.stop()
