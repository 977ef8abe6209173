"""Unit-specific fixtures (no I/O beyond in-memory SQLite and tmp files)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import aiosqlite
import pytest
from fake_backend import FakeBackend
from loopback import FakeTranscoder, LoopbackWorker

from dictbridge.service import DictionaryService
from dictbridge.store import ConfigStore
from dictbridge.worker.dispatcher import Dispatcher

if TYPE_CHECKING:
    from dictbridge.config import Settings


@pytest.fixture()
async def store():
    """In-memory SQLite config store for unit tests."""
    async with aiosqlite.connect(":memory:") as db:
        s = ConfigStore(db)
        await s.init_db()
        yield s


@pytest.fixture()
def transcoder() -> FakeTranscoder:
    return FakeTranscoder()


@pytest.fixture()
def dispatcher(transcoder: FakeTranscoder) -> Dispatcher:
    return Dispatcher(FakeBackend(), transcoder)


@pytest.fixture()
def workers() -> list[LoopbackWorker]:
    """Every loopback worker the service fixture created, oldest first."""
    return []


@pytest.fixture()
async def service(settings: Settings, store: ConfigStore, workers: list[LoopbackWorker]):
    def factory() -> LoopbackWorker:
        worker = LoopbackWorker()
        workers.append(worker)
        return worker

    svc = DictionaryService(settings, store, factory)
    await svc.start()
    yield svc
    await svc.stop()
