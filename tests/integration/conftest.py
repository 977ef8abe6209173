"""Integration test fixtures.

These tests spawn the real ``python -m dictbridge.worker`` child process. The
fake reader backend lives in the tests directory, so it is put on the child's
``PYTHONPATH``.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path

import pytest

from dictbridge.config import Settings
from dictbridge.worker_process import WorkerProcess

TESTS_DIR = Path(__file__).resolve().parent.parent
SRC_DIR = TESTS_DIR.parent / "src"


@pytest.fixture()
def subprocess_env() -> dict[str, str]:
    """Environment for worker subprocesses with the fake backend importable."""
    paths = [str(TESTS_DIR), str(SRC_DIR)]
    existing = os.environ.get("PYTHONPATH")
    if existing:
        paths.append(existing)
    return {**os.environ, "PYTHONPATH": os.pathsep.join(paths)}


@pytest.fixture()
def worker_factory(
    settings: Settings, subprocess_env: dict[str, str]
) -> Callable[[], WorkerProcess]:
    def factory() -> WorkerProcess:
        return WorkerProcess(settings, env=subprocess_env)

    return factory
