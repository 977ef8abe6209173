"""Contracts for the dictionary-file reader.

The worker never parses MDict files itself. It talks to a ``ReaderBackend``
chosen by a ``module:attribute`` path, so tests and alternative formats can
plug in without touching the engine. Reader calls are blocking; the worker runs
them in threads.
"""

from __future__ import annotations

import importlib
import inspect
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class ReaderEntry:
    headword: str
    content: str


@dataclass(frozen=True)
class ReaderKeyword:
    headword: str


@dataclass(frozen=True)
class ReaderFuzzyWord:
    headword: str
    edit_distance: int


@dataclass(frozen=True)
class LocatedResource:
    headword: str  # original key inside the archive, e.g. "\\audio\\haus.spx"
    payload: str  # base64 of the stored bytes


class DictionaryReader(Protocol):
    def lookup(self, word: str) -> ReaderEntry | None: ...

    def prefix(self, text: str) -> list[ReaderKeyword]: ...

    def associate(self, phrase: str) -> list[ReaderKeyword]: ...

    def suggest(self, phrase: str, distance: int) -> list[ReaderKeyword]: ...

    def fuzzy_search(self, word: str, size: int, gap: int) -> list[ReaderFuzzyWord]: ...


class ResourceArchive(Protocol):
    def locate(self, key: str) -> LocatedResource | None: ...


@runtime_checkable
class ReaderBackend(Protocol):
    def open_dictionary(self, path: str) -> DictionaryReader:
        """Open a primary dictionary file. Raises on unreadable or corrupt files."""
        ...

    def open_archive(self, path: str) -> ResourceArchive:
        """Open an auxiliary resource archive. Raises on unreadable or corrupt files."""
        ...


def load_backend(import_path: str) -> ReaderBackend:
    """Import ``module:attribute`` and return a backend instance.

    Classes and factory functions are called with no arguments; anything else
    is used as-is.
    """
    module_name, sep, attribute = import_path.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Reader backend must look like 'module:attribute', got {import_path!r}")

    target = getattr(importlib.import_module(module_name), attribute)
    backend = target() if inspect.isclass(target) or inspect.isfunction(target) else target
    if not isinstance(backend, ReaderBackend):
        raise TypeError(f"{import_path!r} does not provide open_dictionary/open_archive")
    return backend
