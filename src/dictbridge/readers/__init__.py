from __future__ import annotations

from dictbridge.readers.base import (
    DictionaryReader,
    LocatedResource,
    ReaderBackend,
    ReaderEntry,
    ReaderFuzzyWord,
    ReaderKeyword,
    ResourceArchive,
    load_backend,
)
from dictbridge.readers.index import HeadwordIndex

__all__ = [
    "DictionaryReader",
    "ResourceArchive",
    "ReaderBackend",
    "ReaderEntry",
    "ReaderKeyword",
    "ReaderFuzzyWord",
    "LocatedResource",
    "HeadwordIndex",
    "load_backend",
]
