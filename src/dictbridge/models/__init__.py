from __future__ import annotations

from dictbridge.models.dictionary import (
    DictionaryConfig,
    DictionaryGroup,
    DictionaryLoadConfig,
    DictionaryResource,
    ResourceKind,
)
from dictbridge.models.results import (
    DiscoveryResult,
    FuzzyWord,
    KeywordItem,
    LoadFailure,
    LoadReport,
    LookupRecord,
    PathFailure,
    ResolvedEntry,
    ResourceResult,
)

__all__ = [
    # dictionary
    "ResourceKind",
    "DictionaryResource",
    "DictionaryGroup",
    "DictionaryConfig",
    "DictionaryLoadConfig",
    # results
    "PathFailure",
    "DiscoveryResult",
    "LoadFailure",
    "LoadReport",
    "LookupRecord",
    "KeywordItem",
    "FuzzyWord",
    "ResourceResult",
    "ResolvedEntry",
]
