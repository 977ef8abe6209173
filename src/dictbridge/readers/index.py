"""In-memory headword index implementing the ``DictionaryReader`` queries.

Built once per opened dictionary from ``(headword, content)`` pairs. Exact
lookups use a dict, prefix queries bisect a sorted key list, and spelling
queries use rapidfuzz's Levenshtein distance.
"""

from __future__ import annotations

import bisect
from collections.abc import Iterable

from rapidfuzz import process
from rapidfuzz.distance import Levenshtein

from dictbridge.readers.base import ReaderEntry, ReaderFuzzyWord, ReaderKeyword


class HeadwordIndex:
    def __init__(self, entries: Iterable[tuple[str, str]]) -> None:
        self._content: dict[str, str] = {}
        for headword, content in entries:
            # Duplicate headwords: the first entry wins
            self._content.setdefault(headword, content)

        self._keys: list[str] = sorted(self._content)
        folded = sorted((key.casefold(), key) for key in self._keys)
        self._folded_keys: list[str] = [f for f, _ in folded]
        self._folded_originals: list[str] = [k for _, k in folded]

    def __len__(self) -> int:
        return len(self._keys)

    def lookup(self, word: str) -> ReaderEntry | None:
        content = self._content.get(word)
        if content is None:
            return None
        return ReaderEntry(headword=word, content=content)

    def prefix(self, text: str) -> list[ReaderKeyword]:
        """Headwords starting with ``text`` (case-sensitive), in sorted order."""
        return [ReaderKeyword(k) for k in _starting_with(self._keys, self._keys, text)]

    def associate(self, phrase: str) -> list[ReaderKeyword]:
        """Headwords starting with ``phrase``, ignoring case."""
        matches = _starting_with(self._folded_keys, self._folded_originals, phrase.casefold())
        return [ReaderKeyword(k) for k in matches]

    def suggest(self, phrase: str, distance: int) -> list[ReaderKeyword]:
        """Headwords within ``distance`` edits of ``phrase``, closest first."""
        if not phrase:
            return []
        matches = process.extract(
            phrase,
            self._keys,
            scorer=Levenshtein.distance,
            score_cutoff=distance,
            limit=None,
        )
        return [ReaderKeyword(choice) for choice, _score, _idx in matches]

    def fuzzy_search(self, word: str, size: int, gap: int) -> list[ReaderFuzzyWord]:
        """At most ``size`` headwords within ``gap`` edits of ``word``, closest first."""
        if not word:
            return []
        matches = process.extract(
            word,
            self._keys,
            scorer=Levenshtein.distance,
            score_cutoff=gap,
            limit=size,
        )
        return [ReaderFuzzyWord(choice, int(score)) for choice, score, _idx in matches]


def _starting_with(sorted_keys: list[str], originals: list[str], text: str) -> list[str]:
    if not text:
        return []
    start = bisect.bisect_left(sorted_keys, text)
    end = start
    while end < len(sorted_keys) and sorted_keys[end].startswith(text):
        end += 1
    return originals[start:end]
