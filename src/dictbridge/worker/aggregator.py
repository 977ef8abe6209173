"""Fan one query out to every loaded dictionary and merge the answers.

Each dictionary is queried in its own thread and results are gathered in
registry order, so merges are stable no matter which dictionary answers
first. A dictionary that raises is logged and contributes nothing.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TypeVar

import structlog

from dictbridge.errors import RedirectCycleError, RedirectDepthExceededError
from dictbridge.models import FuzzyWord, KeywordItem, LookupRecord, ResolvedEntry
from dictbridge.worker.redirects import MAX_REDIRECT_DEPTH, RedirectResolver
from dictbridge.worker.registry import LoadedDictionary, Registry

log = structlog.get_logger()

T = TypeVar("T")


def _lookup_one(instance: LoadedDictionary, word: str) -> LookupRecord | None:
    entry = instance.reader.lookup(word)
    if entry is None or not entry.content:
        return None
    return LookupRecord(
        dictionary_id=instance.id,
        dictionary_name=instance.name,
        headword=entry.headword,
        definition=entry.content,
    )


class QueryAggregator:
    def __init__(self, registry: Registry) -> None:
        self._registry = registry

    async def _fan_out(
        self, operation: str, call: Callable[[LoadedDictionary], T]
    ) -> list[tuple[LoadedDictionary, T]]:
        instances = list(self._registry)
        results = await asyncio.gather(
            *(asyncio.to_thread(call, instance) for instance in instances),
            return_exceptions=True,
        )

        merged: list[tuple[LoadedDictionary, T]] = []
        for instance, result in zip(instances, results, strict=True):
            if isinstance(result, Exception):
                log.warning(
                    "instance_query_failed",
                    operation=operation,
                    dictionary_id=instance.id,
                    error=str(result),
                    exc_info=result,
                )
                continue
            if isinstance(result, BaseException):
                raise result
            merged.append((instance, result))
        return merged

    async def lookup(self, word: str) -> list[LookupRecord]:
        if not word:
            return []
        results = await self._fan_out("lookup", lambda inst: _lookup_one(inst, word))
        return [record for _, record in results if record is not None]

    async def lookup_in_dict(self, word: str, dictionary_id: str) -> LookupRecord | None:
        instance = self._registry.get(dictionary_id)
        if instance is None:
            log.warning("lookup_dictionary_missing", dictionary_id=dictionary_id)
            return None
        if not word:
            return None
        try:
            return await asyncio.to_thread(_lookup_one, instance, word)
        except Exception as e:
            log.warning(
                "instance_query_failed",
                operation="lookup_in_dict",
                dictionary_id=dictionary_id,
                error=str(e),
                exc_info=True,
            )
            return None

    async def prefix(self, prefix: str, max_per_dict: int) -> list[str]:
        if not prefix:
            return []
        results = await self._fan_out(
            "prefix", lambda inst: inst.reader.prefix(prefix)[:max_per_dict]
        )
        combined = {item.headword for _, items in results for item in items}
        return sorted(combined)

    async def associate(self, phrase: str, max_per_dict: int) -> list[KeywordItem]:
        if not phrase:
            return []
        results = await self._fan_out(
            "associate", lambda inst: inst.reader.associate(phrase)[:max_per_dict]
        )
        # Same headword from two dictionaries stays twice: provenance differs
        return [
            KeywordItem(headword=item.headword, dictionary_id=instance.id)
            for instance, items in results
            for item in items
        ]

    async def suggest(self, phrase: str, distance: int, max_total: int) -> list[KeywordItem]:
        if not phrase:
            return []
        results = await self._fan_out("suggest", lambda inst: inst.reader.suggest(phrase, distance))
        unique: dict[str, KeywordItem] = {}
        for instance, items in results:
            for item in items:
                if item.headword not in unique:
                    unique[item.headword] = KeywordItem(
                        headword=item.headword, dictionary_id=instance.id
                    )
        return list(unique.values())[:max_total]

    async def fuzzy_search(self, word: str, fuzzy_size: int, ed_gap: int) -> list[FuzzyWord]:
        if not word:
            return []
        results = await self._fan_out(
            "fuzzy_search", lambda inst: inst.reader.fuzzy_search(word, fuzzy_size, ed_gap)
        )
        return [
            FuzzyWord(
                headword=item.headword,
                edit_distance=item.edit_distance,
                dictionary_id=instance.id,
            )
            for instance, items in results
            for item in items
        ]

    async def lookup_resolved(
        self, word: str, max_depth: int = MAX_REDIRECT_DEPTH
    ) -> list[ResolvedEntry]:
        """``lookup`` with every ``@@@LINK=`` record followed inside its dictionary."""
        records = await self.lookup(word)
        return list(
            await asyncio.gather(*(self._resolve_record(word, r, max_depth) for r in records))
        )

    async def _resolve_record(
        self, word: str, record: LookupRecord, max_depth: int
    ) -> ResolvedEntry:
        async def fetch(target: str) -> str | None:
            found = await self.lookup_in_dict(target, record.dictionary_id)
            return found.definition if found is not None else None

        resolver = RedirectResolver(fetch, max_depth=max_depth)
        entry = ResolvedEntry(
            dictionary_id=record.dictionary_id,
            dictionary_name=record.dictionary_name,
            word=word,
            content=None,
            chain=[word],
        )
        try:
            resolution = await resolver.resolve(word, record.definition)
        except RedirectCycleError as e:
            log.info("redirect_cycle", dictionary_id=record.dictionary_id, chain=e.chain)
            return entry.model_copy(update={"chain": e.chain, "status": "cycle_detected"})
        except RedirectDepthExceededError as e:
            log.info("redirect_depth_exceeded", dictionary_id=record.dictionary_id, chain=e.chain)
            return entry.model_copy(update={"chain": e.chain, "status": "depth_exceeded"})

        return entry.model_copy(
            update={
                "word": resolution.word,
                "content": resolution.content,
                "chain": resolution.chain,
            }
        )
