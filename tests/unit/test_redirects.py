"""Unit tests for dictbridge.worker.redirects."""

from __future__ import annotations

import pytest

from dictbridge.errors import ErrorCode, RedirectCycleError, RedirectDepthExceededError
from dictbridge.worker.redirects import (
    MAX_REDIRECT_DEPTH,
    RedirectResolver,
    redirect_target,
)


def _resolver(entries: dict[str, str], max_depth: int = MAX_REDIRECT_DEPTH) -> RedirectResolver:
    async def fetch(word: str) -> str | None:
        return entries.get(word)

    return RedirectResolver(fetch, max_depth=max_depth)


def _chain(length: int) -> dict[str, str]:
    """w0 -> w1 -> ... -> w{length}, where w{length} holds the definition."""
    entries = {f"w{n}": f"@@@LINK=w{n + 1}" for n in range(length)}
    entries[f"w{length}"] = "final"
    return entries


class TestRedirectTarget:
    def test_plain_content(self) -> None:
        assert redirect_target("<p>house</p>") is None

    def test_marker(self) -> None:
        assert redirect_target("@@@LINK=Haus") == "Haus"

    def test_whitespace_and_anchor_are_dropped(self) -> None:
        assert redirect_target("@@@LINK=Haus#plural\r\n") == "Haus"

    def test_empty(self) -> None:
        assert redirect_target(None) is None
        assert redirect_target("") is None


class TestResolve:
    async def test_direct_entry(self) -> None:
        resolution = await _resolver({"A": "content"}).resolve("A")
        assert resolution.word == "A"
        assert resolution.content == "content"
        assert resolution.chain == ["A"]

    async def test_chain_of_three(self) -> None:
        entries = {"A": "@@@LINK=B", "B": "@@@LINK=C", "C": "C content"}
        resolution = await _resolver(entries).resolve("A")
        assert resolution.word == "C"
        assert resolution.content == "C content"
        assert resolution.chain == ["A", "B", "C"]

    async def test_initial_content_skips_first_fetch(self) -> None:
        fetched: list[str] = []

        async def fetch(word: str) -> str | None:
            fetched.append(word)
            return {"B": "B content"}.get(word)

        resolution = await RedirectResolver(fetch).resolve("A", "@@@LINK=B")
        assert resolution.content == "B content"
        assert fetched == ["B"]

    async def test_dangling_target_resolves_to_none(self) -> None:
        resolution = await _resolver({"A": "@@@LINK=missing"}).resolve("A")
        assert resolution.word == "missing"
        assert resolution.content is None
        assert resolution.chain == ["A", "missing"]

    async def test_exactly_max_depth_is_allowed(self) -> None:
        resolution = await _resolver(_chain(MAX_REDIRECT_DEPTH)).resolve("w0")
        assert resolution.content == "final"
        assert len(resolution.chain) == MAX_REDIRECT_DEPTH + 1


class TestResolveFailures:
    async def test_cycle(self) -> None:
        entries = {"A": "@@@LINK=B", "B": "@@@LINK=A"}
        with pytest.raises(RedirectCycleError) as exc_info:
            await _resolver(entries).resolve("A")
        assert exc_info.value.chain == ["A", "B", "A"]
        assert exc_info.value.code == ErrorCode.REDIRECT_CYCLE
        assert "A -> B -> A" in exc_info.value.message

    async def test_self_redirect(self) -> None:
        with pytest.raises(RedirectCycleError) as exc_info:
            await _resolver({"A": "@@@LINK=A"}).resolve("A")
        assert exc_info.value.chain == ["A", "A"]

    async def test_depth_exceeded(self) -> None:
        with pytest.raises(RedirectDepthExceededError) as exc_info:
            await _resolver(_chain(MAX_REDIRECT_DEPTH + 1)).resolve("w0")
        assert exc_info.value.code == ErrorCode.REDIRECT_DEPTH_EXCEEDED
        assert len(exc_info.value.chain) == MAX_REDIRECT_DEPTH + 2

    async def test_zero_depth_refuses_any_redirect(self) -> None:
        with pytest.raises(RedirectDepthExceededError):
            await _resolver({"A": "@@@LINK=B", "B": "b"}, max_depth=0).resolve("A")
