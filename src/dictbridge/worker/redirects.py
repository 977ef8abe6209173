"""Follow ``@@@LINK=`` redirect entries to their final content.

An MDict entry whose content is ``@@@LINK=Haus`` is an alias: the real
definition lives under the headword ``Haus``. Chains are followed inside one
dictionary, bounded by ``max_depth`` and by cycle detection.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from dictbridge.errors import RedirectCycleError, RedirectDepthExceededError

REDIRECT_MARKER = "@@@LINK="
MAX_REDIRECT_DEPTH = 5

_UNSET = object()


def redirect_target(content: str | None) -> str | None:
    """Return the headword a redirect points to, or None for ordinary content."""
    if not content or not content.startswith(REDIRECT_MARKER):
        return None
    target = content[len(REDIRECT_MARKER) :].strip()
    # Anchors ("Haus#plural") only matter to the renderer
    return target.split("#", 1)[0].strip()


@dataclass(frozen=True)
class Resolution:
    word: str  # headword whose content was final
    content: str | None
    chain: list[str]


class RedirectResolver:
    def __init__(
        self,
        fetch: Callable[[str], Awaitable[str | None]],
        max_depth: int = MAX_REDIRECT_DEPTH,
    ) -> None:
        self._fetch = fetch
        self._max_depth = max_depth

    async def resolve(self, word: str, initial_content: str | None | object = _UNSET) -> Resolution:
        """Follow redirects starting at ``word``.

        ``initial_content`` is the already-fetched content of ``word``; when it
        is omitted, ``word`` is fetched first.

        Raises:
            RedirectDepthExceededError: more than ``max_depth`` redirects.
            RedirectCycleError: a redirect points back to a visited headword.
        """
        history: list[str] = []
        depth = 0
        current = word
        if initial_content is _UNSET:
            content = await self._fetch(current)
        else:
            content = initial_content  # type: ignore[assignment]

        while True:
            target = redirect_target(content)
            if target is None:
                return Resolution(word=current, content=content, chain=[*history, current])

            visited = [*history, current]
            if depth + 1 > self._max_depth:
                raise RedirectDepthExceededError(
                    f"Redirect depth {self._max_depth} exceeded", [*visited, target]
                )
            if target in visited:
                raise RedirectCycleError("Redirect loop detected", [*visited, target])

            history = visited
            depth += 1
            current = target
            content = await self._fetch(current)
