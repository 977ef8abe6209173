"""Find dictionary bundles in scan directories.

A bundle is one ``.mdx`` file plus every sibling whose stem starts with the
mdx stem and whose suffix is ``.mdd``, ``.css`` or ``.js``. For
``Duden.mdx`` that picks up ``Duden.mdd``, ``Duden.1.mdd`` and ``Duden.css``.
"""

from __future__ import annotations

import os
from pathlib import Path
from urllib.parse import quote

import structlog

from dictbridge.errors import DiscoveryPathError
from dictbridge.models import (
    DictionaryGroup,
    DictionaryResource,
    DiscoveryResult,
    PathFailure,
    ResourceKind,
)

log = structlog.get_logger()

PRIMARY_SUFFIX = ".mdx"

RESOURCE_SUFFIXES: dict[str, ResourceKind] = {
    ".mdd": ResourceKind.ARCHIVE,
    ".css": ResourceKind.STYLESHEET,
    ".js": ResourceKind.SCRIPT,
}


def group_id_for(mdx_path: str | Path) -> str:
    """Stable id for a bundle: the percent-encoded absolute path. Saved configs are keyed by it."""
    return quote(str(mdx_path), safe="")


def _absolute(path: str) -> Path:
    # abspath, not resolve(): following symlinks would change ids when a link moves
    return Path(os.path.abspath(os.path.expanduser(path)))


def _list_files(directory: Path) -> list[str]:
    with os.scandir(directory) as it:
        return sorted(entry.name for entry in it if entry.is_file())


def build_group(mdx_path: Path, sibling_names: list[str]) -> DictionaryGroup:
    stem = mdx_path.stem
    resources: list[DictionaryResource] = []
    for name in sibling_names:
        candidate = Path(name)
        kind = RESOURCE_SUFFIXES.get(candidate.suffix.lower())
        if kind is None or not candidate.stem.startswith(stem):
            continue
        resources.append(
            DictionaryResource(path=str(mdx_path.parent / name), name=name, kind=kind)
        )

    return DictionaryGroup(
        id=group_id_for(mdx_path),
        name=stem,
        mdx_path=str(mdx_path),
        resources=resources,
    )


def discover(scan_paths: list[str]) -> DiscoveryResult:
    """Scan each directory once. Unreadable directories become failures, not errors."""
    groups: list[DictionaryGroup] = []
    failures: list[PathFailure] = []
    seen: set[str] = set()

    for raw_path in scan_paths:
        directory = _absolute(raw_path)
        try:
            names = _list_files(directory)
        except OSError as e:
            error = DiscoveryPathError(str(directory), e.strerror or str(e))
            log.warning("discovery_path_failed", path=error.path, error=error.message)
            failures.append(PathFailure(path=error.path, message=error.message))
            continue

        for name in names:
            if not name.lower().endswith(PRIMARY_SUFFIX):
                continue
            group = build_group(directory / name, names)
            if group.id in seen:
                # The same directory listed twice in the scan paths
                continue
            seen.add(group.id)
            groups.append(group)

    log.info("discovery_complete", groups=len(groups), failures=len(failures))
    return DiscoveryResult(groups=groups, failures=failures)
