"""MDict backend built on the ``readmdict`` parser.

``readmdict`` decodes the proprietary key/record blocks; this module only turns
its ``(key, record)`` byte pairs into a ``HeadwordIndex`` (for .mdx files) or an
``MdictArchive`` (for .mdd files).

Archives can hold gigabytes of audio, so their payloads are streamed once into
an anonymous temporary file while loading. Memory holds only the key index;
``locate`` reads one payload back from disk.
"""

from __future__ import annotations

import base64
import tempfile
import threading
from collections.abc import Iterable

import structlog
from readmdict import MDD, MDX

from dictbridge.readers.base import LocatedResource
from dictbridge.readers.index import HeadwordIndex

log = structlog.get_logger()


def _text(raw: bytes) -> str:
    # readmdict re-encodes keys and records as UTF-8; records keep a trailing NUL
    return raw.decode("utf-8", errors="replace").rstrip("\x00").strip()


class MdictArchive:
    """Key -> payload store backed by a temporary spool file.

    Built from ``(key, data)`` pairs; the first payload for a duplicate key wins.
    ``locate`` is safe to call from several reader threads at once. The spool
    file is deleted when the archive is garbage collected.
    """

    def __init__(self, resources: Iterable[tuple[str, bytes]]) -> None:
        self._spool = tempfile.TemporaryFile()
        self._lock = threading.Lock()
        self._index: dict[str, tuple[int, int]] = {}
        self._folded: dict[str, str] = {}

        offset = 0
        for key, data in resources:
            if key in self._index:
                continue
            self._spool.write(data)
            self._index[key] = (offset, len(data))
            self._folded.setdefault(key.casefold(), key)
            offset += len(data)
        self._spool.flush()

    def __len__(self) -> int:
        return len(self._index)

    def _read(self, key: str) -> bytes:
        offset, length = self._index[key]
        with self._lock:
            self._spool.seek(offset)
            return self._spool.read(length)

    def locate(self, key: str) -> LocatedResource | None:
        original = key if key in self._index else self._folded.get(key.casefold())
        if original is None:
            return None
        return LocatedResource(
            headword=original,
            payload=base64.b64encode(self._read(original)).decode("ascii"),
        )


class MdictBackend:
    def open_dictionary(self, path: str) -> HeadwordIndex:
        mdx = MDX(path)
        index = HeadwordIndex((_text(key), _text(record)) for key, record in mdx.items())
        log.debug("mdx_opened", path=path, headwords=len(index))
        return index

    def open_archive(self, path: str) -> MdictArchive:
        # items() decodes one record block at a time; payloads go straight to the spool
        mdd = MDD(path)
        archive = MdictArchive((_text(key), data) for key, data in mdd.items())
        log.debug("mdd_opened", path=path, resources=len(archive))
        return archive
