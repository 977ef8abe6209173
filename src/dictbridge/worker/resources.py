"""Resolve resources embedded in dictionary entries (images, css, audio).

Entries reference resources as ``sound://audio/haus.spx`` or ``img/logo.png``;
archives index them as ``\\audio\\haus.spx``. Speex audio is transcoded to WAV
before it is returned; everything else passes through untouched.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import posixpath

import structlog

from dictbridge.errors import TranscodingError
from dictbridge.models import ResourceResult
from dictbridge.readers.base import LocatedResource
from dictbridge.transcode import TRANSCODED_MIME_TYPE, Transcoder
from dictbridge.worker.registry import LoadedDictionary, Registry

log = structlog.get_logger()

_SCHEME_PREFIXES = ("entry://", "sound://")

TRANSCODE_EXTENSIONS = frozenset({".spx"})

MIME_TYPES: dict[str, str] = {
    ".css": "text/css",
    ".js": "application/javascript",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
    ".spx": "audio/ogg",
    ".ogg": "audio/ogg",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ttf": "font/ttf",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
}

DEFAULT_MIME_TYPE = "application/octet-stream"


def normalize_resource_key(key: str) -> str:
    for prefix in _SCHEME_PREFIXES:
        if key.startswith(prefix):
            key = key[len(prefix) :]
            break
    return "\\" + key.replace("/", "\\").lstrip("\\")


def _extension(name: str) -> str:
    return posixpath.splitext(name.replace("\\", "/"))[1].lower()


def mime_type_for(name: str) -> str:
    return MIME_TYPES.get(_extension(name), DEFAULT_MIME_TYPE)


class ResourceResolver:
    def __init__(self, transcoder: Transcoder) -> None:
        self._transcoder = transcoder

    async def resolve(
        self, registry: Registry, key: str, dictionary_id: str
    ) -> ResourceResult | None:
        """Return the resource, or None when it does not exist.

        Raises:
            TranscodingError: the resource exists but could not be transcoded.
        """
        instance = registry.get(dictionary_id)
        if instance is None:
            log.warning("resource_dictionary_missing", dictionary_id=dictionary_id, key=key)
            return None

        resource_key = normalize_resource_key(key)
        located = await self._locate(instance, resource_key)
        if located is None:
            log.info("resource_not_found", dictionary_id=dictionary_id, key=resource_key)
            return None

        if _extension(located.headword) in TRANSCODE_EXTENSIONS:
            return await self._transcode(located)
        return ResourceResult(data=located.payload, mime_type=mime_type_for(located.headword))

    async def _locate(
        self, instance: LoadedDictionary, resource_key: str
    ) -> LocatedResource | None:
        for position, archive in enumerate(instance.archives):
            try:
                located = await asyncio.to_thread(archive.locate, resource_key)
            except Exception:
                log.warning(
                    "archive_locate_failed",
                    dictionary_id=instance.id,
                    archive=position,
                    key=resource_key,
                    exc_info=True,
                )
                continue
            if located is not None and located.payload:
                return located
        return None

    async def _transcode(self, located: LocatedResource) -> ResourceResult:
        log.info("resource_transcoding", key=located.headword)
        try:
            audio = base64.b64decode(located.payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise TranscodingError(f"Corrupt payload for {located.headword}: {e}") from e

        try:
            converted = await self._transcoder.convert(audio)
        except TranscodingError:
            log.error("resource_transcoding_failed", key=located.headword, exc_info=True)
            raise
        except Exception as e:
            log.error("resource_transcoding_failed", key=located.headword, exc_info=True)
            raise TranscodingError(f"Transcoding failed for {located.headword}: {e}") from e

        return ResourceResult(
            data=base64.b64encode(converted).decode("ascii"),
            mime_type=TRANSCODED_MIME_TYPE,
        )
