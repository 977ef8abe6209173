"""Audio transcoding through the ffmpeg executable.

Speex audio stored in dictionary archives cannot be played by browsers or most
UI toolkits; it is piped through ffmpeg and returned as WAV. One buffer in,
one buffer out, no streaming.
"""

from __future__ import annotations

import asyncio
from typing import Protocol

import structlog

from dictbridge.errors import TranscodingError

log = structlog.get_logger()

TRANSCODED_MIME_TYPE = "audio/wav"


class Transcoder(Protocol):
    async def convert(self, data: bytes) -> bytes:
        """Return playable audio. Raises ``TranscodingError`` on invalid input."""
        ...


class FfmpegTranscoder:
    def __init__(self, ffmpeg_path: str = "ffmpeg", timeout: float = 15.0) -> None:
        self._ffmpeg_path = ffmpeg_path
        self._timeout = timeout

    def _command(self) -> list[str]:
        return [
            self._ffmpeg_path,
            "-hide_banner",
            "-loglevel",
            "error",
            "-i",
            "pipe:0",
            "-f",
            "wav",
            "pipe:1",
        ]

    async def convert(self, data: bytes) -> bytes:
        if not data:
            raise TranscodingError("Empty audio payload")

        try:
            proc = await asyncio.create_subprocess_exec(
                *self._command(),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TranscodingError(f"Could not run {self._ffmpeg_path}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(data), self._timeout)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            raise TranscodingError(f"ffmpeg timed out after {self._timeout}s") from None

        if proc.returncode != 0 or not stdout:
            detail = stderr.decode("utf-8", errors="replace").strip()[-500:]
            log.debug("ffmpeg_failed", returncode=proc.returncode, stderr=detail)
            raise TranscodingError(f"ffmpeg exited with code {proc.returncode}: {detail}")

        return stdout
