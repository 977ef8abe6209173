"""Unit tests for dictbridge.transcode.

A shell script stands in for the ffmpeg binary so the tests do not depend on a
real ffmpeg install.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from dictbridge.errors import ErrorCode, TranscodingError
from dictbridge.transcode import FfmpegTranscoder

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses a /bin/sh script")


def _script(tmp_path: Path, body: str) -> str:
    path = tmp_path / "fake-ffmpeg"
    path.write_text(f"#!/bin/sh\n{body}\n", encoding="utf-8")
    path.chmod(0o755)
    return str(path)


class TestFfmpegTranscoder:
    async def test_empty_payload(self) -> None:
        with pytest.raises(TranscodingError, match="Empty audio payload"):
            await FfmpegTranscoder().convert(b"")

    async def test_missing_binary(self, tmp_path: Path) -> None:
        transcoder = FfmpegTranscoder(str(tmp_path / "no-such-ffmpeg"))
        with pytest.raises(TranscodingError, match="Could not run") as exc_info:
            await transcoder.convert(b"speex")
        assert exc_info.value.code == ErrorCode.TRANSCODING_FAILED

    @posix_only
    async def test_output_is_returned(self, tmp_path: Path) -> None:
        ffmpeg = _script(tmp_path, "printf 'RIFF'\ncat")
        assert await FfmpegTranscoder(ffmpeg).convert(b"speex") == b"RIFFspeex"

    @posix_only
    async def test_nonzero_exit(self, tmp_path: Path) -> None:
        ffmpeg = _script(tmp_path, "cat > /dev/null\necho 'Invalid data found' >&2\nexit 1")
        with pytest.raises(TranscodingError, match="Invalid data found"):
            await FfmpegTranscoder(ffmpeg).convert(b"speex")

    @posix_only
    async def test_empty_output(self, tmp_path: Path) -> None:
        ffmpeg = _script(tmp_path, "cat > /dev/null")
        with pytest.raises(TranscodingError, match="exited with code 0"):
            await FfmpegTranscoder(ffmpeg).convert(b"speex")

    @posix_only
    async def test_timeout(self, tmp_path: Path) -> None:
        ffmpeg = _script(tmp_path, "exec sleep 10")
        with pytest.raises(TranscodingError, match="timed out"):
            await FfmpegTranscoder(ffmpeg, timeout=0.2).convert(b"speex")
