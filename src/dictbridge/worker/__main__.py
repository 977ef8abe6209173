"""Worker process entry point: ``python -m dictbridge.worker``.

Reads request envelopes from stdin, one JSON object per line, and writes reply
envelopes to stdout. Each request runs as its own task so a slow transcode
never delays other replies. Exits when stdin closes.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from typing import BinaryIO

import structlog

from dictbridge.config import LoggingSettings
from dictbridge.logging_config import configure_logging
from dictbridge.readers.base import load_backend
from dictbridge.transcode import FfmpegTranscoder
from dictbridge.worker.dispatcher import Dispatcher

log = structlog.get_logger()


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="dictbridge.worker")
    parser.add_argument("--reader-backend", default="dictbridge.readers.mdict:MdictBackend")
    parser.add_argument("--ffmpeg-path", default="ffmpeg")
    parser.add_argument("--transcode-timeout", type=float, default=15.0)
    parser.add_argument("--stream-limit", type=int, default=64 * 1024 * 1024)
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-format", default="json")
    return parser.parse_args(argv)


async def _open_stdin(limit: int) -> asyncio.StreamReader:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=limit)
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    return reader


def claim_stdout() -> BinaryIO:
    """Reserve the original stdout for reply envelopes.

    Returns a private handle on the original fd 1, then points fd 1 and
    ``sys.stdout`` at stderr. Anything else that prints, such as a
    parser library or a C extension, lands in the log stream instead of the wire.
    """
    sys.stdout.flush()
    protocol_fd = os.dup(sys.stdout.fileno())
    os.dup2(sys.stderr.fileno(), sys.stdout.fileno())
    sys.stdout = sys.stderr
    return os.fdopen(protocol_fd, "wb")


async def serve(dispatcher: Dispatcher, stream_limit: int, stdout: BinaryIO) -> None:
    stdin = await _open_stdin(stream_limit)
    write_lock = asyncio.Lock()
    tasks: set[asyncio.Task[None]] = set()

    async def respond(line: bytes) -> None:
        reply = await dispatcher.handle_line(line)
        if reply is None:
            return
        async with write_lock:
            stdout.write(reply)
            stdout.flush()

    while True:
        line = await stdin.readline()
        if not line:
            break
        if not line.strip():
            continue
        task = asyncio.create_task(respond(line))
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    if tasks:
        await asyncio.gather(*tasks)
    log.info("worker_stdin_closed")


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    protocol_out = claim_stdout()
    configure_logging(
        LoggingSettings(level=args.log_level, format=args.log_format), process="worker"
    )
    backend = load_backend(args.reader_backend)
    transcoder = FfmpegTranscoder(args.ffmpeg_path, timeout=args.transcode_timeout)
    log.info("worker_ready", reader_backend=args.reader_backend)
    asyncio.run(serve(Dispatcher(backend, transcoder), args.stream_limit, protocol_out))


if __name__ == "__main__":
    main()
