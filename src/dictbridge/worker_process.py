"""Child-process transport for the broker.

Runs ``python -m dictbridge.worker`` with stdin/stdout pipes. Requests go to
the child's stdin, replies are read from its stdout by a background task. When
stdout closes (crash, kill, clean exit) every pending request is rejected with
``WorkerFailureError``; a new ``WorkerProcess`` is needed after that.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from dictbridge.broker import RequestBroker
from dictbridge.errors import WorkerFailureError
from dictbridge.protocol import ResponseEnvelope

if TYPE_CHECKING:
    from dictbridge.config import Settings

log = structlog.get_logger()


class _StdinTransport:
    def __init__(self, writer: asyncio.StreamWriter) -> None:
        self._writer = writer

    def write(self, data: bytes) -> None:
        if self._writer.is_closing():
            raise BrokenPipeError("worker stdin is closed")
        self._writer.write(data)


def build_worker_command(settings: Settings) -> list[str]:
    return [
        settings.worker.python_executable,
        "-m",
        "dictbridge.worker",
        "--reader-backend",
        settings.worker.reader_backend,
        "--ffmpeg-path",
        settings.transcoder.ffmpeg_path,
        "--transcode-timeout",
        str(settings.transcoder.timeout_seconds),
        "--stream-limit",
        str(settings.worker.stream_limit_bytes),
        "--log-level",
        settings.logging.level,
        "--log-format",
        settings.logging.format,
    ]


class WorkerProcess:
    def __init__(self, settings: Settings, env: dict[str, str] | None = None) -> None:
        self._settings = settings
        self._env = env
        self._process: asyncio.subprocess.Process | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._broker: RequestBroker | None = None

    @property
    def process(self) -> asyncio.subprocess.Process | None:
        return self._process

    @property
    def broker(self) -> RequestBroker:
        if self._broker is None:
            raise WorkerFailureError("Worker not started")
        return self._broker

    async def start(self) -> RequestBroker:
        if self._broker is not None:
            return self._broker

        command = build_worker_command(self._settings)
        try:
            self._process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                # stderr inherited: the worker's structured logs stay visible
                limit=self._settings.worker.stream_limit_bytes,
                env=self._env,
            )
        except OSError as e:
            raise WorkerFailureError(f"Could not start worker: {e}") from e

        assert self._process.stdin is not None
        self._broker = RequestBroker(_StdinTransport(self._process.stdin))
        self._reader_task = asyncio.create_task(self._read_replies())
        log.info("worker_started", pid=self._process.pid)
        return self._broker

    async def stop(self) -> None:
        """Close stdin, wait for the worker to exit, kill it if it does not."""
        process = self._process
        if process is None:
            return
        if process.returncode is None:
            assert process.stdin is not None
            process.stdin.close()
            try:
                await asyncio.wait_for(process.wait(), self._settings.timeouts.shutdown_seconds)
            except TimeoutError:
                log.warning("worker_kill", pid=process.pid)
                process.kill()
                await process.wait()
        if self._reader_task is not None:
            await self._reader_task
        log.info("worker_stopped", pid=process.pid, returncode=process.returncode)

    async def _read_replies(self) -> None:
        assert self._process is not None and self._process.stdout is not None
        assert self._broker is not None
        stdout = self._process.stdout

        while True:
            try:
                line = await stdout.readline()
            except ValueError:
                # Line longer than the stream limit; the stream cannot be resynchronised.
                log.error("worker_reply_too_large", limit=self._settings.worker.stream_limit_bytes)
                self._process.kill()
                break
            if not line:
                break
            try:
                envelope = ResponseEnvelope.model_validate_json(line)
            except ValidationError:
                log.warning("malformed_worker_reply", line=line[:200].decode("utf-8", "replace"))
                continue
            self._broker.handle_reply(envelope)

        returncode = await self._process.wait()
        if returncode == 0:
            reason = "Worker exited"
        else:
            reason = f"Worker stopped with exit code {returncode}"
            log.error("worker_exited", returncode=returncode)
        self._broker.fail_all(WorkerFailureError(reason))
