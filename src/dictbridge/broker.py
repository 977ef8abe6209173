"""Correlated request/response channel to the worker.

The worker only understands fire-and-forget lines. ``RequestBroker`` turns
that into awaitable calls: each ``send`` gets a correlation id, a future and a
deadline timer, all kept in one table. Every exit path (reply, timeout, worker
failure, caller cancellation) removes the table entry exactly once, so a
request can never settle twice and a late reply is simply an unknown id.
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass
from typing import Any, Protocol

import structlog

from dictbridge.errors import RequestTimeoutError, WorkerFailureError, error_from_payload
from dictbridge.protocol import RequestEnvelope, ResponseEnvelope, encode

log = structlog.get_logger()


class Transport(Protocol):
    def write(self, data: bytes) -> None:
        """Queue one encoded envelope line for the worker. May raise OSError."""
        ...


@dataclass
class PendingRequest:
    id: int
    operation: str
    future: asyncio.Future[Any]
    timer: asyncio.TimerHandle


class RequestBroker:
    def __init__(self, transport: Transport) -> None:
        self._transport = transport
        self._pending: dict[int, PendingRequest] = {}
        self._ids = itertools.count(1)
        self._failure: WorkerFailureError | None = None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def closed(self) -> bool:
        return self._failure is not None

    def _next_id(self) -> int:
        request_id = next(self._ids)
        while request_id in self._pending:
            request_id = next(self._ids)
        return request_id

    async def send(self, operation: str, payload: dict[str, Any], timeout: float) -> Any:
        """Send one request and wait for its reply.

        Raises:
            RequestTimeoutError: no reply within ``timeout`` seconds.
            WorkerFailureError: the worker died before or while the request was pending.
            DictBridgeError: the worker reported an error for this request.
        """
        if self._failure is not None:
            raise WorkerFailureError(f"Worker unavailable: {self._failure.message}")

        loop = asyncio.get_running_loop()
        request_id = self._next_id()
        future: asyncio.Future[Any] = loop.create_future()
        timer = loop.call_later(timeout, self._expire, request_id, timeout)
        self._pending[request_id] = PendingRequest(request_id, operation, future, timer)

        try:
            self._transport.write(
                encode(RequestEnvelope(id=request_id, op=operation, payload=payload))
            )
        except OSError as e:
            self._settle(request_id)
            raise WorkerFailureError(f"Could not write to worker: {e}") from e

        try:
            return await future
        finally:
            # No-op when the entry was already settled; covers caller cancellation.
            self._settle(request_id)

    def handle_reply(self, envelope: ResponseEnvelope) -> None:
        pending = self._settle(envelope.id)
        if pending is None:
            log.warning("unknown_reply_id", request_id=envelope.id)
            return
        if pending.future.done():
            return

        if envelope.error is not None:
            pending.future.set_exception(error_from_payload(envelope.error))
        else:
            pending.future.set_result(envelope.result)

    def fail_all(self, error: WorkerFailureError) -> None:
        """Reject every pending request and refuse new ones."""
        self._failure = error
        pending, self._pending = self._pending, {}
        for entry in pending.values():
            entry.timer.cancel()
            if not entry.future.done():
                entry.future.set_exception(error)
        if pending:
            log.error("pending_requests_failed", count=len(pending), reason=error.message)

    def _settle(self, request_id: int) -> PendingRequest | None:
        pending = self._pending.pop(request_id, None)
        if pending is not None:
            pending.timer.cancel()
        return pending

    def _expire(self, request_id: int, timeout: float) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is None or pending.future.done():
            return
        log.warning(
            "request_timeout", request_id=request_id, operation=pending.operation, timeout=timeout
        )
        pending.future.set_exception(
            RequestTimeoutError(f"Request timed out after {timeout}s: {pending.operation}")
        )
