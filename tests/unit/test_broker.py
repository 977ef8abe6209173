"""Unit tests for dictbridge.broker."""

from __future__ import annotations

import asyncio
import json
import random

import pytest

from dictbridge.broker import RequestBroker
from dictbridge.errors import (
    DictBridgeError,
    ErrorCode,
    InvalidInputError,
    RequestTimeoutError,
    TranscodingError,
    WorkerFailureError,
    error_from_payload,
)
from dictbridge.protocol import ResponseEnvelope


class RecordingTransport:
    def __init__(self) -> None:
        self.requests: list[dict] = []
        self.broken = False

    def write(self, data: bytes) -> None:
        if self.broken:
            raise BrokenPipeError("worker stdin is closed")
        assert data.endswith(b"\n")
        self.requests.append(json.loads(data))


@pytest.fixture()
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture()
def broker(transport: RecordingTransport) -> RequestBroker:
    return RequestBroker(transport)


async def _sent(transport: RecordingTransport, count: int) -> None:
    """Yield to the loop until ``count`` requests were written."""
    for _ in range(100):
        if len(transport.requests) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"expected {count} requests, got {len(transport.requests)}")


# ---------------------------------------------------------------------------
# Envelopes and correlation
# ---------------------------------------------------------------------------


class TestSend:
    async def test_request_envelope_shape(
        self, broker: RequestBroker, transport: RecordingTransport
    ) -> None:
        task = asyncio.create_task(broker.send("lookup", {"word": "Haus"}, timeout=1))
        await _sent(transport, 1)

        request = transport.requests[0]
        assert request == {"v": 1, "id": request["id"], "op": "lookup", "payload": {"word": "Haus"}}

        broker.handle_reply(ResponseEnvelope(id=request["id"], result=["ok"]))
        assert await task == ["ok"]
        assert broker.pending_count == 0

    async def test_ids_are_unique(
        self, broker: RequestBroker, transport: RecordingTransport
    ) -> None:
        tasks = [asyncio.create_task(broker.send("lookup", {}, timeout=1)) for _ in range(20)]
        await _sent(transport, 20)

        ids = [r["id"] for r in transport.requests]
        assert len(set(ids)) == 20
        for request_id in ids:
            broker.handle_reply(ResponseEnvelope(id=request_id, result=None))
        await asyncio.gather(*tasks)

    async def test_replies_in_any_order_reach_their_callers(
        self, broker: RequestBroker, transport: RecordingTransport
    ) -> None:
        tasks = {
            n: asyncio.create_task(broker.send("lookup", {"word": f"w{n}"}, timeout=1))
            for n in range(50)
        }
        await _sent(transport, 50)

        shuffled = list(transport.requests)
        random.Random(42).shuffle(shuffled)
        for request in shuffled:
            broker.handle_reply(
                ResponseEnvelope(id=request["id"], result=request["payload"]["word"])
            )

        for n, task in tasks.items():
            assert await task == f"w{n}"
        assert broker.pending_count == 0

    async def test_error_reply_raises_matching_error(
        self, broker: RequestBroker, transport: RecordingTransport
    ) -> None:
        task = asyncio.create_task(broker.send("get_resource", {}, timeout=1))
        await _sent(transport, 1)
        broker.handle_reply(
            ResponseEnvelope(
                id=transport.requests[0]["id"],
                error=TranscodingError("ffmpeg exited with code 1").to_payload(),
            )
        )

        with pytest.raises(TranscodingError) as exc_info:
            await task
        assert exc_info.value.code == ErrorCode.TRANSCODING_FAILED
        assert exc_info.value.message == "ffmpeg exited with code 1"

    async def test_unknown_error_code_becomes_internal_error(
        self, broker: RequestBroker, transport: RecordingTransport
    ) -> None:
        task = asyncio.create_task(broker.send("lookup", {}, timeout=1))
        await _sent(transport, 1)
        broker.handle_reply(
            ResponseEnvelope(
                id=transport.requests[0]["id"],
                error={"code": "SOMETHING_NEW", "message": "boom", "recoverable": False},
            )
        )

        with pytest.raises(DictBridgeError) as exc_info:
            await task
        assert exc_info.value.code == ErrorCode.INTERNAL_ERROR

    async def test_unknown_reply_id_is_dropped(
        self, broker: RequestBroker, transport: RecordingTransport
    ) -> None:
        task = asyncio.create_task(broker.send("lookup", {}, timeout=1))
        await _sent(transport, 1)

        broker.handle_reply(ResponseEnvelope(id=999_999, result="stray"))
        assert broker.pending_count == 1

        broker.handle_reply(ResponseEnvelope(id=transport.requests[0]["id"], result="mine"))
        assert await task == "mine"

    def test_next_id_skips_pending_ids(self, broker: RequestBroker) -> None:
        broker._pending[1] = object()  # type: ignore[assignment]
        broker._pending[2] = object()  # type: ignore[assignment]
        assert broker._next_id() == 3


# ---------------------------------------------------------------------------
# Timeouts
# ---------------------------------------------------------------------------


class TestTimeout:
    async def test_no_reply_times_out(
        self, broker: RequestBroker, transport: RecordingTransport
    ) -> None:
        with pytest.raises(RequestTimeoutError) as exc_info:
            await broker.send("lookup", {}, timeout=0.05)
        assert exc_info.value.recoverable is True
        assert "lookup" in exc_info.value.message
        assert broker.pending_count == 0

    async def test_late_reply_after_timeout_is_ignored(
        self, broker: RequestBroker, transport: RecordingTransport
    ) -> None:
        with pytest.raises(RequestTimeoutError):
            await broker.send("lookup", {}, timeout=0.05)

        # Must not raise InvalidStateError or resurrect the request
        broker.handle_reply(ResponseEnvelope(id=transport.requests[0]["id"], result="late"))
        assert broker.pending_count == 0

    async def test_timeout_does_not_affect_other_requests(
        self, broker: RequestBroker, transport: RecordingTransport
    ) -> None:
        slow = asyncio.create_task(broker.send("lookup", {}, timeout=0.05))
        fast = asyncio.create_task(broker.send("prefix", {}, timeout=5))
        await _sent(transport, 2)

        with pytest.raises(RequestTimeoutError):
            await slow
        prefix_id = next(r["id"] for r in transport.requests if r["op"] == "prefix")
        broker.handle_reply(ResponseEnvelope(id=prefix_id, result=["a"]))
        assert await fast == ["a"]


# ---------------------------------------------------------------------------
# Worker failure
# ---------------------------------------------------------------------------


class TestWorkerFailure:
    async def test_fail_all_rejects_every_pending_request(
        self, broker: RequestBroker, transport: RecordingTransport
    ) -> None:
        tasks = [asyncio.create_task(broker.send("lookup", {}, timeout=5)) for _ in range(3)]
        await _sent(transport, 3)

        broker.fail_all(WorkerFailureError("Worker stopped with exit code -9"))

        results = await asyncio.gather(*tasks, return_exceptions=True)
        assert all(isinstance(r, WorkerFailureError) for r in results)
        assert broker.pending_count == 0
        assert broker.closed

    async def test_send_after_failure_raises_immediately(
        self, broker: RequestBroker, transport: RecordingTransport
    ) -> None:
        broker.fail_all(WorkerFailureError("Worker exited"))

        with pytest.raises(WorkerFailureError, match="Worker exited"):
            await broker.send("lookup", {}, timeout=5)
        assert transport.requests == []

    async def test_broken_pipe_raises_worker_failure(
        self, broker: RequestBroker, transport: RecordingTransport
    ) -> None:
        transport.broken = True
        with pytest.raises(WorkerFailureError):
            await broker.send("lookup", {}, timeout=5)
        assert broker.pending_count == 0


class TestCancellation:
    async def test_cancelled_caller_removes_entry(
        self, broker: RequestBroker, transport: RecordingTransport
    ) -> None:
        task = asyncio.create_task(broker.send("lookup", {}, timeout=5))
        await _sent(transport, 1)
        assert broker.pending_count == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert broker.pending_count == 0


class TestErrorPayloads:
    def test_round_trip_keeps_recoverable_flag(self) -> None:
        error = error_from_payload(InvalidInputError("word: too long").to_payload())
        assert isinstance(error, InvalidInputError)
        assert error.recoverable is False

    def test_malformed_payload(self) -> None:
        error = error_from_payload("not a dict")
        assert error.code == ErrorCode.INTERNAL_ERROR

    def test_missing_resource_is_not_an_error_code(self) -> None:
        assert "RESOURCE_NOT_FOUND" not in {code.value for code in ErrorCode}
        error = error_from_payload({"code": "RESOURCE_NOT_FOUND", "message": "gone"})
        assert type(error) is DictBridgeError
        assert error.code == ErrorCode.INTERNAL_ERROR
