"""Error taxonomy shared by the controller and the worker.

Every error that can cross the worker boundary is a ``DictBridgeError`` with a
stable ``ErrorCode``. The worker serializes it with ``to_payload()``; the broker
rebuilds the matching subclass with ``error_from_payload()``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    INVALID_INPUT = "INVALID_INPUT"
    PROTOCOL_ERROR = "PROTOCOL_ERROR"
    UNKNOWN_OPERATION = "UNKNOWN_OPERATION"
    DISCOVERY_PATH_FAILED = "DISCOVERY_PATH_FAILED"
    LOAD_INSTANCE_FAILED = "LOAD_INSTANCE_FAILED"
    REQUEST_TIMEOUT = "REQUEST_TIMEOUT"
    WORKER_FAILURE = "WORKER_FAILURE"
    REDIRECT_DEPTH_EXCEEDED = "REDIRECT_DEPTH_EXCEEDED"
    REDIRECT_CYCLE = "REDIRECT_CYCLE"
    TRANSCODING_FAILED = "TRANSCODING_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class DictBridgeError(Exception):
    """Base error. ``recoverable`` tells the UI whether a retry can help."""

    default_code = ErrorCode.INTERNAL_ERROR
    default_recoverable = False

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        recoverable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code if code is not None else self.default_code
        self.recoverable = recoverable if recoverable is not None else self.default_recoverable

    def to_payload(self) -> dict[str, Any]:
        return {"code": str(self.code), "message": self.message, "recoverable": self.recoverable}


class InvalidInputError(DictBridgeError):
    default_code = ErrorCode.INVALID_INPUT


class ProtocolError(DictBridgeError):
    default_code = ErrorCode.PROTOCOL_ERROR


class UnknownOperationError(DictBridgeError):
    default_code = ErrorCode.UNKNOWN_OPERATION


class DiscoveryPathError(DictBridgeError):
    """One scan directory could not be read. Discovery continues without it."""

    default_code = ErrorCode.DISCOVERY_PATH_FAILED
    default_recoverable = True

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


class LoadInstanceError(DictBridgeError):
    """One dictionary or auxiliary archive failed to open."""

    default_code = ErrorCode.LOAD_INSTANCE_FAILED
    default_recoverable = True

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


class RequestTimeoutError(DictBridgeError):
    default_code = ErrorCode.REQUEST_TIMEOUT
    default_recoverable = True


class WorkerFailureError(DictBridgeError):
    """The worker process died. Every pending request is rejected with this."""

    default_code = ErrorCode.WORKER_FAILURE
    default_recoverable = True


class RedirectError(DictBridgeError):
    def __init__(self, message: str, chain: list[str]) -> None:
        super().__init__(f"{message}: {' -> '.join(chain)}")
        self.chain = chain


class RedirectDepthExceededError(RedirectError):
    default_code = ErrorCode.REDIRECT_DEPTH_EXCEEDED


class RedirectCycleError(RedirectError):
    default_code = ErrorCode.REDIRECT_CYCLE


class TranscodingError(DictBridgeError):
    """Transcoding failed for one resource. Other requests are unaffected."""

    default_code = ErrorCode.TRANSCODING_FAILED


_ERROR_CLASSES: dict[ErrorCode, type[DictBridgeError]] = {
    ErrorCode.INVALID_INPUT: InvalidInputError,
    ErrorCode.PROTOCOL_ERROR: ProtocolError,
    ErrorCode.UNKNOWN_OPERATION: UnknownOperationError,
    ErrorCode.REQUEST_TIMEOUT: RequestTimeoutError,
    ErrorCode.WORKER_FAILURE: WorkerFailureError,
    ErrorCode.TRANSCODING_FAILED: TranscodingError,
}


def error_from_payload(payload: Any) -> DictBridgeError:
    """Rebuild an error sent by the worker. Malformed payloads become INTERNAL_ERROR."""
    if not isinstance(payload, dict):
        return DictBridgeError(f"Malformed worker error: {payload!r}")

    message = str(payload.get("message") or "Unknown worker error")
    recoverable = bool(payload.get("recoverable", False))
    try:
        code = ErrorCode(payload.get("code"))
    except ValueError:
        code = ErrorCode.INTERNAL_ERROR

    # Errors whose constructors need structured context (paths, chains) are
    # rebuilt as the base class; the code still identifies them.
    cls = _ERROR_CLASSES.get(code)
    if cls is None:
        return DictBridgeError(message, code=code, recoverable=recoverable)
    return cls(message, recoverable=recoverable)
