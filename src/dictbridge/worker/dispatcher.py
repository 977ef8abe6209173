"""Worker-side request handling: one envelope line in, one envelope line out.

The dispatcher owns the worker's only mutable state, the current
``Registry``. Discovery and Load run under exclusive access; every other
registry-reading operation runs under shared access.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ValidationError
from pydantic_core import to_jsonable_python

from dictbridge.errors import (
    DictBridgeError,
    InvalidInputError,
    ProtocolError,
    UnknownOperationError,
)
from dictbridge.models import DiscoveryResult, LoadReport, LookupRecord, ResourceResult
from dictbridge.models.operations import (
    AssociateInput,
    DiscoverInput,
    FuzzySearchInput,
    GetAssetsInput,
    GetResourceInput,
    LoadInput,
    LookupInDictInput,
    LookupInput,
    LookupResolvedInput,
    PrefixInput,
    SuggestInput,
)
from dictbridge.protocol import (
    PROTOCOL_VERSION,
    Operation,
    RequestEnvelope,
    ResponseEnvelope,
    encode,
)
from dictbridge.readers.base import ReaderBackend
from dictbridge.transcode import Transcoder
from dictbridge.worker.aggregator import QueryAggregator
from dictbridge.worker.discovery import discover
from dictbridge.worker.registry import AccessGate, Registry, build_registry
from dictbridge.worker.resources import ResourceResolver

log = structlog.get_logger()

Handler = Callable[[Any], Awaitable[Any]]


def _read_asset(path: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        log.warning("asset_read_failed", path=path, error=str(e))
        return f"/* Error reading file: {Path(path).name} */"


class Dispatcher:
    """Routes envelopes to handlers and owns the current ``Registry``.

    Resource resolution takes shared access only long enough to read the
    current registry, then resolves against that snapshot outside the gate. A
    Load may therefore swap registries while a slow transcode is still running;
    the transcode finishes against the dictionaries it started with. Registries
    are never mutated after they are built, so the snapshot stays consistent.
    """

    def __init__(self, backend: ReaderBackend, transcoder: Transcoder) -> None:
        self._backend = backend
        self._resources = ResourceResolver(transcoder)
        self._registry = Registry()
        self._gate = AccessGate()
        self._handlers: dict[Operation, tuple[type[BaseModel], Handler]] = {
            Operation.DISCOVER: (DiscoverInput, self._discover),
            Operation.LOAD: (LoadInput, self._load),
            Operation.GET_ASSETS: (GetAssetsInput, self._get_assets),
            Operation.LOOKUP: (LookupInput, self._lookup),
            Operation.LOOKUP_IN_DICT: (LookupInDictInput, self._lookup_in_dict),
            Operation.LOOKUP_RESOLVED: (LookupResolvedInput, self._lookup_resolved),
            Operation.GET_RESOURCE: (GetResourceInput, self._get_resource),
            Operation.PREFIX: (PrefixInput, self._prefix),
            Operation.ASSOCIATE: (AssociateInput, self._associate),
            Operation.SUGGEST: (SuggestInput, self._suggest),
            Operation.FUZZY_SEARCH: (FuzzySearchInput, self._fuzzy_search),
        }

    @property
    def registry(self) -> Registry:
        return self._registry

    # ------------------------------------------------------------------
    # Envelope handling
    # ------------------------------------------------------------------

    async def handle_line(self, line: bytes) -> bytes | None:
        """Process one request line. Returns the reply line, or None if no id was readable."""
        try:
            envelope = RequestEnvelope.model_validate_json(line)
        except ValidationError as e:
            log.warning("malformed_request", error=str(e))
            request_id = _salvage_id(line)
            if request_id is None:
                return None
            response = ResponseEnvelope(
                id=request_id, error=ProtocolError("Malformed request envelope").to_payload()
            )
        else:
            response = await self.handle(envelope)
        return encode(response)

    async def handle(self, envelope: RequestEnvelope) -> ResponseEnvelope:
        try:
            if envelope.v != PROTOCOL_VERSION:
                raise ProtocolError(f"Unsupported protocol version {envelope.v}")
            result = await self.dispatch(envelope.op, envelope.payload)
        except DictBridgeError as e:
            log.info("request_failed", request_id=envelope.id, op=envelope.op, code=str(e.code))
            return ResponseEnvelope(id=envelope.id, error=e.to_payload())
        except Exception as e:
            log.error("request_crashed", request_id=envelope.id, op=envelope.op, exc_info=True)
            return ResponseEnvelope(id=envelope.id, error=DictBridgeError(str(e)).to_payload())
        return ResponseEnvelope(id=envelope.id, result=to_jsonable_python(result))

    async def dispatch(self, op: str, payload: dict[str, Any]) -> Any:
        try:
            operation = Operation(op)
        except ValueError:
            raise UnknownOperationError(f"Unknown operation: {op!r}") from None

        input_model, handler = self._handlers[operation]
        try:
            params = input_model.model_validate(payload)
        except ValidationError as e:
            raise InvalidInputError(_validation_message(e)) from e
        return await handler(params)

    # ------------------------------------------------------------------
    # Exclusive operations
    # ------------------------------------------------------------------

    async def _discover(self, params: DiscoverInput) -> DiscoveryResult:
        async with self._gate.exclusive():
            return await asyncio.to_thread(discover, params.scan_paths)

    async def _load(self, params: LoadInput) -> LoadReport:
        async with self._gate.exclusive():
            registry, report = await build_registry(self._backend, params.configs)
            self._registry = registry
            return report

    # ------------------------------------------------------------------
    # Shared operations
    # ------------------------------------------------------------------

    async def _get_assets(self, params: GetAssetsInput) -> dict[str, str]:
        contents = await asyncio.gather(
            *(asyncio.to_thread(_read_asset, path) for path in params.asset_paths)
        )
        return dict(zip(params.asset_paths, contents, strict=True))

    async def _lookup(self, params: LookupInput) -> list[LookupRecord]:
        async with self._gate.shared():
            return await QueryAggregator(self._registry).lookup(params.word)

    async def _lookup_in_dict(self, params: LookupInDictInput) -> LookupRecord | None:
        async with self._gate.shared():
            return await QueryAggregator(self._registry).lookup_in_dict(
                params.word, params.dictionary_id
            )

    async def _lookup_resolved(self, params: LookupResolvedInput) -> Any:
        async with self._gate.shared():
            return await QueryAggregator(self._registry).lookup_resolved(
                params.word, params.max_depth
            )

    async def _get_resource(self, params: GetResourceInput) -> ResourceResult | None:
        async with self._gate.shared():
            registry = self._registry
        # Snapshot only: a slow transcode must not hold up a reload
        return await self._resources.resolve(registry, params.key, params.dictionary_id)

    async def _prefix(self, params: PrefixInput) -> list[str]:
        async with self._gate.shared():
            return await QueryAggregator(self._registry).prefix(params.prefix, params.max_results)

    async def _associate(self, params: AssociateInput) -> Any:
        async with self._gate.shared():
            return await QueryAggregator(self._registry).associate(
                params.phrase, params.max_results
            )

    async def _suggest(self, params: SuggestInput) -> Any:
        async with self._gate.shared():
            return await QueryAggregator(self._registry).suggest(
                params.phrase, params.distance, params.max_results
            )

    async def _fuzzy_search(self, params: FuzzySearchInput) -> Any:
        async with self._gate.shared():
            return await QueryAggregator(self._registry).fuzzy_search(
                params.word, params.fuzzy_size, params.ed_gap
            )


def _validation_message(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"])
        message = item["msg"].removeprefix("Value error, ")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)


def _salvage_id(line: bytes) -> int | None:
    try:
        data = json.loads(line)
    except ValueError:
        return None
    if isinstance(data, dict) and type(data.get("id")) is int:
        return data["id"]
    return None
