"""Wire envelopes exchanged between the controller and the worker.

One JSON object per line in each direction:

    request:  {"v": 1, "id": 7, "op": "lookup", "payload": {"word": "Haus"}}
    response: {"v": 1, "id": 7, "result": [...]}
              {"v": 1, "id": 7, "error": {"code": "...", "message": "...", "recoverable": false}}
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, model_validator

PROTOCOL_VERSION = 1


class Operation(StrEnum):
    DISCOVER = "discover"
    LOAD = "load"
    GET_ASSETS = "get_assets"
    LOOKUP = "lookup"
    LOOKUP_IN_DICT = "lookup_in_dict"
    LOOKUP_RESOLVED = "lookup_resolved"
    GET_RESOURCE = "get_resource"
    PREFIX = "prefix"
    ASSOCIATE = "associate"
    SUGGEST = "suggest"
    FUZZY_SEARCH = "fuzzy_search"


class RequestEnvelope(BaseModel):
    v: int = PROTOCOL_VERSION
    id: int
    op: str  # validated against Operation by the dispatcher, so unknown ops get a reply
    payload: dict[str, Any] = {}


class ResponseEnvelope(BaseModel):
    v: int = PROTOCOL_VERSION
    id: int
    result: Any = None
    error: dict[str, Any] | None = None

    @model_validator(mode="after")
    def check_version(self) -> ResponseEnvelope:
        if self.v != PROTOCOL_VERSION:
            raise ValueError(f"unsupported protocol version {self.v}")
        return self


def encode(envelope: BaseModel) -> bytes:
    return envelope.model_dump_json().encode("utf-8") + b"\n"
