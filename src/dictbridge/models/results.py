from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

from dictbridge.models.dictionary import DictionaryGroup


class PathFailure(BaseModel):
    """A scan directory that could not be read during discovery."""

    path: str
    message: str


class DiscoveryResult(BaseModel):
    groups: list[DictionaryGroup]
    failures: list[PathFailure] = []


class LoadFailure(BaseModel):
    dictionary_id: str
    path: str
    message: str


class LoadReport(BaseModel):
    loaded: list[str]  # dictionary ids, in load order
    failures: list[LoadFailure] = []


class LookupRecord(BaseModel):
    """One dictionary's definition for a word."""

    dictionary_id: str
    dictionary_name: str
    headword: str
    definition: str


class KeywordItem(BaseModel):
    headword: str
    dictionary_id: str


class FuzzyWord(BaseModel):
    headword: str
    edit_distance: int
    dictionary_id: str


class ResourceResult(BaseModel):
    data: str  # base64
    mime_type: str


class ResolvedEntry(BaseModel):
    """A lookup record after following redirects inside its dictionary."""

    dictionary_id: str
    dictionary_name: str
    word: str  # the word that produced the final content
    content: str | None  # None or "" renders as "not found"
    chain: list[str]  # every headword visited, in order
    status: Literal["resolved", "cycle_detected", "depth_exceeded"] = "resolved"
