"""Payload schemas for each wire operation, validated on the worker side."""

from __future__ import annotations

from pydantic import BaseModel, field_validator

from dictbridge.models.dictionary import DictionaryLoadConfig


def _strip_word(v: str) -> str:
    v = v.strip()
    if len(v) > 500:
        raise ValueError("query must not exceed 500 characters")
    return v


class DiscoverInput(BaseModel):
    scan_paths: list[str]


class LoadInput(BaseModel):
    configs: list[DictionaryLoadConfig]


class GetAssetsInput(BaseModel):
    asset_paths: list[str]


class LookupInput(BaseModel):
    word: str

    @field_validator("word")
    @classmethod
    def validate_word(cls, v: str) -> str:
        return _strip_word(v)


class LookupInDictInput(LookupInput):
    dictionary_id: str


class LookupResolvedInput(LookupInput):
    max_depth: int = 5

    @field_validator("max_depth")
    @classmethod
    def validate_max_depth(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_depth must be >= 0")
        return v


class GetResourceInput(BaseModel):
    key: str
    dictionary_id: str

    @field_validator("key", "dictionary_id")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("get_resource requires both 'key' and 'dictionary_id'")
        return v


class PrefixInput(BaseModel):
    prefix: str
    max_results: int = 10

    @field_validator("max_results")
    @classmethod
    def validate_max_results(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_results must be >= 1")
        return v


class AssociateInput(BaseModel):
    phrase: str
    max_results: int = 10

    @field_validator("max_results")
    @classmethod
    def validate_max_results(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_results must be >= 1")
        return v


class SuggestInput(BaseModel):
    phrase: str
    distance: int = 2
    max_results: int = 10

    @field_validator("distance")
    @classmethod
    def validate_distance(cls, v: int) -> int:
        if v < 0:
            raise ValueError("distance must be >= 0")
        return v

    @field_validator("max_results")
    @classmethod
    def validate_max_results(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_results must be >= 1")
        return v


class FuzzySearchInput(BaseModel):
    word: str
    fuzzy_size: int = 10
    ed_gap: int = 2

    @field_validator("fuzzy_size")
    @classmethod
    def validate_fuzzy_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("fuzzy_size must be >= 1")
        return v

    @field_validator("ed_gap")
    @classmethod
    def validate_ed_gap(cls, v: int) -> int:
        if v < 0:
            raise ValueError("ed_gap must be >= 0")
        return v
