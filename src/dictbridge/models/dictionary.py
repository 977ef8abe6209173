from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, field_validator


class ResourceKind(StrEnum):
    ARCHIVE = "archive"  # .mdd
    STYLESHEET = "stylesheet"  # .css
    SCRIPT = "script"  # .js


class DictionaryResource(BaseModel):
    """A file discovered next to a primary .mdx file."""

    path: str  # Absolute path
    name: str  # File name, for display
    kind: ResourceKind


class DictionaryGroup(BaseModel):
    """A discovered dictionary bundle: one .mdx file plus its resources."""

    id: str  # quote(mdx_path), stable across rescans
    name: str  # .mdx stem
    mdx_path: str
    resources: list[DictionaryResource] = []

    def resources_of(self, kind: ResourceKind) -> list[DictionaryResource]:
        return [r for r in self.resources if r.kind == kind]


class DictionaryConfig(BaseModel):
    """The user's enable/disable decisions for one group."""

    enabled: bool = True
    # resource path -> enabled; paths missing from the map count as enabled
    enabled_resources: dict[str, bool] = {}
    custom_name: str | None = None

    def is_resource_enabled(self, path: str) -> bool:
        return self.enabled_resources.get(path, True)


class DictionaryLoadConfig(BaseModel):
    """What the worker needs to open one dictionary."""

    id: str
    name: str
    mdx_path: str
    enabled_archive_paths: list[str] = []

    @field_validator("id", "mdx_path")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v
