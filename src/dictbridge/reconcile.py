"""Merge freshly discovered bundles with the user's saved decisions."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from dictbridge.models import (
    DictionaryConfig,
    DictionaryGroup,
    DictionaryLoadConfig,
    ResourceKind,
)


def reconcile_config(group: DictionaryGroup, existing: DictionaryConfig | None) -> DictionaryConfig:
    """Keep prior choices for resources still present; new resources start enabled."""
    if existing is None:
        return DictionaryConfig(
            enabled=True,
            enabled_resources={r.path: True for r in group.resources},
        )

    return DictionaryConfig(
        enabled=existing.enabled,
        custom_name=existing.custom_name,
        enabled_resources={
            r.path: existing.enabled_resources.get(r.path, True) for r in group.resources
        },
    )


def reconcile(
    groups: Iterable[DictionaryGroup], existing: Mapping[str, DictionaryConfig]
) -> dict[str, DictionaryConfig]:
    """Configs for every discovered group, keyed by group id, in discovery order."""
    return {group.id: reconcile_config(group, existing.get(group.id)) for group in groups}


def display_name(group: DictionaryGroup, config: DictionaryConfig) -> str:
    return config.custom_name or group.name


def build_load_configs(
    groups: Iterable[DictionaryGroup], configs: Mapping[str, DictionaryConfig]
) -> list[DictionaryLoadConfig]:
    """Load configs for enabled groups, with only their enabled archives."""
    load_configs: list[DictionaryLoadConfig] = []
    for group in groups:
        config = configs.get(group.id)
        if config is None or not config.enabled:
            continue
        load_configs.append(
            DictionaryLoadConfig(
                id=group.id,
                name=display_name(group, config),
                mdx_path=group.mdx_path,
                enabled_archive_paths=[
                    r.path
                    for r in group.resources_of(ResourceKind.ARCHIVE)
                    if config.is_resource_enabled(r.path)
                ],
            )
        )
    return load_configs


def enabled_asset_paths(
    groups: Iterable[DictionaryGroup], configs: Mapping[str, DictionaryConfig]
) -> list[str]:
    """Stylesheet and script paths the UI should inject for enabled dictionaries."""
    paths: list[str] = []
    for group in groups:
        config = configs.get(group.id)
        if config is None or not config.enabled:
            continue
        paths.extend(
            r.path
            for r in group.resources
            if r.kind != ResourceKind.ARCHIVE and config.is_resource_enabled(r.path)
        )
    return paths
