# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""Defaults for the registry and settings arguments shared by the public entry points."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fhirmodel.settings.options import DEFAULT_SETTINGS, Settings

if TYPE_CHECKING:
    from fhirmodel.registry.registry import SchemaRegistry


def resolve_context(
    registry: SchemaRegistry | None,
    settings: Settings | None,
) -> tuple[SchemaRegistry, Settings]:
    """Fill in the default registry and settings where the caller gave none."""
    if registry is None:
        from fhirmodel.registry import default_registry

        registry = default_registry()
    return registry, settings if settings is not None else DEFAULT_SETTINGS
