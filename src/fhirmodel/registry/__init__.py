# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""Schema registry, YAML schema loading, and the bundled default definitions."""

from __future__ import annotations

import threading

from fhirmodel.registry.loader import (
    DEFINITIONS_DIR,
    build_registry,
    load_schema_directory,
    load_schema_file,
    load_schema_text,
)
from fhirmodel.registry.registry import SchemaRegistry

__all__ = [
    "DEFINITIONS_DIR",
    "SchemaRegistry",
    "build_registry",
    "default_registry",
    "load_schema_directory",
    "load_schema_file",
    "load_schema_text",
]

_default: SchemaRegistry | None = None
_default_lock = threading.Lock()


def default_registry() -> SchemaRegistry:
    """Return the frozen registry of bundled definitions, loading it on first use."""
    global _default
    if _default is None:
        with _default_lock:
            if _default is None:
                _default = build_registry()
    return _default
