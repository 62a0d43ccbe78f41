# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""Exception hierarchy shared by the schema, codec, and settings layers.

Schema problems (unknown or duplicate types, malformed schema files) are
always raised. Document problems (type mismatches, unknown fields) are
collected as issues during deserialization and only raised in strict mode.
"""

from __future__ import annotations

# ###############
# Public Interface
# ###############


class FhirModelError(Exception):
    """Base class for all errors raised by fhirmodel."""


class SchemaError(FhirModelError):
    """Raised when a schema definition is broken or inconsistent."""


class UnknownTypeError(SchemaError, LookupError):
    """Raised when a record type name is not present in the registry."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown record type '{name}'")
        self.name = name


class DuplicateTypeError(SchemaError):
    """Raised when a record type name is registered twice."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Record type '{name}' is already registered")
        self.name = name


class RegistryFrozenError(SchemaError):
    """Raised when registering into a registry that has been frozen."""


class SchemaLoadError(SchemaError):
    """Raised when a schema table cannot be read or does not describe a valid schema."""


class DocumentError(FhirModelError):
    """A data-shape problem found in an input document.

    Instances are collected as issues during deserialization rather than
    raised, unless the caller opts into strict mode.

    Attributes:
        path: Location of the offending node in the document, e.g.
            ``Account.coverage[0].priority``.
        message: Human-readable description of the problem.
    """

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.path == other.path and self.message == other.message

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.path, self.message))


class TypeMismatchError(DocumentError):
    """A document node does not fit the declared type of its field."""


class UnknownFieldError(DocumentError):
    """A document node does not match any field of its record type."""


class SettingsError(FhirModelError):
    """Raised when a settings file is invalid or cannot be loaded."""
