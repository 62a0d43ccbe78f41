# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""Flat, qualified-name keyed table of record types.

The registry is populated on a single thread and then frozen. After
:meth:`SchemaRegistry.freeze` the table is an immutable mapping, so
concurrent lookups need no locking.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType

from fhirmodel.errors import DuplicateTypeError, RegistryFrozenError, UnknownTypeError
from fhirmodel.model.types import RecordKind, RecordType

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############


class SchemaRegistry:
    """Mapping from record type name to its schema.

    Nested types are registered alongside their parent under their qualified
    name (``Parent::Child``), so every type, nested or not, is found by a
    single lookup.
    """

    def __init__(self, types: Iterable[RecordType] = ()) -> None:
        self._types: dict[str, RecordType] = {}
        self._frozen: Mapping[str, RecordType] | None = None
        for record_type in types:
            self.register(record_type)

    def register(self, record_type: RecordType) -> None:
        """Add a record type and all of its nested types.

        Raises:
            DuplicateTypeError: If any of the names is already registered.
            RegistryFrozenError: If the registry has been frozen.
        """
        if self._frozen is not None:
            raise RegistryFrozenError(f"Cannot register '{record_type.name}': registry is frozen")
        pending = list(_flatten(record_type))
        for entry in pending:
            if entry.name in self._types:
                raise DuplicateTypeError(entry.name)
        seen: set[str] = set()
        for entry in pending:
            if entry.name in seen:
                raise DuplicateTypeError(entry.name)
            seen.add(entry.name)
        for entry in pending:
            self._types[entry.name] = entry
            logger.debug("Registered record type %s (%d fields)", entry.name, len(entry.fields))

    def lookup(self, name: str) -> RecordType:
        """Return the record type registered under *name*.

        Raises:
            UnknownTypeError: If no such type exists.
        """
        try:
            return self._table[name]
        except KeyError:
            raise UnknownTypeError(name) from None

    def freeze(self) -> None:
        """Publish the table as a read-only snapshot. Further registration fails."""
        if self._frozen is None:
            self._frozen = MappingProxyType(dict(self._types))
            logger.debug("Froze schema registry with %d record types", len(self._frozen))

    @property
    def is_frozen(self) -> bool:
        return self._frozen is not None

    @property
    def _table(self) -> Mapping[str, RecordType]:
        return self._types if self._frozen is None else self._frozen

    def names(self) -> list[str]:
        """Return all registered names in registration order."""
        return list(self._table)

    def resources(self) -> list[RecordType]:
        """Return the registered resource types."""
        return [t for t in self._table.values() if t.kind is RecordKind.RESOURCE]

    def is_resource(self, name: str) -> bool:
        """Return True if *name* is a registered resource type."""
        record_type = self._table.get(name)
        return record_type is not None and record_type.kind is RecordKind.RESOURCE

    def __contains__(self, name: object) -> bool:
        return name in self._table

    def __len__(self) -> int:
        return len(self._table)

    def __iter__(self) -> Iterator[RecordType]:
        return iter(list(self._table.values()))


# ################
# Implementation
# ################


def _flatten(record_type: RecordType) -> Iterator[RecordType]:
    """Yield a type followed by all of its nested types, depth first."""
    yield record_type
    for nested in record_type.nested_types:
        yield from _flatten(nested)
