# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""Runtime record data.

A :class:`RecordInstance` carries only the name of its record type; the
schema itself is looked up in a registry whenever it is needed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# ###############
# Public Interface
# ###############


@dataclass(frozen=True)
class Choice:
    """The populated alternative of a choice field.

    Attributes:
        type_code: The chosen type, e.g. ``Reference`` for
            ``medicationReference``.
        value: The value of that type.
    """

    type_code: str
    value: Any


@dataclass(eq=False)
class RecordInstance:
    """Instance data for one record type.

    Values are keyed by the field's internal name. A value is a scalar, a
    nested :class:`RecordInstance`, a :class:`Choice` for choice fields, or a
    list of these for repeating fields. Use :func:`fhirmodel.model.equality.equal`
    for structural comparison.

    Attributes:
        type_name: Qualified name of the record type.
        values: Field values keyed by internal name.
        extra: Unrecognised wire content preserved for open record types,
            keyed by wire name.
        primitive_elements: Id and extensions of primitive values, as
            ``Element`` instances keyed by internal name. A repeating field
            maps to a list aligned with its values, with None where a value
            carries nothing. A single field may have an entry and no value.
    """

    type_name: str
    values: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)
    primitive_elements: dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        """Return the value for *name*, or *default* when absent."""
        value = self.values.get(name)
        return default if value is None else value

    def set(self, name: str, value: Any) -> None:
        """Set the value for *name*; ``None`` removes it."""
        if value is None:
            self.values.pop(name, None)
        else:
            self.values[name] = value

    def set_choice(self, name: str, type_code: str, value: Any) -> None:
        """Populate a choice field, replacing any previously chosen alternative."""
        self.values[name] = Choice(type_code=type_code, value=value)

    def primitive_element(self, name: str, position: int = 0) -> RecordInstance | None:
        """Return the ``Element`` attached to the value of *name* at *position*, if any."""
        element = self.primitive_elements.get(name)
        if isinstance(element, list):
            return element[position] if position < len(element) else None
        return element if position == 0 else None

    def __getitem__(self, name: str) -> Any:
        return self.values[name]

    def __setitem__(self, name: str, value: Any) -> None:
        self.set(name, value)

    def __contains__(self, name: object) -> bool:
        return self.values.get(name) is not None  # type: ignore[call-overload]


def occurrences(value: Any) -> list[Any]:
    """Return a value as a list of occurrences (empty when absent)."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]
