# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""Structural equality and hashing of record instances.

Comparison is driven by the record type's field list, looked up by name in a
registry. Ordered repeating fields compare element-wise; fields declared with
``ordered: false`` compare as multisets. A single value on a field is
equivalent to a one-element sequence.
"""

from __future__ import annotations

import copy
import xml.etree.ElementTree as ET
from collections import Counter
from enum import Enum
from typing import TYPE_CHECKING, Any

from fhirmodel.model.instance import Choice, RecordInstance, occurrences
from fhirmodel.model.types import FieldDescriptor, RecordType

if TYPE_CHECKING:
    from fhirmodel.registry.registry import SchemaRegistry
    from fhirmodel.settings import Settings

# ###############
# Public Interface
# ###############


class EmptyPolicy(Enum):
    """How an absent field compares to an empty sequence.

    ``OPTIONAL_EQUIVALENT`` (the default) treats them as equal when the
    field's minimum cardinality is zero. ``DISTINCT`` keeps them apart.
    """

    DISTINCT = "distinct"
    OPTIONAL_EQUIVALENT = "optional-equivalent"


def equal(
    a: RecordInstance,
    b: RecordInstance,
    registry: SchemaRegistry | None = None,
    *,
    empty_policy: EmptyPolicy | None = None,
    settings: Settings | None = None,
) -> bool:
    """Return True if two instances are structurally equal.

    The empty policy is taken from *empty_policy* if given, else from
    ``settings.empty_policy``, else ``OPTIONAL_EQUIVALENT``.

    Raises:
        UnknownTypeError: If the instances' type is not registered.
    """
    policy = _resolve_policy(empty_policy, settings)
    return _Comparer(_resolve_registry(registry), policy).instances_equal(a, b)


def record_hash(
    instance: RecordInstance,
    registry: SchemaRegistry | None = None,
    *,
    empty_policy: EmptyPolicy | None = None,
    settings: Settings | None = None,
) -> int:
    """Return a hash consistent with :func:`equal` under the same policy."""
    policy = _resolve_policy(empty_policy, settings)
    return _Comparer(_resolve_registry(registry), policy).instance_hash(instance)


# ################
# Implementation
# ################

_ABSENT = object()


def _resolve_policy(empty_policy: EmptyPolicy | None, settings: Settings | None) -> EmptyPolicy:
    if empty_policy is not None:
        return empty_policy
    if settings is not None:
        return settings.empty_policy
    return EmptyPolicy.OPTIONAL_EQUIVALENT


def _resolve_registry(registry: SchemaRegistry | None) -> SchemaRegistry:
    if registry is not None:
        return registry
    from fhirmodel.registry import default_registry

    return default_registry()


class _Comparer:
    def __init__(self, registry: SchemaRegistry, empty_policy: EmptyPolicy) -> None:
        self._registry = registry
        self._policy = empty_policy

    def instances_equal(self, a: RecordInstance, b: RecordInstance) -> bool:
        if a is b:
            return True
        if a.type_name != b.type_name:
            return False
        record_type = self._registry.lookup(a.type_name)
        for f in record_type.fields:
            if not self._field_equal(f, a, b):
                return False
        if _undeclared(a, record_type) != _undeclared(b, record_type):
            return False
        return _normalize_extra(a.extra) == _normalize_extra(b.extra)

    def instance_hash(self, instance: RecordInstance) -> int:
        record_type = self._registry.lookup(instance.type_name)
        parts: list[Any] = [instance.type_name]
        for f in record_type.fields:
            parts.append(self._field_hash(f, instance))
        return hash(tuple(parts))

    def _normalize(self, f: FieldDescriptor, value: Any) -> Any:
        """Return _ABSENT or the list of occurrences."""
        if value is None:
            return _ABSENT
        items = occurrences(value)
        if not items and self._policy is EmptyPolicy.OPTIONAL_EQUIVALENT and f.min_occurs == 0:
            return _ABSENT
        return items

    def _field_equal(self, f: FieldDescriptor, a: RecordInstance, b: RecordInstance) -> bool:
        name = f.internal_name
        left = self._normalize(f, a.values.get(name))
        right = self._normalize(f, b.values.get(name))
        if left is _ABSENT or right is _ABSENT:
            return left is right and self._element_equal(a.primitive_element(name), b.primitive_element(name))
        if len(left) != len(right):
            return False
        left = list(zip(left, _elements(a, name, len(left))))
        right = list(zip(right, _elements(b, name, len(right))))
        if f.ordered:
            return all(self._pair_equal(x, y) for x, y in zip(left, right))
        # Multiset comparison: every left element pairs off with a distinct right element.
        remaining = list(right)
        for x in left:
            for index, y in enumerate(remaining):
                if self._pair_equal(x, y):
                    del remaining[index]
                    break
            else:
                return False
        return True

    def _field_hash(self, f: FieldDescriptor, instance: RecordInstance) -> int:
        name = f.internal_name
        items = self._normalize(f, instance.values.get(name))
        if items is _ABSENT:
            return hash(("<absent>", self._element_hash(instance.primitive_element(name))))
        elements = _elements(instance, name, len(items))
        hashes = [hash((self._value_hash(item), self._element_hash(e))) for item, e in zip(items, elements)]
        if f.ordered:
            return hash(tuple(hashes))
        return hash(frozenset(Counter(hashes).items()))

    def _pair_equal(self, x: tuple[Any, Any], y: tuple[Any, Any]) -> bool:
        return self._value_equal(x[0], y[0]) and self._element_equal(x[1], y[1])

    def _element_equal(self, x: RecordInstance | None, y: RecordInstance | None) -> bool:
        if x is None or y is None:
            return x is y
        return self.instances_equal(x, y)

    def _element_hash(self, element: RecordInstance | None) -> int:
        return hash(None) if element is None else self.instance_hash(element)

    def _value_equal(self, x: Any, y: Any) -> bool:
        if isinstance(x, Choice) or isinstance(y, Choice):
            if not (isinstance(x, Choice) and isinstance(y, Choice)):
                return False
            return x.type_code == y.type_code and self._value_equal(x.value, y.value)
        if isinstance(x, RecordInstance) or isinstance(y, RecordInstance):
            if not (isinstance(x, RecordInstance) and isinstance(y, RecordInstance)):
                return False
            return self.instances_equal(x, y)
        # bool compares equal to 0/1 in Python; keep them apart.
        if isinstance(x, bool) != isinstance(y, bool):
            return False
        return bool(x == y)

    def _value_hash(self, value: Any) -> int:
        if isinstance(value, Choice):
            return hash((value.type_code, self._value_hash(value.value)))
        if isinstance(value, RecordInstance):
            return self.instance_hash(value)
        if isinstance(value, list):
            return hash(tuple(self._value_hash(v) for v in value))
        try:
            return hash(value)
        except TypeError:
            return hash(repr(value))


def _elements(instance: RecordInstance, name: str, count: int) -> list[RecordInstance | None]:
    return [instance.primitive_element(name, position) for position in range(count)]


def _undeclared(instance: RecordInstance, record_type: RecordType) -> dict[str, Any]:
    declared = {f.internal_name for f in record_type.fields}
    return {k: v for k, v in instance.values.items() if k not in declared and v is not None}


def _normalize_extra(extra: dict[str, Any]) -> dict[str, Any]:
    """Make preserved XML elements comparable by their serialized form."""
    normalized: dict[str, Any] = {}
    for key, value in extra.items():
        if isinstance(value, list):
            normalized[key] = [_element_text(v) for v in value]
        else:
            normalized[key] = _element_text(value)
    return normalized


def _element_text(value: Any) -> Any:
    if not isinstance(value, ET.Element):
        return value
    # Indentation differs between documents; only non-blank text counts.
    element = copy.deepcopy(value)
    for node in element.iter():
        if node.text is not None and not node.text.strip():
            node.text = None
        node.tail = None
    return ET.tostring(element, encoding="unicode")
