# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""Key/value document codec.

Records map to dicts keyed by wire name, in the declared field order.
Repeating fields are written as lists. Resources carry their type name
under the reserved ``resourceType`` key (configurable through
:class:`~fhirmodel.settings.Settings`). The resulting trees are JSON-ready
apart from decimals, which stay :class:`decimal.Decimal` until
:func:`dumps` writes their exact text.

The id and extensions of a primitive value travel in a companion entry named
after the field with a leading underscore::

    {"status": "free", "_status": {"extension": [{"url": "http://example.org/note", "valueString": "held"}]}}

For repeating fields the companion is a list aligned with the values, with
``null`` where a value carries nothing.
"""

from __future__ import annotations

import copy
import logging
import xml.etree.ElementTree as ET
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import simplejson

from fhirmodel.codec.common import (
    DeserializationResult,
    IssueCollector,
    attach_elements,
    composite_target,
    elements_of,
    scalar_value,
)
from fhirmodel.errors import DocumentError, TypeMismatchError, UnknownFieldError
from fhirmodel.model.instance import Choice, RecordInstance, occurrences
from fhirmodel.model.primitives import lookup_primitive
from fhirmodel.model.types import (
    ANY_RESOURCE,
    ELEMENT,
    FieldDescriptor,
    RecordKind,
    RecordType,
    TypeChoice,
    item_path,
)
from fhirmodel.registry.registry import SchemaRegistry
from fhirmodel.settings import Settings, resolve_context

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############


def serialize(
    instance: RecordInstance,
    record_type: RecordType | None = None,
    registry: SchemaRegistry | None = None,
    settings: Settings | None = None,
) -> dict[str, Any]:
    """Convert a record instance to a key/value document.

    Args:
        instance: The record to write.
        record_type: Its schema; looked up from ``instance.type_name`` if omitted.
        registry: Registry for nested types; the bundled one if omitted.
        settings: Codec settings; the defaults if omitted.

    Raises:
        UnknownTypeError: If a record type is not registered.
        TypeMismatchError: If a value does not fit its declared type.
    """
    registry, settings = resolve_context(registry, settings)
    if record_type is None:
        record_type = registry.lookup(instance.type_name)
    return _Writer(registry, settings).record(instance, record_type, record_type.name)


def deserialize(
    doc: Any,
    type_name: str | None = None,
    registry: SchemaRegistry | None = None,
    settings: Settings | None = None,
    *,
    strict: bool | None = None,
) -> DeserializationResult:
    """Read a record instance from a key/value document.

    Args:
        doc: The document root, a mapping.
        type_name: Expected record type. If omitted, the document's
            ``resourceType`` entry names it.
        registry: Registry of record types; the bundled one if omitted.
        settings: Codec settings; the defaults if omitted.
        strict: Raise the first issue instead of collecting it. Overrides
            ``settings.strict`` when given.

    Returns:
        The (possibly partial) instance and the issues found.

    Raises:
        UnknownTypeError: If the record type is not registered.
        TypeMismatchError: If the root is not a mapping or names no type, or,
            in strict mode, on the first mismatching node.
        UnknownFieldError: In strict mode, on the first unmatched node.
    """
    registry, settings = resolve_context(registry, settings)
    key = settings.resource_type_key
    if not isinstance(doc, Mapping):
        raise TypeMismatchError(type_name or "<document>", f"document root must be an object, got {type(doc).__name__}")
    declared = doc.get(key)
    if type_name is None:
        if not isinstance(declared, str):
            raise TypeMismatchError("<document>", f"no record type given and no '{key}' entry in the document")
        type_name = declared
    record_type = registry.lookup(type_name)

    collector = IssueCollector(settings.strict if strict is None else strict)
    if declared is not None and declared != record_type.name:
        collector.report(
            TypeMismatchError(f"{record_type.name}.{key}", f"document is a '{declared}', expected '{record_type.name}'")
        )
    instance = _Reader(registry, settings, collector).record(doc, record_type, record_type.name)
    return DeserializationResult(instance=instance, issues=collector.issues)


def dumps(
    instance: RecordInstance,
    record_type: RecordType | None = None,
    registry: SchemaRegistry | None = None,
    settings: Settings | None = None,
    *,
    indent: int | None = 2,
) -> str:
    """Serialize a record instance to JSON text."""
    return simplejson.dumps(serialize(instance, record_type, registry, settings), indent=indent, use_decimal=True)


def loads(
    text: str,
    type_name: str | None = None,
    registry: SchemaRegistry | None = None,
    settings: Settings | None = None,
    *,
    strict: bool | None = None,
) -> DeserializationResult:
    """Deserialize a record instance from JSON text.

    Raises:
        DocumentError: If *text* is not valid JSON.
    """
    try:
        doc = simplejson.loads(text, use_decimal=True)
    except simplejson.JSONDecodeError as exc:
        raise DocumentError("<document>", f"invalid JSON: {exc}") from exc
    return deserialize(doc, type_name, registry, settings, strict=strict)


def write_document(
    path: Path,
    instance: RecordInstance,
    registry: SchemaRegistry | None = None,
    settings: Settings | None = None,
) -> None:
    """Write a record instance to a JSON file."""
    path.write_text(dumps(instance, registry=registry, settings=settings) + "\n", encoding="utf-8")


def read_document(
    path: Path,
    type_name: str | None = None,
    registry: SchemaRegistry | None = None,
    settings: Settings | None = None,
    *,
    strict: bool | None = None,
) -> DeserializationResult:
    """Read a record instance from a JSON file."""
    return loads(path.read_text(encoding="utf-8"), type_name, registry, settings, strict=strict)


# ################
# Implementation
# ################

_INVALID = object()

# Declared type of the ``_<name>`` companion that carries a primitive's id and extensions.
_ELEMENT_CHOICE = TypeChoice(code=ELEMENT)


class _Writer:
    def __init__(self, registry: SchemaRegistry, settings: Settings) -> None:
        self._registry = registry
        self._settings = settings

    def record(self, instance: RecordInstance, record_type: RecordType, path: str) -> dict[str, Any]:
        doc: dict[str, Any] = {}
        if record_type.kind is RecordKind.RESOURCE:
            doc[self._settings.resource_type_key] = record_type.name
        for f in record_type.fields:
            value = instance.values.get(f.internal_name)
            if value is None:
                self._lone_element(doc, instance, f, path)
                continue
            if f.is_choice:
                self._choice_field(doc, instance, f, value, path)
                continue
            field_path = f"{path}.{f.name}"
            items = occurrences(value)
            encoded = [
                self._value(item, f.types[0], item_path(field_path, i if isinstance(value, list) else None))
                for i, item in enumerate(items)
            ]
            as_list = f.is_repeating or isinstance(value, list)
            doc[f.name] = encoded if as_list else encoded[0]
            if f.types[0].is_primitive:
                self._elements(doc, f.name, elements_of(instance, f.internal_name, len(items)), as_list, path)
        for wire_name, raw in instance.extra.items():
            if _holds_element(raw):
                logger.warning("Dropping XML-only content '%s.%s' from key/value document", path, wire_name)
                continue
            doc[wire_name] = copy.deepcopy(raw)
        return doc

    def _choice_field(
        self,
        doc: dict[str, Any],
        instance: RecordInstance,
        f: FieldDescriptor,
        value: Any,
        path: str,
    ) -> None:
        items = occurrences(value)
        if not items:
            logger.debug("Skipping empty choice field %s.%s: no wire name for an empty list", path, f.name)
            return
        grouped: dict[str, list[tuple[Any, RecordInstance | None]]] = {}
        for i, item in enumerate(items):
            node_path = item_path(f"{path}.{f.name}[x]", i if isinstance(value, list) else None)
            if not isinstance(item, Choice):
                message = f"choice field needs a Choice value, got {type(item).__name__}"
                raise TypeMismatchError(node_path, message)
            choice = f.choice_for(item.type_code)
            if choice is None:
                raise TypeMismatchError(node_path, f"'{item.type_code}' is not an alternative of {f.path}")
            wire_name = f.wire_name(choice.code)
            element = instance.primitive_element(f.internal_name, i) if choice.is_primitive else None
            encoded = self._value(item.value, choice, f"{path}.{wire_name}")
            grouped.setdefault(wire_name, []).append((encoded, element))
        as_list = isinstance(value, list)
        for wire_name, pairs in grouped.items():
            nodes = [node for node, _ in pairs]
            doc[wire_name] = nodes if as_list else nodes[0]
            self._elements(doc, wire_name, [element for _, element in pairs], as_list, path)

    def _lone_element(self, doc: dict[str, Any], instance: RecordInstance, f: FieldDescriptor, path: str) -> None:
        element = instance.primitive_element(f.internal_name)
        if element is None or f.is_choice or not f.types[0].is_primitive:
            return
        doc[f"_{f.name}"] = self._value(element, _ELEMENT_CHOICE, f"{path}._{f.name}")

    def _elements(
        self,
        doc: dict[str, Any],
        wire_name: str,
        elements: list[RecordInstance | None],
        as_list: bool,
        path: str,
    ) -> None:
        """Write the ``_<wire_name>`` companion when any value carries an id or extensions."""
        if all(element is None for element in elements):
            return
        element_path = f"{path}._{wire_name}"
        encoded = [
            None if element is None else self._value(element, _ELEMENT_CHOICE, item_path(element_path, i))
            for i, element in enumerate(elements)
        ]
        doc[f"_{wire_name}"] = encoded if as_list else encoded[0]

    def _value(self, value: Any, choice: TypeChoice, path: str) -> Any:
        if choice.is_primitive:
            return scalar_value(value, choice, path)
        target = composite_target(value, choice, self._registry, path)
        return self.record(value, target, path)


class _Reader:
    def __init__(self, registry: SchemaRegistry, settings: Settings, collector: IssueCollector) -> None:
        self._registry = registry
        self._key = settings.resource_type_key
        self._collector = collector
        self._reads_elements = ELEMENT in registry

    def _mismatch(self, path: str, message: str) -> None:
        self._collector.report(TypeMismatchError(path, message))

    def record(self, doc: Mapping[str, Any], record_type: RecordType, path: str) -> RecordInstance:
        instance = RecordInstance(type_name=record_type.name)
        for wire_name, raw in doc.items():
            if wire_name == self._key and record_type.kind is RecordKind.RESOURCE:
                continue
            node_path = f"{path}.{wire_name}"
            match = record_type.match_wire_name(wire_name)
            if match is None and self._reads_elements and wire_name.startswith("_"):
                companion = record_type.match_wire_name(wire_name[1:])
                if companion is not None and companion[1].is_primitive:
                    if wire_name[1:] not in doc:
                        self._lone_element(instance, companion[0], raw, node_path)
                    continue
            if match is None:
                if record_type.open_content:
                    instance.extra[wire_name] = copy.deepcopy(raw)
                else:
                    message = f"no field '{wire_name}' in {record_type.name}"
                    self._collector.report(UnknownFieldError(node_path, message))
                continue
            f, choice = match
            element_raw = doc.get(f"_{wire_name}") if choice.is_primitive and self._reads_elements else None
            self._field(instance, f, choice, raw, node_path, element_raw, f"{path}._{wire_name}")
        return instance

    def _field(
        self,
        instance: RecordInstance,
        f: FieldDescriptor,
        choice: TypeChoice,
        raw: Any,
        path: str,
        element_raw: Any = None,
        element_path: str = "",
    ) -> None:
        if isinstance(raw, list):
            decoded = [self._value(item, choice, item_path(path, i)) for i, item in enumerate(raw)]
            as_list = True
        else:
            decoded = [self._value(raw, choice, path)]
            as_list = f.is_repeating
        elements = self._elements(element_raw, len(decoded), isinstance(raw, list), element_path)
        kept = [(value, element) for value, element in zip(decoded, elements) if value is not _INVALID]
        if decoded and not kept:
            return
        values = [value for value, _ in kept]
        if f.is_choice:
            values = [Choice(type_code=choice.code, value=v) for v in values]
        kept_elements = [element for _, element in kept]

        name = f.internal_name
        existing = instance.values.get(name)
        if existing is None:
            instance.values[name] = values if as_list else values[0]
            attach_elements(instance, name, kept_elements, as_list)
        else:
            # A second alternative of the same choice field; kept so validation can flag it.
            previous = elements_of(instance, name, len(occurrences(existing)))
            instance.values[name] = [*occurrences(existing), *values]
            attach_elements(instance, name, [*previous, *kept_elements], True)

    def _lone_element(self, instance: RecordInstance, f: FieldDescriptor, raw: Any, path: str) -> None:
        """Read a ``_<name>`` entry whose primitive has no value."""
        if f.is_choice or f.is_repeating:
            self._mismatch(path, f"'{f.name}' needs a value next to its id or extensions")
            return
        element = self._value(raw, _ELEMENT_CHOICE, path)
        if element is not _INVALID:
            instance.primitive_elements[f.internal_name] = element

    def _elements(self, raw: Any, count: int, is_list: bool, path: str) -> list[RecordInstance | None]:
        if raw is None:
            return [None] * count
        if not is_list:
            return [self._element(raw, path)]
        if not isinstance(raw, list) or len(raw) != count:
            self._mismatch(path, f"expected an array of {count} entries alongside the values")
            return [None] * count
        return [None if item is None else self._element(item, item_path(path, i)) for i, item in enumerate(raw)]

    def _element(self, raw: Any, path: str) -> RecordInstance | None:
        element = self._value(raw, _ELEMENT_CHOICE, path)
        return None if element is _INVALID else element

    def _value(self, raw: Any, choice: TypeChoice, path: str) -> Any:
        if choice.is_primitive:
            return self._scalar(raw, choice, path)
        if not isinstance(raw, Mapping):
            self._mismatch(path, f"expected an object for {choice.code}, got {_describe(raw)}")
            return _INVALID
        if choice.code == ANY_RESOURCE:
            name = raw.get(self._key)
            if not isinstance(name, str) or not self._registry.is_resource(name):
                self._mismatch(path, f"'{self._key}' must name a registered resource type, got {name!r}")
                return _INVALID
            return self.record(raw, self._registry.lookup(name), path)
        return self.record(raw, self._registry.lookup(choice.code), path)

    def _scalar(self, raw: Any, choice: TypeChoice, path: str) -> Any:
        primitive = lookup_primitive(choice.code)
        assert primitive is not None
        if raw is None or isinstance(raw, (Mapping, list)):
            self._mismatch(path, f"expected a {choice.code} value, got {_describe(raw)}")
            return _INVALID
        try:
            value = primitive.coerce(raw)
        except ValueError as exc:
            self._mismatch(path, str(exc))
            return _INVALID
        if not primitive.matches(value):
            self._mismatch(path, f"{raw!r} is not a valid {choice.code}")
            return _INVALID
        return value


def _describe(raw: Any) -> str:
    if raw is None:
        return "null"
    if isinstance(raw, Mapping):
        return "an object"
    if isinstance(raw, list):
        return "an array"
    return type(raw).__name__


def _holds_element(raw: Any) -> bool:
    if isinstance(raw, ET.Element):
        return True
    return isinstance(raw, list) and any(isinstance(item, ET.Element) for item in raw)
