# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""XML document codec.

The root element is named after the record type. Primitive fields become
empty elements carrying a ``value`` attribute, composite fields become
nested elements, and repeating fields become repeated sibling elements in
the declared field order::

    <Slot xmlns="http://hl7.org/fhir">
      <status value="free"/>
      <start value="2024-01-01T09:00:00Z"/>
      <end value="2024-01-01T09:30:00Z"/>
    </Slot>

Fields declared with ``xml-attribute`` (element ids, extension URLs) are
written as attributes of the owning element. A primitive element carries
its own id and extensions the same way::

    <status value="free" id="s1">
      <extension url="http://example.org/note"><valueString value="held"/></extension>
    </status>

Contained resources are wrapped in an element named after their concrete
type. XML has no way to write an empty list, so empty repeating fields are
left out.
"""

from __future__ import annotations

import copy
import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any

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
from fhirmodel.model.types import ANY_RESOURCE, ELEMENT, FieldDescriptor, RecordType, TypeChoice, item_path
from fhirmodel.registry.registry import SchemaRegistry
from fhirmodel.settings import Settings, resolve_context

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############

VALUE_ATTRIBUTE = "value"


def serialize(
    instance: RecordInstance,
    record_type: RecordType | None = None,
    registry: SchemaRegistry | None = None,
    settings: Settings | None = None,
) -> ET.Element:
    """Convert a record instance to an XML element tree.

    Raises:
        UnknownTypeError: If a record type is not registered.
        TypeMismatchError: If a value does not fit its declared type.
    """
    registry, settings = resolve_context(registry, settings)
    if record_type is None:
        record_type = registry.lookup(instance.type_name)
    writer = _Writer(registry, settings.xml_namespace)
    root = ET.Element(writer.tag(record_type.short_name))
    writer.fill(root, instance, record_type, record_type.name)
    return root


def deserialize(
    element: ET.Element,
    type_name: str | None = None,
    registry: SchemaRegistry | None = None,
    settings: Settings | None = None,
    *,
    strict: bool | None = None,
) -> DeserializationResult:
    """Read a record instance from an XML element.

    Elements are matched by local name; namespaces are not checked on input.

    Args:
        element: The root element.
        type_name: Expected record type. If omitted, the root element's
            local name names it.
        registry: Registry of record types; the bundled one if omitted.
        settings: Codec settings; the defaults if omitted.
        strict: Raise the first issue instead of collecting it. Overrides
            ``settings.strict`` when given.

    Raises:
        UnknownTypeError: If the record type is not registered.
        TypeMismatchError: If *element* is not an element, or, in strict
            mode, on the first mismatching node.
        UnknownFieldError: In strict mode, on the first unmatched node.
    """
    registry, settings = resolve_context(registry, settings)
    if not isinstance(element, ET.Element):
        raise TypeMismatchError(type_name or "<document>", f"expected an XML element, got {type(element).__name__}")
    root_name = _local_name(element.tag)
    record_type = registry.lookup(type_name if type_name is not None else root_name)

    collector = IssueCollector(settings.strict if strict is None else strict)
    if root_name != record_type.short_name:
        collector.report(
            TypeMismatchError(record_type.name, f"root element is <{root_name}>, expected <{record_type.short_name}>")
        )
    instance = _Reader(registry, collector).record(element, record_type, record_type.name)
    return DeserializationResult(instance=instance, issues=collector.issues)


def dumps(
    instance: RecordInstance,
    record_type: RecordType | None = None,
    registry: SchemaRegistry | None = None,
    settings: Settings | None = None,
    *,
    indent: bool = True,
) -> str:
    """Serialize a record instance to XML text.

    The configured namespace is declared once on the root element as the
    default namespace.
    """
    _, resolved = resolve_context(registry, settings)
    root = serialize(instance, record_type, registry, resolved)
    if resolved.xml_namespace:
        _use_default_namespace(root, resolved.xml_namespace)
    if indent:
        ET.indent(root)
    return ET.tostring(root, encoding="unicode")


def loads(
    text: str,
    type_name: str | None = None,
    registry: SchemaRegistry | None = None,
    settings: Settings | None = None,
    *,
    strict: bool | None = None,
) -> DeserializationResult:
    """Deserialize a record instance from XML text.

    Raises:
        DocumentError: If *text* is not well-formed XML.
    """
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise DocumentError("<document>", f"invalid XML: {exc}") from exc
    return deserialize(root, type_name, registry, settings, strict=strict)


def write_document(
    path: Path,
    instance: RecordInstance,
    registry: SchemaRegistry | None = None,
    settings: Settings | None = None,
) -> None:
    """Write a record instance to an XML file."""
    path.write_text(dumps(instance, registry=registry, settings=settings) + "\n", encoding="utf-8")


def read_document(
    path: Path,
    type_name: str | None = None,
    registry: SchemaRegistry | None = None,
    settings: Settings | None = None,
    *,
    strict: bool | None = None,
) -> DeserializationResult:
    """Read a record instance from an XML file."""
    return loads(path.read_text(encoding="utf-8"), type_name, registry, settings, strict=strict)


# ################
# Implementation
# ################

_INVALID = object()
_NO_VALUE = object()

_ELEMENT_CHOICE = TypeChoice(code=ELEMENT)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _use_default_namespace(root: ET.Element, namespace: str) -> None:
    """Strip *namespace* from every tag and declare it once on *root*."""
    prefix = f"{{{namespace}}}"
    for node in root.iter():
        if isinstance(node.tag, str) and node.tag.startswith(prefix):
            node.tag = node.tag[len(prefix) :]
    attributes = dict(root.attrib)
    root.attrib.clear()
    root.set("xmlns", namespace)
    for key, value in attributes.items():
        root.set(key, value)


class _Writer:
    def __init__(self, registry: SchemaRegistry, namespace: str | None) -> None:
        self._registry = registry
        self._namespace = namespace

    def tag(self, name: str) -> str:
        return f"{{{self._namespace}}}{name}" if self._namespace else name

    def fill(self, element: ET.Element, instance: RecordInstance, record_type: RecordType, path: str) -> None:
        for f in record_type.fields:
            value = instance.values.get(f.internal_name)
            if value is None:
                lone = instance.primitive_element(f.internal_name)
                if lone is not None and not f.is_choice and not f.xml_attribute and f.types[0].is_primitive:
                    self._append(element, f.name, None, f.types[0], f"{path}.{f.name}", lone)
                continue
            if f.xml_attribute:
                self._attribute(element, f, value, path)
                continue
            items = occurrences(value)
            if not items:
                logger.debug("Leaving out empty field %s.%s: XML has no empty list", path, f.name)
            for i, item in enumerate(items):
                index = i if isinstance(value, list) else None
                if f.is_choice:
                    node_path = item_path(f"{path}.{f.name}[x]", index)
                    if not isinstance(item, Choice):
                        message = f"choice field needs a Choice value, got {type(item).__name__}"
                        raise TypeMismatchError(node_path, message)
                    choice = f.choice_for(item.type_code)
                    if choice is None:
                        raise TypeMismatchError(node_path, f"'{item.type_code}' is not an alternative of {f.path}")
                    wire_name = f.wire_name(choice.code)
                else:
                    choice = f.types[0]
                    wire_name = f.name
                    node_path = item_path(f"{path}.{f.name}", index)
                metadata = instance.primitive_element(f.internal_name, i) if choice.is_primitive else None
                self._append(element, wire_name, item.value if f.is_choice else item, choice, node_path, metadata)
        for wire_name, raw in instance.extra.items():
            elements = raw if isinstance(raw, list) else [raw]
            if not all(isinstance(e, ET.Element) for e in elements):
                logger.warning("Dropping key/value-only content '%s.%s' from XML document", path, wire_name)
                continue
            for e in elements:
                element.append(copy.deepcopy(e))

    def _attribute(self, element: ET.Element, f: FieldDescriptor, value: Any, path: str) -> None:
        node_path = f"{path}.{f.name}"
        items = occurrences(value)
        if len(items) != 1:
            raise TypeMismatchError(node_path, f"XML attribute '{f.name}' takes one value, got {len(items)}")
        primitive = lookup_primitive(f.types[0].code)
        assert primitive is not None
        element.set(f.name, primitive.render(scalar_value(items[0], f.types[0], node_path)))

    def _append(
        self,
        parent: ET.Element,
        wire_name: str,
        value: Any,
        choice: TypeChoice,
        path: str,
        metadata: RecordInstance | None = None,
    ) -> None:
        if choice.is_primitive:
            primitive = lookup_primitive(choice.code)
            assert primitive is not None
            child = ET.SubElement(parent, self.tag(wire_name))
            if value is not None:
                child.set(VALUE_ATTRIBUTE, primitive.render(scalar_value(value, choice, path)))
            if metadata is not None:
                target = composite_target(metadata, _ELEMENT_CHOICE, self._registry, path)
                self.fill(child, metadata, target, path)
            return
        target = composite_target(value, choice, self._registry, path)
        child = ET.SubElement(parent, self.tag(wire_name))
        if choice.code == ANY_RESOURCE:
            child = ET.SubElement(child, self.tag(target.short_name))
        self.fill(child, value, target, path)


class _Reader:
    def __init__(self, registry: SchemaRegistry, collector: IssueCollector) -> None:
        self._registry = registry
        self._collector = collector

    def _mismatch(self, path: str, message: str) -> None:
        self._collector.report(TypeMismatchError(path, message))

    def record(self, element: ET.Element, record_type: RecordType, path: str) -> RecordInstance:
        instance = RecordInstance(type_name=record_type.name)
        for f in record_type.fields:
            text = element.get(f.name) if f.xml_attribute else None
            if text is not None:
                value = self._parse(text, f.types[0], f"{path}.{f.name}")
                if value is not _INVALID:
                    instance.values[f.internal_name] = value

        counts: dict[str, int] = {}
        for child in element:
            if not isinstance(child.tag, str):
                continue
            wire_name = _local_name(child.tag)
            match = record_type.match_wire_name(wire_name)
            if match is None:
                if record_type.open_content:
                    kept = copy.deepcopy(child)
                    kept.tail = None
                    instance.extra.setdefault(wire_name, []).append(kept)
                else:
                    self._collector.report(
                        UnknownFieldError(f"{path}.{wire_name}", f"no field '{wire_name}' in {record_type.name}")
                    )
                continue
            f, choice = match
            index = counts.get(f.name, 0)
            counts[f.name] = index + 1
            node_path = item_path(f"{path}.{wire_name}", index if f.is_repeating else None)
            if f.xml_attribute:
                self._mismatch(node_path, f"'{f.name}' is written as an XML attribute, not an element")
                continue
            metadata = None
            if choice.is_primitive:
                value, metadata = self._primitive(child, choice, node_path)
            else:
                value = self._value(child, choice, node_path)
            if value is _INVALID:
                continue
            if value is _NO_VALUE:
                self._store_lone(instance, f, choice, metadata, node_path)
            else:
                self._store(instance, f, choice, value, metadata, node_path)
        return instance

    def _store(
        self,
        instance: RecordInstance,
        f: FieldDescriptor,
        choice: TypeChoice,
        value: Any,
        metadata: RecordInstance | None,
        path: str,
    ) -> None:
        name = f.internal_name
        if f.is_choice:
            value = Choice(type_code=choice.code, value=value)
        existing = instance.values.get(name)
        if existing is not None:
            # Also reached for a repeated non-repeating field; validation reports the cardinality.
            previous = elements_of(instance, name, len(occurrences(existing)))
            instance.values[name] = [*occurrences(existing), value]
            attach_elements(instance, name, [*previous, metadata], True)
        elif name in instance.primitive_elements:
            self._mismatch(path, f"'{f.name}' repeats after an element without a value")
        else:
            instance.values[name] = [value] if f.is_repeating else value
            attach_elements(instance, name, [metadata], f.is_repeating)

    def _store_lone(
        self,
        instance: RecordInstance,
        f: FieldDescriptor,
        choice: TypeChoice,
        metadata: RecordInstance | None,
        path: str,
    ) -> None:
        """Keep the id and extensions of a primitive element that has no value attribute."""
        name = f.internal_name
        if f.is_choice or f.is_repeating or name in instance.values or name in instance.primitive_elements:
            self._mismatch(path, f"missing '{VALUE_ATTRIBUTE}' attribute for {choice.code}")
            return
        instance.primitive_elements[name] = metadata

    def _value(self, element: ET.Element, choice: TypeChoice, path: str) -> Any:
        if VALUE_ATTRIBUTE in element.attrib:
            self._mismatch(path, f"{choice.code} is a composite type and takes no value attribute")
            return _INVALID
        if choice.code != ANY_RESOURCE:
            return self.record(element, self._registry.lookup(choice.code), path)

        inner = [c for c in element if isinstance(c.tag, str)]
        if len(inner) != 1:
            self._mismatch(path, f"expected exactly one resource element, found {len(inner)}")
            return _INVALID
        name = _local_name(inner[0].tag)
        if not self._registry.is_resource(name):
            self._mismatch(path, f"<{name}> is not a registered resource type")
            return _INVALID
        return self.record(inner[0], self._registry.lookup(name), path)

    def _primitive(self, element: ET.Element, choice: TypeChoice, path: str) -> tuple[Any, RecordInstance | None]:
        """Return the value of a primitive element (or a marker) and its id and extensions."""
        metadata = None
        if len(element) or "id" in element.attrib:
            if ELEMENT not in self._registry:
                self._mismatch(path, f"{choice.code} is a primitive type and takes no child elements")
                return _INVALID, None
            metadata = self.record(element, self._registry.lookup(ELEMENT), path)
            if not metadata.values:
                metadata = None
        text = element.get(VALUE_ATTRIBUTE)
        if text is None:
            if metadata is None:
                self._mismatch(path, f"missing '{VALUE_ATTRIBUTE}' attribute for {choice.code}")
                return _INVALID, None
            return _NO_VALUE, metadata
        return self._parse(text, choice, path), metadata

    def _parse(self, text: str, choice: TypeChoice, path: str) -> Any:
        primitive = lookup_primitive(choice.code)
        assert primitive is not None
        try:
            return primitive.parse(text)
        except ValueError as exc:
            self._mismatch(path, str(exc))
            return _INVALID
