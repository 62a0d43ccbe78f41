# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""Pieces shared by the key/value and XML codecs."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from fhirmodel.errors import DocumentError, TypeMismatchError
from fhirmodel.model.instance import RecordInstance
from fhirmodel.model.primitives import lookup_primitive
from fhirmodel.model.types import ANY_RESOURCE, RecordType, TypeChoice
from fhirmodel.registry.registry import SchemaRegistry

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############


@dataclass
class DeserializationResult:
    """A possibly partial instance together with the issues found while reading it.

    Attributes:
        instance: The record read from the document. Nodes that produced an
            issue are left out.
        issues: Data-shape problems in document order.
    """

    instance: RecordInstance
    issues: list[DocumentError] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Return True if any issue was recorded."""
        return bool(self.issues)


class IssueCollector:
    """Accumulates document issues, or raises the first one in strict mode."""

    def __init__(self, strict: bool) -> None:
        self.strict = strict
        self.issues: list[DocumentError] = []

    def report(self, issue: DocumentError) -> None:
        if self.strict:
            raise issue
        logger.debug("Document issue: %s", issue)
        self.issues.append(issue)


def composite_target(
    value: Any,
    choice: TypeChoice,
    registry: SchemaRegistry,
    path: str,
) -> RecordType:
    """Return the record type a composite value is written as.

    Raises:
        TypeMismatchError: If *value* is not an instance of the declared type.
    """
    if not isinstance(value, RecordInstance):
        raise TypeMismatchError(path, f"expected a {choice.code} record, got {type(value).__name__}")
    if choice.code == ANY_RESOURCE:
        if not registry.is_resource(value.type_name):
            raise TypeMismatchError(path, f"'{value.type_name}' is not a registered resource type")
        return registry.lookup(value.type_name)
    if value.type_name != choice.code:
        raise TypeMismatchError(path, f"expected a {choice.code} record, got {value.type_name}")
    return registry.lookup(choice.code)


def scalar_value(value: Any, choice: TypeChoice, path: str) -> Any:
    """Return a primitive value in its in-memory form, ready to be written.

    Raises:
        TypeMismatchError: If *value* cannot represent the primitive.
    """
    primitive = lookup_primitive(choice.code)
    assert primitive is not None
    try:
        return primitive.coerce(value)
    except ValueError as exc:
        raise TypeMismatchError(path, str(exc)) from exc


def elements_of(instance: RecordInstance, name: str, count: int) -> list[RecordInstance | None]:
    """Return the primitive ``Element`` metadata for the first *count* values of *name*."""
    return [instance.primitive_element(name, position) for position in range(count)]


def attach_elements(
    instance: RecordInstance,
    name: str,
    elements: list[RecordInstance | None],
    as_list: bool,
) -> None:
    """Store primitive ``Element`` metadata for *name*, or drop the entry when there is none."""
    if all(element is None for element in elements):
        instance.primitive_elements.pop(name, None)
    else:
        instance.primitive_elements[name] = elements if as_list else elements[0]
