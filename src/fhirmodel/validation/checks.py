# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""Validation of record instances against their record types.

Validation never raises for data problems: every finding is returned as a
:class:`ValidationIssue` and the caller decides what to reject.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fhirmodel.model.instance import Choice, RecordInstance, occurrences
from fhirmodel.model.primitives import lookup_primitive
from fhirmodel.model.types import (
    ANY_RESOURCE,
    ELEMENT,
    REFERENCE,
    BindingStrength,
    CodeBinding,
    FieldDescriptor,
    RecordType,
    TypeChoice,
    item_path,
)
from fhirmodel.registry.registry import SchemaRegistry
from fhirmodel.settings import resolve_context

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############


class Severity(Enum):
    """How serious a validation finding is."""

    ERROR = "error"
    WARNING = "warning"
    INFORMATION = "information"


@dataclass(frozen=True)
class ValidationIssue:
    """A single validation finding.

    Attributes:
        path: Schema path of the offending field, e.g. ``Slot.status``.
        severity: How serious the finding is.
        message: Human-readable description.
        location: Instance path including list indices, e.g.
            ``Account.coverage[0].coverage``.
    """

    path: str
    severity: Severity
    message: str
    location: str

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def __str__(self) -> str:
        return f"{self.severity.value}: {self.location}: {self.message}"


# Severity of a code outside its value set, by binding strength.
BINDING_SEVERITY: dict[BindingStrength, Severity] = {
    BindingStrength.REQUIRED: Severity.ERROR,
    BindingStrength.EXTENSIBLE: Severity.WARNING,
    BindingStrength.PREFERRED: Severity.WARNING,
    BindingStrength.EXAMPLE: Severity.INFORMATION,
}


def validate(
    instance: RecordInstance,
    record_type: RecordType | None = None,
    registry: SchemaRegistry | None = None,
) -> list[ValidationIssue]:
    """Check an instance and everything nested in it.

    Checks performed:

    1. **Cardinality** (error): the number of values of each field lies
       within its ``min..max`` bounds.

    2. **Choice fields** (error): a non-repeating choice field holds at most
       one alternative, a required one holds exactly one, and every value
       names one of the declared alternatives.

    3. **Primitive values** (error): scalars have the right Python type and
       match the lexical pattern of their primitive.

    4. **Composite values** (error): nested values are record instances of
       the declared type; ``Resource`` accepts any registered resource.

    5. **Coded values**: codes outside a binding's value set are reported
       with a severity that follows the binding strength (``required`` is an
       error, ``extensible`` and ``preferred`` a warning, ``example``
       information).

    6. **Reference targets** (error): relative ``Type/id`` references point
       to one of the permitted target types.

    7. **Undeclared values** (error): ``values`` and ``primitive_elements``
       have no keys beyond the declared fields.

    8. **Primitive metadata** (error): ids and extensions sit on primitive
       fields, one entry per value, and are valid ``Element`` records. A
       single primitive field with metadata and no value counts as present.

    Args:
        instance: The record to check.
        record_type: Its schema; looked up from ``instance.type_name`` if omitted.
        registry: Registry for nested types; the bundled one if omitted.

    Returns:
        The issues found, in field order. Empty when the instance is valid.

    Raises:
        UnknownTypeError: If a record type is not registered.
    """
    registry, _ = resolve_context(registry, None)
    if record_type is None:
        record_type = registry.lookup(instance.type_name)
    validator = _Validator(registry)
    validator.check(instance, record_type, record_type.name)
    logger.debug("Validated %s: %d issue(s)", record_type.name, len(validator.issues))
    return validator.issues


def has_errors(issues: list[ValidationIssue]) -> bool:
    """Return True if any issue has error severity."""
    return any(issue.is_error for issue in issues)


# ################
# Implementation
# ################


class _Validator:
    def __init__(self, registry: SchemaRegistry) -> None:
        self._registry = registry
        self.issues: list[ValidationIssue] = []

    def _error(self, path: str, message: str, location: str) -> None:
        self.issues.append(ValidationIssue(path=path, severity=Severity.ERROR, message=message, location=location))

    def check(self, instance: RecordInstance, record_type: RecordType, location: str) -> None:
        if instance.type_name != record_type.name:
            self._error(
                record_type.name,
                f"instance is a '{instance.type_name}', expected '{record_type.name}'",
                location,
            )
            return

        declared = {f.internal_name for f in record_type.fields}
        present = [key for key, value in instance.values.items() if value is not None]
        present += [key for key in instance.primitive_elements if key not in present]
        for key in present:
            if key not in declared:
                self._error(f"{record_type.name}.{key}", f"'{key}' is not a field of {record_type.name}", location)

        for f in record_type.fields:
            value = instance.values.get(f.internal_name)
            lone = value is None and instance.primitive_element(f.internal_name) is not None
            self._check_field(value, f, location, lone)
            self._check_elements(instance, f, location)

    def _check_field(self, value: Any, f: FieldDescriptor, location: str, lone: bool = False) -> None:
        items = occurrences(value)
        # A primitive element with only an id or extensions still occurs once.
        count = 1 if lone else len(items)
        field_location = f"{location}.{f.name}"

        if f.is_choice and not f.is_repeating:
            if count == 0 and f.is_required:
                message = f"required choice field '{f.name}[x]' has no alternative populated"
                self._error(f.path, message, field_location)
            elif count > 1:
                codes = ", ".join(item.type_code if isinstance(item, Choice) else "?" for item in items)
                message = f"choice field '{f.name}[x]' holds {count} values ({codes}); at most one is allowed"
                self._error(f.path, message, field_location)
        elif not f.allows(count):
            self._error(f.path, f"'{f.name}' has {count} value(s), expected {f.cardinality()}", field_location)

        for i, item in enumerate(items):
            index = i if isinstance(value, list) else None
            item_location = item_path(field_location, index)
            if not f.is_choice:
                if isinstance(item, Choice):
                    self._error(f.path, f"'{f.name}' is not a choice field", item_location)
                else:
                    self._check_value(item, f.types[0], f, item_location)
                continue
            if not isinstance(item, Choice):
                self._error(f.path, f"choice field needs a Choice value, got {type(item).__name__}", item_location)
                continue
            choice = f.choice_for(item.type_code)
            if choice is None:
                allowed = ", ".join(c.code for c in f.types)
                message = f"'{item.type_code}' is not an alternative of '{f.name}[x]' ({allowed})"
                self._error(f.path, message, item_location)
                continue
            self._check_value(item.value, choice, f, item_path(f"{location}.{f.wire_name(choice.code)}", index))

    def _check_elements(self, instance: RecordInstance, f: FieldDescriptor, location: str) -> None:
        """Check the id and extensions attached to the primitive values of *f*."""
        elements = instance.primitive_elements.get(f.internal_name)
        if elements is None:
            return
        element_location = f"{location}._{f.name}"
        if not any(choice.is_primitive for choice in f.types):
            self._error(f.path, f"'{f.name}' is not a primitive field and takes no id or extensions", element_location)
            return
        entries = occurrences(elements)
        count = len(occurrences(instance.values.get(f.internal_name)))
        if len(entries) > max(count, 1):
            message = f"'{f.name}' has {len(entries)} element entries for {count} value(s)"
            self._error(f.path, message, element_location)
        element_type = self._registry.lookup(ELEMENT)
        for i, element in enumerate(entries):
            if element is None:
                continue
            entry_location = item_path(element_location, i if isinstance(elements, list) else None)
            if not isinstance(element, RecordInstance):
                self._error(f.path, f"expected a {ELEMENT} record, got {type(element).__name__}", entry_location)
                continue
            self.check(element, element_type, entry_location)

    def _check_value(self, value: Any, choice: TypeChoice, f: FieldDescriptor, location: str) -> None:
        if choice.is_primitive:
            primitive = lookup_primitive(choice.code)
            assert primitive is not None
            if not primitive.matches(value):
                self._error(f.path, f"{value!r} is not a valid {choice.code}", location)
                return
            if choice.binding is not None and isinstance(value, str):
                self._check_codes(choice.binding, [(None, value)], f, location)
            return

        if not isinstance(value, RecordInstance):
            self._error(f.path, f"expected a {choice.code} record, got {type(value).__name__}", location)
            return
        if choice.code == ANY_RESOURCE:
            if not self._registry.is_resource(value.type_name):
                self._error(f.path, f"'{value.type_name}' is not a registered resource type", location)
                return
        elif value.type_name != choice.code:
            self._error(f.path, f"expected a {choice.code} record, got {value.type_name}", location)
            return

        if choice.binding is not None:
            self._check_codes(choice.binding, _codings(value), f, location)
        if choice.code == REFERENCE:
            self._check_reference(value, choice, f, location)
        self.check(value, self._registry.lookup(value.type_name), location)

    def _check_codes(
        self,
        binding: CodeBinding,
        codings: list[tuple[str | None, str]],
        f: FieldDescriptor,
        location: str,
    ) -> None:
        """Report when none of *codings* is permitted by *binding*."""
        if not codings or not binding.codes:
            return
        if any(binding.permits(code, system) for system, code in codings):
            return
        shown = ", ".join(code if system is None else f"{system}|{code}" for system, code in codings)
        value_set = binding.value_set or "the bound value set"
        self.issues.append(
            ValidationIssue(
                path=f.path,
                severity=BINDING_SEVERITY[binding.strength],
                message=f"{shown} is not in {value_set} ({binding.strength.value} binding)",
                location=location,
            )
        )

    def _check_reference(
        self,
        reference: RecordInstance,
        choice: TypeChoice,
        f: FieldDescriptor,
        location: str,
    ) -> None:
        targets = choice.reference_targets
        if not targets or ANY_RESOURCE in targets:
            return
        literal = reference.get("reference")
        if not isinstance(literal, str) or literal.startswith("#") or ":" in literal:
            return
        parts = literal.split("/")
        if len(parts) < 2:
            return
        if parts[0] not in targets:
            self._error(
                f.path,
                f"reference '{literal}' points to a {parts[0]}; allowed targets: {', '.join(targets)}",
                location,
            )


def _codings(value: RecordInstance) -> list[tuple[str | None, str]]:
    """Return the (system, code) pairs carried by a Coding or CodeableConcept."""
    if value.type_name == "Coding":
        candidates = [value]
    elif value.type_name == "CodeableConcept":
        candidates = [c for c in occurrences(value.get("coding")) if isinstance(c, RecordInstance)]
    else:
        return []
    pairs: list[tuple[str | None, str]] = []
    for coding in candidates:
        code = coding.get("code")
        if isinstance(code, str):
            system = coding.get("system")
            pairs.append((system if isinstance(system, str) else None, code))
    return pairs
