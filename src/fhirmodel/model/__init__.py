# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""Record model: primitives, schema types, instances and structural equality."""

from fhirmodel.model.equality import EmptyPolicy, equal, record_hash
from fhirmodel.model.instance import Choice, RecordInstance, occurrences
from fhirmodel.model.primitives import PRIMITIVES, Primitive, is_primitive, lookup_primitive
from fhirmodel.model.types import (
    ANY_RESOURCE,
    ELEMENT,
    REFERENCE,
    RESERVED_WORDS,
    BindingStrength,
    Bounded,
    CodeBinding,
    FieldDescriptor,
    MaxOccurs,
    RecordKind,
    RecordType,
    TypeChoice,
    Unbounded,
    capitalize_type_code,
    internal_name_for,
    item_path,
)

__all__ = [
    # Primitives
    "PRIMITIVES",
    "Primitive",
    "is_primitive",
    "lookup_primitive",
    # Schema types
    "ANY_RESOURCE",
    "ELEMENT",
    "REFERENCE",
    "RESERVED_WORDS",
    "BindingStrength",
    "Bounded",
    "Unbounded",
    "MaxOccurs",
    "CodeBinding",
    "TypeChoice",
    "FieldDescriptor",
    "RecordKind",
    "RecordType",
    "capitalize_type_code",
    "internal_name_for",
    "item_path",
    # Instances
    "Choice",
    "RecordInstance",
    "occurrences",
    # Equality
    "EmptyPolicy",
    "equal",
    "record_hash",
]
