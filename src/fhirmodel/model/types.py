# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""Schema representations: field descriptors, cardinalities, bindings, record types."""

from __future__ import annotations

import keyword
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic import Field as _Field

from fhirmodel.model.primitives import is_primitive

# ###############
# Public Interface
# ###############

# Wire names that cannot be used as Python-side identifiers. A field whose
# wire name is listed here gets the internal name ``local_<name>``.
RESERVED_WORDS: frozenset[str] = frozenset(keyword.kwlist) | frozenset({"end", "method", "when"})

# Type code matching any registered resource (used by ``contained``).
ANY_RESOURCE = "Resource"

# Type code for references to other records.
REFERENCE = "Reference"

# Record type holding the id and extensions of a primitive value.
ELEMENT = "Element"


class BindingStrength(Enum):
    """How strongly a coded field is tied to its value set."""

    REQUIRED = "required"
    EXTENSIBLE = "extensible"
    PREFERRED = "preferred"
    EXAMPLE = "example"


class RecordKind(Enum):
    """The role a record type plays in a document."""

    RESOURCE = "resource"
    DATATYPE = "datatype"
    BACKBONE = "backbone"


class Bounded(BaseModel):
    """A finite upper cardinality bound."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["bounded"] = "bounded"
    limit: int = _Field(ge=0)


class Unbounded(BaseModel):
    """An unlimited upper cardinality bound (``*``)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["unbounded"] = "unbounded"


# Upper cardinality bound. The `kind` discriminator keeps the unbounded case
# out of integer arithmetic.
MaxOccurs = Annotated[Bounded | Unbounded, _Field(discriminator="kind")]


class CodeBinding(BaseModel):
    """The permitted codes for a coded field, with an enforcement strength.

    Attributes:
        strength: How violations are reported by the validator.
        value_set: Canonical URL of the bound value set, if known.
        codes: Mapping from code-system URI to the permitted literal codes.
    """

    model_config = ConfigDict(frozen=True)

    strength: BindingStrength
    value_set: str | None = None
    codes: dict[str, tuple[str, ...]] = _Field(default_factory=dict)

    def permits(self, code: str, system: str | None = None) -> bool:
        """Return True if *code* is in the permitted set.

        When *system* is None the code may come from any bound code system.
        """
        if system is None:
            return any(code in codes for codes in self.codes.values())
        return code in self.codes.get(system, ())


class TypeChoice(BaseModel):
    """One declared type of a field, with the constraints specific to it.

    Attributes:
        code: Primitive type code (``instant``) or record type name
            (``Quantity``, ``Account::Coverage``).
        reference_targets: Record type names a ``Reference`` may point to.
            Empty means unrestricted.
        binding: Code binding, only for coded types.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    reference_targets: tuple[str, ...] = ()
    binding: CodeBinding | None = None

    @property
    def is_primitive(self) -> bool:
        """Return True if this choice is a scalar primitive type."""
        return is_primitive(self.code)


class FieldDescriptor(BaseModel):
    """Metadata for one named slot of a record type.

    Attributes:
        name: Wire base name. For choice fields this is the name without the
            ``[x]`` suffix (``value`` for ``value[x]``).
        internal_name: Python-side identifier used as the key in
            ``RecordInstance.values``.
        path: Dotted schema path, e.g. ``Slot.status`` or
            ``MedicationStatement.medication[x]``.
        min_occurs: Minimum number of occurrences.
        max_occurs: Maximum number of occurrences.
        types: Declared types; more than one entry makes this a choice field.
        ordered: Whether the order of repeated values is significant.
        xml_attribute: Written as an attribute of the owning XML element
            rather than as a child element. Only for single primitive fields.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    internal_name: str
    path: str
    min_occurs: int = _Field(default=0, ge=0)
    max_occurs: MaxOccurs = Bounded(limit=1)
    types: tuple[TypeChoice, ...] = _Field(min_length=1)
    ordered: bool = True
    xml_attribute: bool = False

    @model_validator(mode="after")
    def check_shape(self) -> FieldDescriptor:
        # A choice field holds at most one value.
        if self.is_choice and self.is_repeating:
            raise ValueError(f"choice field '{self.path}' cannot repeat")
        if self.xml_attribute and (self.is_choice or self.is_repeating or not self.types[0].is_primitive):
            raise ValueError(f"XML attribute field '{self.path}' must be a single primitive")
        return self

    @property
    def is_choice(self) -> bool:
        """Return True if the field has several alternative types."""
        return len(self.types) > 1

    @property
    def is_repeating(self) -> bool:
        """Return True if the field may hold more than one value."""
        return isinstance(self.max_occurs, Unbounded) or self.max_occurs.limit > 1

    @property
    def is_required(self) -> bool:
        return self.min_occurs >= 1

    def allows(self, count: int) -> bool:
        """Return True if *count* occurrences satisfy the cardinality."""
        if count < self.min_occurs:
            return False
        return isinstance(self.max_occurs, Unbounded) or count <= self.max_occurs.limit

    def cardinality(self) -> str:
        """Return the cardinality in ``min..max`` notation."""
        upper = "*" if isinstance(self.max_occurs, Unbounded) else str(self.max_occurs.limit)
        return f"{self.min_occurs}..{upper}"

    def choice_for(self, code: str) -> TypeChoice | None:
        """Return the declared type with the given code, if any."""
        for choice in self.types:
            if choice.code == code:
                return choice
        return None

    def wire_name(self, code: str | None = None) -> str:
        """Return the concrete wire name.

        For choice fields the type code is appended with its first letter
        capitalised (``value`` + ``Quantity`` -> ``valueQuantity``).
        """
        if not self.is_choice:
            return self.name
        if code is None:
            raise ValueError(f"Choice field '{self.path}' needs a type code to form a wire name")
        return self.name + capitalize_type_code(_short_name(code))

    def wire_names(self) -> dict[str, TypeChoice]:
        """Return every concrete wire name of this field mapped to its type."""
        return {self.wire_name(choice.code): choice for choice in self.types}


class RecordType(BaseModel):
    """A named schema: an ordered set of fields plus scoped nested types.

    Attributes:
        name: Globally unique name; nested types are qualified as
            ``Parent::Child``.
        kind: Whether this is a resource, a reusable datatype, or a nested
            backbone structure.
        fields: Field descriptors in canonical wire order.
        nested_types: Types defined only in the context of this one.
        open_content: If True, unrecognised document content is preserved in
            ``RecordInstance.extra`` instead of being reported.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    kind: RecordKind = RecordKind.DATATYPE
    fields: tuple[FieldDescriptor, ...] = ()
    nested_types: tuple[RecordType, ...] = ()
    open_content: bool = False

    @property
    def short_name(self) -> str:
        """Return the unqualified name (``Coverage`` for ``Account::Coverage``)."""
        return _short_name(self.name)

    def field(self, name: str) -> FieldDescriptor | None:
        """Return the field with the given wire base name or internal name."""
        for f in self.fields:
            if f.name == name or f.internal_name == name:
                return f
        return None

    def match_wire_name(self, wire_name: str) -> tuple[FieldDescriptor, TypeChoice] | None:
        """Resolve a document node name to its field and declared type.

        Plain fields match by exact name; choice fields match by base name
        followed by one of the capitalised alternative type codes.
        """
        for f in self.fields:
            if not f.is_choice:
                if f.name == wire_name:
                    return f, f.types[0]
                continue
            if not wire_name.startswith(f.name):
                continue
            suffix = wire_name[len(f.name) :]
            for choice in f.types:
                if capitalize_type_code(_short_name(choice.code)) == suffix:
                    return f, choice
        return None


def capitalize_type_code(code: str) -> str:
    """Capitalise the first letter of a type code (``dateTime`` -> ``DateTime``)."""
    return code[:1].upper() + code[1:]


def internal_name_for(wire_name: str) -> str:
    """Return the Python-side identifier for a wire name."""
    return f"local_{wire_name}" if wire_name in RESERVED_WORDS else wire_name


def item_path(path: str, index: int | None) -> str:
    """Append an ``[index]`` suffix for repeated nodes."""
    return path if index is None else f"{path}[{index}]"


# ################
# Implementation
# ################


def _short_name(name: str) -> str:
    return name.rsplit("::", 1)[-1]


# Resolve forward references in self-referential models.
RecordType.model_rebuild()
