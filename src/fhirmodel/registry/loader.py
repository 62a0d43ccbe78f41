# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""YAML schema tables and their conversion into record types.

A schema file lists record types under a top-level ``types`` key::

    types:
      - name: Slot
        kind: resource
        fields:
          - name: status
            type: code
            min: 1
            binding:
              strength: required
              codes:
                http://hl7.org/fhir/slotstatus: [busy, free]
          - name: value[x]
            types: [boolean, {code: Reference, targets: [Patient]}]
        nested:
          - name: Entry
            fields: [...]
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from fhirmodel.errors import SchemaLoadError
from fhirmodel.model.types import (
    BindingStrength,
    Bounded,
    CodeBinding,
    FieldDescriptor,
    RecordKind,
    RecordType,
    TypeChoice,
    Unbounded,
    internal_name_for,
)
from fhirmodel.registry.registry import SchemaRegistry

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############

DEFINITIONS_DIR = Path(__file__).parent / "definitions"

SCHEMA_SUFFIXES = (".yaml", ".yml")


def load_schema_text(text: str, source_label: str = "<string>") -> list[RecordType]:
    """Parse YAML schema text into record types.

    Args:
        text: Raw YAML content.
        source_label: Human-readable label used in error messages.

    Returns:
        The top-level record types in file order, nested types attached.

    Raises:
        SchemaLoadError: If the YAML is invalid or does not describe a valid schema.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise SchemaLoadError(f"Invalid YAML in {source_label}: {exc}") from exc

    if data is None:
        return []

    try:
        schema_file = _SchemaFile.model_validate(data)
    except ValidationError as exc:
        raise SchemaLoadError(f"Invalid schema file {source_label}: {exc}") from exc

    return [_build_type(entry, parent=None, scopes=[], source_label=source_label) for entry in schema_file.types]


def load_schema_file(path: Path) -> list[RecordType]:
    """Load the record types defined in a single YAML file.

    Raises:
        SchemaLoadError: If the file cannot be read or is invalid.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SchemaLoadError(f"Cannot read schema file '{path}': {exc}") from exc
    types = load_schema_text(text, source_label=str(path))
    logger.debug("Loaded %d record types from %s", len(types), path)
    return types


def load_schema_directory(directory: Path) -> list[RecordType]:
    """Load every schema file in *directory*, in file name order."""
    if not directory.is_dir():
        raise SchemaLoadError(f"Schema directory not found: {directory}")
    types: list[RecordType] = []
    for path in sorted(p for p in directory.iterdir() if p.suffix in SCHEMA_SUFFIXES):
        types.extend(load_schema_file(path))
    return types


def build_registry(
    paths: Iterable[Path] = (),
    *,
    include_defaults: bool = True,
    freeze: bool = True,
) -> SchemaRegistry:
    """Create a registry from schema files and directories.

    Args:
        paths: Schema files or directories to load, in order.
        include_defaults: Load the bundled definitions first.
        freeze: Freeze the registry before returning it.

    Raises:
        SchemaLoadError: If any schema source is invalid.
        DuplicateTypeError: If two sources define the same type name.
    """
    registry = SchemaRegistry()
    sources = [DEFINITIONS_DIR] if include_defaults else []
    sources.extend(paths)
    for source in sources:
        types = load_schema_directory(source) if source.is_dir() else load_schema_file(source)
        for record_type in types:
            registry.register(record_type)
    if freeze:
        registry.freeze()
    return registry


# ################
# Implementation
# ################

_PROFILE_PREFIX = "http://hl7.org/fhir/StructureDefinition/"
_CHOICE_SUFFIX = "[x]"


class _BindingEntry(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    strength: BindingStrength
    value_set: str | None = Field(default=None, alias="value-set")
    codes: dict[str, list[str]] = Field(default_factory=dict)


class _TypeEntry(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    code: str
    targets: list[str] = Field(default_factory=list)
    binding: _BindingEntry | None = None


class _FieldEntry(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: str
    type: str | None = None
    types: list[str | _TypeEntry] | None = None
    targets: list[str] = Field(default_factory=list)
    binding: _BindingEntry | None = None
    min: int = Field(default=0, ge=0)
    max: int | Literal["*"] = 1
    internal_name: str | None = Field(default=None, alias="internal-name")
    path: str | None = None
    ordered: bool = True
    xml_attribute: bool = Field(default=False, alias="xml-attribute")


class _TypeDefinition(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: str
    kind: RecordKind = RecordKind.DATATYPE
    open_content: bool = Field(default=False, alias="open-content")
    fields: list[_FieldEntry] = Field(default_factory=list)
    nested: list[_TypeDefinition] = Field(default_factory=list)


class _SchemaFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    types: list[_TypeDefinition] = Field(default_factory=list)


_TypeDefinition.model_rebuild()


def _build_type(
    entry: _TypeDefinition,
    parent: str | None,
    scopes: list[dict[str, str]],
    source_label: str,
) -> RecordType:
    """Convert a type definition entry, qualifying nested names under *parent*."""
    if "::" in entry.name or "." in entry.name:
        raise SchemaLoadError(f"{source_label}: type name '{entry.name}' must not be qualified")
    qualified = entry.name if parent is None else f"{parent}::{entry.name}"

    # Short nested names visible from this type, innermost scope first.
    local_scope = {nested.name: f"{qualified}::{nested.name}" for nested in entry.nested}
    visible = [local_scope, *scopes]

    seen: set[str] = set()
    fields: list[FieldDescriptor] = []
    for field_entry in entry.fields:
        descriptor = _build_field(field_entry, qualified, visible, source_label)
        if descriptor.name in seen:
            raise SchemaLoadError(f"{source_label}: duplicate field '{descriptor.name}' in type '{qualified}'")
        seen.add(descriptor.name)
        fields.append(descriptor)

    nested_types = tuple(_build_type(nested, qualified, visible, source_label) for nested in entry.nested)
    kind = RecordKind.BACKBONE if parent is not None else entry.kind
    return RecordType(
        name=qualified,
        kind=kind,
        fields=tuple(fields),
        nested_types=nested_types,
        open_content=entry.open_content,
    )


def _build_field(
    entry: _FieldEntry,
    owner: str,
    scopes: list[dict[str, str]],
    source_label: str,
) -> FieldDescriptor:
    location = f"{source_label}: {owner}.{entry.name}"
    is_choice = entry.name.endswith(_CHOICE_SUFFIX)
    base_name = entry.name[: -len(_CHOICE_SUFFIX)] if is_choice else entry.name

    if (entry.type is None) == (entry.types is None):
        raise SchemaLoadError(f"{location}: specify exactly one of 'type' or 'types'")

    if entry.type is not None:
        if is_choice:
            raise SchemaLoadError(f"{location}: choice fields must list their alternatives under 'types'")
        choices = [_build_choice(entry.type, entry.targets, entry.binding, scopes)]
    else:
        assert entry.types is not None
        if entry.targets or entry.binding is not None:
            raise SchemaLoadError(f"{location}: with 'types', put 'targets' and 'binding' on each alternative")
        choices = [
            _build_choice(t, [], None, scopes)
            if isinstance(t, str)
            else _build_choice(t.code, t.targets, t.binding, scopes)
            for t in entry.types
        ]
        if is_choice and len(choices) < 2:
            raise SchemaLoadError(f"{location}: choice fields need at least two alternative types")
        if not is_choice and len(choices) > 1:
            raise SchemaLoadError(f"{location}: fields with several types must be named '{base_name}[x]'")

    codes = [c.code for c in choices]
    if len(set(codes)) != len(codes):
        raise SchemaLoadError(f"{location}: duplicate alternative types {codes}")

    if entry.max != "*" and entry.max < entry.min:
        raise SchemaLoadError(f"{location}: max ({entry.max}) is lower than min ({entry.min})")
    if is_choice and (entry.max == "*" or entry.max > 1):
        raise SchemaLoadError(f"{location}: choice fields cannot repeat (max must be 0 or 1)")
    if entry.xml_attribute and (is_choice or entry.max == "*" or entry.max > 1 or not choices[0].is_primitive):
        raise SchemaLoadError(f"{location}: only single primitive fields can be XML attributes")

    return FieldDescriptor(
        name=base_name,
        internal_name=entry.internal_name or internal_name_for(base_name),
        path=entry.path or f"{owner}.{entry.name}",
        min_occurs=entry.min,
        max_occurs=Unbounded() if entry.max == "*" else Bounded(limit=entry.max),
        types=tuple(choices),
        ordered=entry.ordered,
        xml_attribute=entry.xml_attribute,
    )


def _build_choice(
    code: str,
    targets: list[str],
    binding: _BindingEntry | None,
    scopes: list[dict[str, str]],
) -> TypeChoice:
    return TypeChoice(
        code=_qualify(code, scopes),
        reference_targets=tuple(_normalize_target(t) for t in targets),
        binding=(
            CodeBinding(
                strength=binding.strength,
                value_set=binding.value_set,
                codes={system: tuple(codes) for system, codes in binding.codes.items()},
            )
            if binding is not None
            else None
        ),
    )


def _qualify(code: str, scopes: list[dict[str, str]]) -> str:
    """Resolve a short nested type name against the enclosing scopes."""
    for scope in scopes:
        if code in scope:
            return scope[code]
    return code


def _normalize_target(target: str) -> str:
    if target.startswith(_PROFILE_PREFIX):
        return target[len(_PROFILE_PREFIX) :]
    return target
