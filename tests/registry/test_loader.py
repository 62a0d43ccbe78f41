# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""Tests for the YAML schema loader and the bundled definitions."""

from pathlib import Path

import pytest

from fhirmodel.errors import DuplicateTypeError, SchemaLoadError
from fhirmodel.model import BindingStrength, Bounded, RecordKind, Unbounded
from fhirmodel.registry import (
    DEFINITIONS_DIR,
    build_registry,
    default_registry,
    load_schema_directory,
    load_schema_file,
    load_schema_text,
)

# ###############
# Test Helpers
# ###############

_SCHEDULE = """\
types:
  - name: Schedule
    kind: resource
    fields:
      - {name: id, type: id}
      - {name: active, type: boolean}
"""


def _write(tmp_path: Path, name: str, content: str) -> Path:
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return path


def _load_error(content: str, fragment: str) -> None:
    with pytest.raises(SchemaLoadError) as exc_info:
        load_schema_text(content)
    assert fragment in str(exc_info.value)


# ###############
# Field Definitions
# ###############


class TestFields:
    def test_minimal_type(self) -> None:
        (record_type,) = load_schema_text(_SCHEDULE)
        assert record_type.name == "Schedule"
        assert record_type.kind is RecordKind.RESOURCE
        assert [f.name for f in record_type.fields] == ["id", "active"]
        active = record_type.fields[1]
        assert active.path == "Schedule.active"
        assert active.min_occurs == 0
        assert active.max_occurs == Bounded(limit=1)

    def test_cardinality(self) -> None:
        content = """\
types:
  - name: Sample
    fields:
      - {name: many, type: string, max: "*"}
      - {name: some, type: string, min: 1, max: 3}
"""
        (record_type,) = load_schema_text(content)
        many, some = record_type.fields
        assert isinstance(many.max_occurs, Unbounded)
        assert some.cardinality() == "1..3"

    def test_max_below_min_is_rejected(self) -> None:
        _load_error(
            "types:\n  - name: S\n    fields:\n      - {name: x, type: string, min: 2, max: 1}\n",
            "lower than min",
        )

    def test_reserved_wire_names_get_local_internal_names(self) -> None:
        content = """\
types:
  - name: Sample
    fields:
      - {name: end, type: instant}
      - {name: when, type: dateTime}
      - {name: other, type: string, internal-name: custom_other}
"""
        (record_type,) = load_schema_text(content)
        assert [f.internal_name for f in record_type.fields] == ["local_end", "local_when", "custom_other"]
        assert record_type.fields[0].name == "end"

    def test_choice_field(self) -> None:
        content = """\
types:
  - name: Sample
    fields:
      - name: value[x]
        min: 1
        types:
          - boolean
          - {code: Reference, targets: [Patient]}
"""
        (record_type,) = load_schema_text(content)
        (value,) = record_type.fields
        assert value.name == "value"
        assert value.path == "Sample.value[x]"
        assert value.is_choice
        assert [c.code for c in value.types] == ["boolean", "Reference"]
        assert value.types[1].reference_targets == ("Patient",)
        assert list(value.wire_names()) == ["valueBoolean", "valueReference"]

    def test_choice_field_needs_two_types(self) -> None:
        _load_error(
            "types:\n  - name: S\n    fields:\n      - {name: 'v[x]', types: [boolean]}\n",
            "at least two",
        )

    def test_choice_field_needs_types_list(self) -> None:
        _load_error(
            "types:\n  - name: S\n    fields:\n      - {name: 'v[x]', type: boolean}\n",
            "under 'types'",
        )

    def test_several_types_need_choice_name(self) -> None:
        _load_error(
            "types:\n  - name: S\n    fields:\n      - {name: v, types: [boolean, string]}\n",
            "v[x]",
        )

    def test_type_and_types_are_exclusive(self) -> None:
        _load_error(
            "types:\n  - name: S\n    fields:\n      - {name: v, type: string, types: [string]}\n",
            "exactly one of",
        )

    def test_field_level_targets_with_types_are_rejected(self) -> None:
        content = """\
types:
  - name: S
    fields:
      - {name: 'v[x]', types: [string, Reference], targets: [Patient]}
"""
        _load_error(content, "on each alternative")

    def test_repeating_choice_field_is_rejected(self) -> None:
        """The values of a repeating choice would be regrouped by alternative on the wire."""
        content = """\
types:
  - name: Bag
    fields:
      - name: item[x]
        max: "*"
        types: [string, boolean]
"""
        _load_error(content, "choice fields cannot repeat")

    def test_choice_field_with_bounded_max_above_one_is_rejected(self) -> None:
        _load_error(
            "types:\n  - name: S\n    fields:\n      - {name: 'v[x]', types: [string, boolean], max: 2}\n",
            "cannot repeat",
        )

    def test_xml_attribute_field(self) -> None:
        (record_type,) = load_schema_text(
            "types:\n  - name: S\n    fields:\n      - {name: id, type: string, xml-attribute: true}\n"
        )
        assert record_type.fields[0].xml_attribute

    def test_repeating_xml_attribute_is_rejected(self) -> None:
        _load_error(
            "types:\n  - name: S\n    fields:\n      - {name: tag, type: string, max: '*', xml-attribute: true}\n",
            "can be XML attributes",
        )

    def test_duplicate_alternatives_are_rejected(self) -> None:
        _load_error(
            "types:\n  - name: S\n    fields:\n      - {name: 'v[x]', types: [string, string]}\n",
            "duplicate alternative",
        )

    def test_duplicate_fields_are_rejected(self) -> None:
        _load_error(
            "types:\n  - name: S\n    fields:\n      - {name: a, type: string}\n      - {name: a, type: code}\n",
            "duplicate field 'a'",
        )

    def test_profile_urls_are_normalised_to_type_names(self) -> None:
        content = """\
types:
  - name: Sample
    fields:
      - name: subject
        type: Reference
        targets: [http://hl7.org/fhir/StructureDefinition/Patient, Group]
"""
        (record_type,) = load_schema_text(content)
        assert record_type.fields[0].types[0].reference_targets == ("Patient", "Group")

    def test_binding(self) -> None:
        content = """\
types:
  - name: Sample
    fields:
      - name: status
        type: code
        binding:
          strength: required
          value-set: http://example.org/vs
          codes:
            http://example.org/cs: [a, b]
"""
        (record_type,) = load_schema_text(content)
        binding = record_type.fields[0].types[0].binding
        assert binding is not None
        assert binding.strength is BindingStrength.REQUIRED
        assert binding.value_set == "http://example.org/vs"
        assert binding.codes == {"http://example.org/cs": ("a", "b")}


# ###############
# Nested Types
# ###############


class TestNestedTypes:
    def test_nested_types_are_qualified_backbones(self) -> None:
        content = """\
types:
  - name: Account
    kind: resource
    fields:
      - {name: coverage, type: Coverage, max: "*"}
    nested:
      - name: Coverage
        kind: resource
        fields:
          - {name: detail, type: Detail}
        nested:
          - name: Detail
            fields:
              - {name: owner, type: Coverage}
"""
        (account,) = load_schema_text(content)
        assert account.fields[0].types[0].code == "Account::Coverage"
        (coverage,) = account.nested_types
        assert coverage.name == "Account::Coverage"
        assert coverage.kind is RecordKind.BACKBONE
        assert coverage.fields[0].types[0].code == "Account::Coverage::Detail"
        assert coverage.fields[0].path == "Account::Coverage.detail"
        (detail,) = coverage.nested_types
        # Outer scopes stay visible from deeper nesting.
        assert detail.fields[0].types[0].code == "Account::Coverage"

    def test_qualified_type_names_are_rejected(self) -> None:
        _load_error("types:\n  - name: A::B\n", "must not be qualified")


# ###############
# Files and Registries
# ###############


class TestFiles:
    def test_empty_text_defines_nothing(self) -> None:
        assert load_schema_text("") == []

    def test_invalid_yaml(self) -> None:
        _load_error("types: [unclosed\n", "Invalid YAML")

    def test_unknown_keys_are_rejected(self) -> None:
        _load_error("types:\n  - name: S\n    colour: red\n", "Invalid schema file")

    def test_load_schema_file(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "schedule.yaml", _SCHEDULE)
        assert [t.name for t in load_schema_file(path)] == ["Schedule"]

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(SchemaLoadError, match="Cannot read schema file"):
            load_schema_file(tmp_path / "missing.yaml")

    def test_error_message_names_the_file(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "broken.yaml", "types:\n  - name: S\n    fields:\n      - {name: 'v[x]', types: [a]}\n")
        with pytest.raises(SchemaLoadError, match="broken.yaml"):
            load_schema_file(path)

    def test_load_schema_directory_reads_yaml_files_in_order(self, tmp_path: Path) -> None:
        _write(tmp_path, "b.yml", "types:\n  - name: B\n")
        _write(tmp_path, "a.yaml", "types:\n  - name: A\n")
        _write(tmp_path, "notes.txt", "not a schema")
        assert [t.name for t in load_schema_directory(tmp_path)] == ["A", "B"]

    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(SchemaLoadError, match="not found"):
            load_schema_directory(tmp_path / "missing")

    def test_build_registry_adds_paths_to_defaults(self, tmp_path: Path) -> None:
        registry = build_registry([_write(tmp_path, "schedule.yaml", _SCHEDULE)])
        assert "Schedule" in registry
        assert "Slot" in registry
        assert registry.is_frozen

    def test_build_registry_without_defaults(self, tmp_path: Path) -> None:
        registry = build_registry([tmp_path], include_defaults=False, freeze=False)
        assert len(registry) == 0
        assert not registry.is_frozen

    def test_build_registry_rejects_redefined_types(self, tmp_path: Path) -> None:
        with pytest.raises(DuplicateTypeError):
            build_registry([_write(tmp_path, "slot.yaml", "types:\n  - name: Slot\n")])


# ###############
# Bundled Definitions
# ###############


class TestBundledDefinitions:
    def test_every_bundled_file_loads(self) -> None:
        paths = sorted(DEFINITIONS_DIR.glob("*.yaml"))
        assert paths
        for path in paths:
            assert load_schema_file(path)

    def test_slot_fields(self) -> None:
        slot = default_registry().lookup("Slot")
        names = [f.name for f in slot.fields]
        assert names.index("status") < names.index("start") < names.index("end")
        end = slot.field("end")
        assert end is not None
        assert end.internal_name == "local_end"
        assert end.is_required
        status = slot.field("status")
        assert status is not None
        assert status.types[0].binding is not None
        assert status.types[0].binding.strength is BindingStrength.REQUIRED

    def test_medication_statement_choice(self) -> None:
        medication = default_registry().lookup("MedicationStatement").field("medication")
        assert medication is not None
        assert medication.is_choice
        assert medication.is_required
        assert list(medication.wire_names()) == ["medicationCodeableConcept", "medicationReference"]
        assert medication.types[1].reference_targets == ("Medication",)

    def test_reserved_word_in_datatype(self) -> None:
        dosage = default_registry().lookup("Dosage")
        method = dosage.field("method")
        assert method is not None
        assert method.internal_name == "local_method"
        assert dosage.field("doseAndRate").types[0].code == "Dosage::DoseAndRate"  # type: ignore[union-attr]
