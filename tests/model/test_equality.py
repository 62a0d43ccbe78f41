# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""Tests for structural equality and hashing of record instances."""

import xml.etree.ElementTree as ET
from decimal import Decimal

import pytest

from fhirmodel.errors import UnknownTypeError
from fhirmodel.model import (
    Bounded,
    Choice,
    EmptyPolicy,
    FieldDescriptor,
    RecordInstance,
    RecordType,
    TypeChoice,
    Unbounded,
    equal,
    record_hash,
)
from fhirmodel.registry import SchemaRegistry
from fhirmodel.settings import Settings

# ###############
# Test Helpers
# ###############


def _field(
    name: str,
    *codes: str,
    min_occurs: int = 0,
    repeating: bool = False,
    ordered: bool = True,
) -> FieldDescriptor:
    return FieldDescriptor(
        name=name,
        internal_name=name,
        path=f"Tagged.{name}",
        min_occurs=min_occurs,
        max_occurs=Unbounded() if repeating else Bounded(limit=1),
        types=tuple(TypeChoice(code=code) for code in codes),
        ordered=ordered,
    )


@pytest.fixture
def registry() -> SchemaRegistry:
    tagged = RecordType(
        name="Tagged",
        open_content=True,
        fields=(
            _field("tag", "string", repeating=True, ordered=False),
            _field("step", "string", repeating=True),
            _field("note", "string"),
            _field("count", "integer"),
            _field("amount", "decimal"),
            _field("value", "boolean", "integer"),
            _field("child", "Tagged"),
            _field("items", "string", min_occurs=1, repeating=True),
        ),
    )
    element = RecordType(name="Element", fields=(_field("id", "string"),))
    return SchemaRegistry([tagged, element])


def _tagged(**values: object) -> RecordInstance:
    return RecordInstance(type_name="Tagged", values=dict(values))


def _marker(element_id: str) -> RecordInstance:
    return RecordInstance(type_name="Element", values={"id": element_id})


def _assert_equal(a: RecordInstance, b: RecordInstance, registry: SchemaRegistry, **kwargs: object) -> None:
    assert equal(a, b, registry, **kwargs)
    assert equal(b, a, registry, **kwargs)
    assert record_hash(a, registry, **kwargs) == record_hash(b, registry, **kwargs)


# ###############
# Basic Comparison
# ###############


def test_identical_instances_are_equal(registry: SchemaRegistry) -> None:
    a = _tagged(note="x", count=3, step=["a", "b"])
    b = _tagged(note="x", count=3, step=["a", "b"])
    _assert_equal(a, b, registry)


def test_differing_values_are_not_equal(registry: SchemaRegistry) -> None:
    assert not equal(_tagged(note="x"), _tagged(note="y"), registry)
    assert not equal(_tagged(note="x"), _tagged(), registry)


def test_different_type_names_are_not_equal(registry: SchemaRegistry) -> None:
    assert not equal(_tagged(), RecordInstance(type_name="Other"), registry)


def test_unknown_type_raises(registry: SchemaRegistry) -> None:
    with pytest.raises(UnknownTypeError):
        equal(RecordInstance(type_name="Other"), RecordInstance(type_name="Other"), registry)


def test_bool_is_not_equal_to_int(registry: SchemaRegistry) -> None:
    """True == 1 in Python, but a boolean value differs from an integer."""
    assert not equal(_tagged(count=1), _tagged(count=True), registry)


def test_decimals_compare_by_value(registry: SchemaRegistry) -> None:
    _assert_equal(_tagged(amount=Decimal("1.50")), _tagged(amount=Decimal("1.5")), registry)
    _assert_equal(_tagged(amount=Decimal("2")), _tagged(amount=2), registry)


def test_nested_instances_compare_structurally(registry: SchemaRegistry) -> None:
    a = _tagged(child=_tagged(note="inner"))
    b = _tagged(child=_tagged(note="inner"))
    _assert_equal(a, b, registry)
    assert not equal(a, _tagged(child=_tagged(note="other")), registry)


def test_choices_compare_type_code_and_value(registry: SchemaRegistry) -> None:
    a = _tagged(value=Choice("boolean", True))
    _assert_equal(a, _tagged(value=Choice("boolean", True)), registry)
    assert not equal(a, _tagged(value=Choice("integer", 1)), registry)
    assert not equal(a, _tagged(value=True), registry)


def test_undeclared_values_take_part(registry: SchemaRegistry) -> None:
    assert not equal(_tagged(stray=1), _tagged(stray=2), registry)
    assert equal(_tagged(stray=1), _tagged(stray=1), registry)


# ###############
# Ordering
# ###############


class TestOrdering:
    def test_ordered_field_is_order_sensitive(self, registry: SchemaRegistry) -> None:
        assert not equal(_tagged(step=["a", "b"]), _tagged(step=["b", "a"]), registry)

    def test_unordered_field_is_order_insensitive(self, registry: SchemaRegistry) -> None:
        _assert_equal(_tagged(tag=["a", "b", "c"]), _tagged(tag=["c", "a", "b"]), registry)

    def test_unordered_field_compares_as_multiset(self, registry: SchemaRegistry) -> None:
        assert not equal(_tagged(tag=["a", "a", "b"]), _tagged(tag=["a", "b", "b"]), registry)
        assert not equal(_tagged(tag=["a", "b"]), _tagged(tag=["a", "b", "b"]), registry)

    def test_unordered_nested_instances(self, registry: SchemaRegistry) -> None:
        a = _tagged(tag=["x"], child=_tagged(tag=["p", "q"]))
        b = _tagged(tag=["x"], child=_tagged(tag=["q", "p"]))
        _assert_equal(a, b, registry)

    def test_single_value_equals_one_element_list(self, registry: SchemaRegistry) -> None:
        _assert_equal(_tagged(step="a"), _tagged(step=["a"]), registry)
        _assert_equal(_tagged(note="a"), _tagged(note=["a"]), registry)


# ###############
# Empty Policy
# ###############


class TestEmptyPolicy:
    def test_absent_and_empty_match_by_default(self, registry: SchemaRegistry) -> None:
        _assert_equal(_tagged(), _tagged(step=[]), registry)

    def test_distinct_policy_keeps_absent_and_empty_apart(self, registry: SchemaRegistry) -> None:
        assert not equal(_tagged(), _tagged(step=[]), registry, empty_policy=EmptyPolicy.DISTINCT)

    def test_policy_from_settings(self, registry: SchemaRegistry) -> None:
        distinct = Settings(empty_policy=EmptyPolicy.DISTINCT)
        assert not equal(_tagged(), _tagged(step=[]), registry, settings=distinct)
        assert equal(_tagged(), _tagged(step=[]), registry, settings=Settings())

    def test_explicit_policy_overrides_settings(self, registry: SchemaRegistry) -> None:
        distinct = Settings(empty_policy=EmptyPolicy.DISTINCT)
        policy = EmptyPolicy.OPTIONAL_EQUIVALENT
        _assert_equal(_tagged(), _tagged(step=[]), registry, empty_policy=policy, settings=distinct)

    def test_required_field_keeps_absent_and_empty_apart(self, registry: SchemaRegistry) -> None:
        policy = EmptyPolicy.OPTIONAL_EQUIVALENT
        assert not equal(_tagged(), _tagged(items=[]), registry, empty_policy=policy)

    def test_none_is_absent(self, registry: SchemaRegistry) -> None:
        _assert_equal(_tagged(note=None), _tagged(), registry)


# ###############
# Preserved Content
# ###############


class TestExtraContent:
    def test_key_value_extras_compare(self, registry: SchemaRegistry) -> None:
        a = _tagged()
        a.extra["custom"] = {"x": 1}
        b = _tagged()
        b.extra["custom"] = {"x": 1}
        assert equal(a, b, registry)
        b.extra["custom"] = {"x": 2}
        assert not equal(a, b, registry)

    def test_xml_extras_ignore_indentation(self, registry: SchemaRegistry) -> None:
        a = _tagged()
        a.extra["custom"] = [ET.fromstring('<custom><inner value="1"/></custom>')]
        b = _tagged()
        b.extra["custom"] = [ET.fromstring('<custom>\n    <inner value="1"/>\n</custom>')]
        assert equal(a, b, registry)


# ###############
# Primitive Ids and Extensions
# ###############


class TestPrimitiveElements:
    def test_element_entries_are_compared(self, registry: SchemaRegistry) -> None:
        a = _tagged(note="x")
        a.primitive_elements["note"] = _marker("n1")
        b = _tagged(note="x")
        assert not equal(a, b, registry)
        b.primitive_elements["note"] = _marker("n1")
        _assert_equal(a, b, registry)

    def test_unordered_values_pair_with_their_entries(self, registry: SchemaRegistry) -> None:
        a = _tagged(tag=["x", "y"])
        a.primitive_elements["tag"] = [_marker("first"), None]
        b = _tagged(tag=["y", "x"])
        b.primitive_elements["tag"] = [None, _marker("first")]
        _assert_equal(a, b, registry)
        c = _tagged(tag=["y", "x"])
        c.primitive_elements["tag"] = [_marker("first"), None]
        assert not equal(a, c, registry)

    def test_entry_without_value(self, registry: SchemaRegistry) -> None:
        a = _tagged()
        a.primitive_elements["note"] = _marker("n1")
        assert not equal(a, _tagged(), registry)
        b = _tagged()
        b.primitive_elements["note"] = _marker("n1")
        _assert_equal(a, b, registry)


# ###############
# Default Registry
# ###############


def test_default_registry_is_used_when_none_given() -> None:
    a = RecordInstance(type_name="Slot", values={"status": "free", "local_end": "2024-01-01T09:30:00Z"})
    b = RecordInstance(type_name="Slot", values={"status": "free", "local_end": "2024-01-01T09:30:00Z"})
    assert equal(a, b)
    assert record_hash(a) == record_hash(b)
