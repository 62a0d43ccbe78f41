# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""Tests for the primitive type table."""

from decimal import Decimal

import pytest

from fhirmodel.model import PRIMITIVES, Primitive, is_primitive, lookup_primitive

# ###############
# Test Helpers
# ###############


def _p(code: str) -> Primitive:
    primitive = lookup_primitive(code)
    assert primitive is not None, code
    return primitive


# ###############
# Lookup
# ###############


def test_lookup_known_and_composite_codes() -> None:
    assert lookup_primitive("string") is PRIMITIVES["string"]
    assert lookup_primitive("Quantity") is None
    assert is_primitive("instant")
    assert not is_primitive("CodeableConcept")


# ###############
# Python Types
# ###############


class TestAccepts:
    def test_boolean_takes_only_bool(self) -> None:
        assert _p("boolean").accepts(True)
        assert not _p("boolean").accepts(1)

    def test_integer_rejects_bool(self) -> None:
        """bool is an int subclass but not an integer value."""
        assert _p("integer").accepts(5)
        assert not _p("integer").accepts(True)

    def test_decimal_takes_decimal_and_int(self) -> None:
        assert _p("decimal").accepts(Decimal("1.5"))
        assert _p("decimal").accepts(2)
        assert not _p("decimal").accepts("1.5")

    def test_strings(self) -> None:
        assert _p("code").accepts("free")
        assert not _p("code").accepts(3)


# ###############
# Lexical Forms
# ###############


@pytest.mark.parametrize(
    "code, text",
    [
        ("code", "busy-tentative"),
        ("date", "2024"),
        ("date", "2024-02"),
        ("date", "2024-02-29"),
        ("dateTime", "2024-01-01T09:00:00+01:00"),
        ("instant", "2024-01-01T09:00:00.123Z"),
        ("time", "23:59:60"),
        ("id", "a-B.9"),
        ("oid", "urn:oid:1.2.36.1"),
        ("uuid", "urn:uuid:c757873d-ec9a-4326-a141-556f43239520"),
        ("positiveInt", "42"),
        ("unsignedInt", "0"),
        ("integer", "-17"),
        ("decimal", "1.50"),
        ("decimal", "-0.5e10"),
        ("string", "multi\nline"),
    ],
)
def test_valid_lexical_forms(code: str, text: str) -> None:
    assert _p(code).pattern.fullmatch(text) is not None


@pytest.mark.parametrize(
    "code, text",
    [
        ("code", " busy"),
        ("code", "busy  free"),
        ("date", "2024-13"),
        ("instant", "2024-01-01"),
        ("instant", "2024-01-01T09:00:00"),
        ("id", "x" * 65),
        ("positiveInt", "0"),
        ("integer", "01"),
        ("boolean", "True"),
        ("uuid", "c757873d-ec9a-4326-a141-556f43239520"),
        ("string", ""),
    ],
)
def test_invalid_lexical_forms(code: str, text: str) -> None:
    assert _p(code).pattern.fullmatch(text) is None


# ###############
# Parse / Render / Coerce
# ###############


class TestParse:
    def test_parse_typed_values(self) -> None:
        assert _p("boolean").parse("true") is True
        assert _p("boolean").parse("false") is False
        assert _p("positiveInt").parse("42") == 42
        assert _p("instant").parse("2024-01-01T09:00:00Z") == "2024-01-01T09:00:00Z"

    def test_parse_decimal_keeps_precision(self) -> None:
        value = _p("decimal").parse("1.50")
        assert isinstance(value, Decimal)
        assert str(value) == "1.50"

    def test_parse_rejects_invalid_text(self) -> None:
        with pytest.raises(ValueError, match="not a valid positiveInt"):
            _p("positiveInt").parse("0")
        with pytest.raises(ValueError, match="not a valid instant"):
            _p("instant").parse("tomorrow")

    def test_render(self) -> None:
        assert _p("boolean").render(True) == "true"
        assert _p("decimal").render(Decimal("1.50")) == "1.50"
        assert _p("integer").render(-3) == "-3"

    def test_coerce_numbers_to_decimal(self) -> None:
        assert _p("decimal").coerce(1.5) == Decimal("1.5")
        assert _p("decimal").coerce(0.1) == Decimal("0.1")
        assert isinstance(_p("decimal").coerce(2), Decimal)

    def test_coerce_rejects_wrong_types(self) -> None:
        with pytest.raises(ValueError, match="expected positiveInt"):
            _p("positiveInt").coerce("high")
        with pytest.raises(ValueError):
            _p("boolean").coerce("true")

    def test_matches_checks_type_and_pattern(self) -> None:
        assert _p("instant").matches("2024-01-01T09:00:00Z")
        assert not _p("instant").matches("tomorrow")
        assert not _p("instant").matches(20240101)
