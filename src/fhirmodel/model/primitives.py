# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""Scalar primitive types: Python value types, lexical patterns, and text forms.

Every field whose declared type code appears in :data:`PRIMITIVES` is a
scalar leaf. All other type codes name composite record types resolved
through the schema registry.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

# ###############
# Public Interface
# ###############


@dataclass(frozen=True)
class Primitive:
    """A scalar primitive type.

    Attributes:
        name: The type code, e.g. ``dateTime``.
        python_types: Python types an in-memory value may have.
        pattern: Regular expression the text form must match in full.
    """

    name: str
    python_types: tuple[type, ...]
    pattern: re.Pattern[str]

    def accepts(self, value: Any) -> bool:
        """Return True if *value* has an acceptable Python type."""
        # bool is a subclass of int; only the boolean primitive takes it.
        if isinstance(value, bool):
            return bool in self.python_types
        return isinstance(value, self.python_types)

    def matches(self, value: Any) -> bool:
        """Return True if *value* is accepted and its text form matches the pattern."""
        if not self.accepts(value):
            return False
        return self.pattern.fullmatch(self.render(value)) is not None

    def parse(self, text: str) -> Any:
        """Convert a text form (e.g. an XML ``value`` attribute) to a Python value.

        Raises:
            ValueError: If *text* is not a valid lexical form of this primitive.
        """
        if self.pattern.fullmatch(text) is None:
            raise ValueError(f"{text!r} is not a valid {self.name}")
        if bool in self.python_types:
            return text == "true"
        if int in self.python_types and Decimal not in self.python_types:
            return int(text)
        if Decimal in self.python_types:
            try:
                return Decimal(text)
            except InvalidOperation as exc:
                raise ValueError(f"{text!r} is not a valid {self.name}") from exc
        return text

    def render(self, value: Any) -> str:
        """Return the text form of *value*."""
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def coerce(self, value: Any) -> Any:
        """Convert a key/value document scalar to the in-memory representation.

        Raises:
            ValueError: If *value* cannot represent this primitive.
        """
        if Decimal in self.python_types and isinstance(value, float):
            return Decimal(repr(value))
        if Decimal in self.python_types and isinstance(value, int) and not isinstance(value, bool):
            return Decimal(value)
        if not self.accepts(value):
            raise ValueError(f"expected {self.name}, got {type(value).__name__}")
        return value


def lookup_primitive(code: str) -> Primitive | None:
    """Return the primitive for a type code, or None for composite types."""
    return PRIMITIVES.get(code)


def is_primitive(code: str) -> bool:
    """Return True if *code* names a scalar primitive type."""
    return code in PRIMITIVES


# ################
# Implementation
# ################

_YEAR = r"([0-9]([0-9]([0-9][1-9]|[1-9]0)|[1-9]00)|[1-9]000)"
_MONTH = r"(0[1-9]|1[0-2])"
_DAY = r"(0[1-9]|[1-2][0-9]|3[0-1])"
_TIME = r"([01][0-9]|2[0-3]):[0-5][0-9]:([0-5][0-9]|60)(\.[0-9]+)?"
_ZONE = r"(Z|(\+|-)((0[0-9]|1[0-3]):[0-5][0-9]|14:00))"


def _primitive(name: str, python_types: tuple[type, ...], pattern: str) -> Primitive:
    return Primitive(name=name, python_types=python_types, pattern=re.compile(f"(?:{pattern})", re.DOTALL))


_STRING_LIKE = (str,)

PRIMITIVES: dict[str, Primitive] = {
    p.name: p
    for p in (
        _primitive("base64Binary", _STRING_LIKE, r"(\s*([0-9a-zA-Z\+/=]){4}\s*)+"),
        _primitive("boolean", (bool,), r"true|false"),
        _primitive("canonical", _STRING_LIKE, r"\S*"),
        _primitive("code", _STRING_LIKE, r"[^\s]+(\s[^\s]+)*"),
        _primitive("date", _STRING_LIKE, rf"{_YEAR}(-{_MONTH}(-{_DAY})?)?"),
        _primitive("dateTime", _STRING_LIKE, rf"{_YEAR}(-{_MONTH}(-{_DAY}(T{_TIME}{_ZONE})?)?)?"),
        _primitive("decimal", (Decimal, int), r"-?(0|[1-9][0-9]*)(\.[0-9]+)?([eE][+-]?[0-9]+)?"),
        _primitive("id", _STRING_LIKE, r"[A-Za-z0-9\-\.]{1,64}"),
        _primitive("instant", _STRING_LIKE, rf"{_YEAR}-{_MONTH}-{_DAY}T{_TIME}{_ZONE}"),
        _primitive("integer", (int,), r"-?([0]|([1-9][0-9]*))"),
        _primitive("markdown", _STRING_LIKE, r"[ \r\n\t\S]+"),
        _primitive("oid", _STRING_LIKE, r"urn:oid:[0-2](\.(0|[1-9][0-9]*))+"),
        _primitive("positiveInt", (int,), r"[1-9][0-9]*"),
        _primitive("string", _STRING_LIKE, r"[ \r\n\t\S]+"),
        _primitive("time", _STRING_LIKE, _TIME),
        _primitive("unsignedInt", (int,), r"[0]|([1-9][0-9]*)"),
        _primitive("uri", _STRING_LIKE, r"\S*"),
        _primitive("url", _STRING_LIKE, r"\S*"),
        _primitive("uuid", _STRING_LIKE, r"urn:uuid:[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"),
    )
}
