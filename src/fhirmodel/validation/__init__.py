# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""Cardinality, choice, coded value and reference checks for record instances."""

from fhirmodel.validation.checks import (
    BINDING_SEVERITY,
    Severity,
    ValidationIssue,
    has_errors,
    validate,
)

__all__ = [
    "BINDING_SEVERITY",
    "Severity",
    "ValidationIssue",
    "has_errors",
    "validate",
]
