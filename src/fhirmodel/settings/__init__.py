# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""Codec and validation settings."""

from fhirmodel.settings.context import resolve_context
from fhirmodel.settings.options import (
    DEFAULT_SETTINGS,
    FHIR_NAMESPACE,
    SETTINGS_FILE_NAME,
    Settings,
    load_settings,
)

__all__ = [
    "DEFAULT_SETTINGS",
    "FHIR_NAMESPACE",
    "SETTINGS_FILE_NAME",
    "Settings",
    "load_settings",
    "resolve_context",
]
