# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""Codec and validation settings, optionally loaded from a YAML file."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from fhirmodel.errors import SettingsError
from fhirmodel.model.equality import EmptyPolicy

# ###############
# Public Interface
# ###############

SETTINGS_FILE_NAME = ".fhirmodel.yaml"

FHIR_NAMESPACE = "http://hl7.org/fhir"


class Settings(BaseModel):
    """Options shared by the codecs, the validator, and the CLI.

    Attributes:
        strict: Raise the first document issue instead of collecting issues.
        resource_type_key: Reserved key naming the concrete record type of
            top-level and contained resources in key/value documents.
        xml_namespace: Namespace of every element in XML documents; None for
            no namespace.
        empty_policy: How absent and empty repeating fields compare.
        schema_paths: Extra schema files or directories, relative to the
            settings file.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    strict: bool = False
    resource_type_key: str = Field(default="resourceType", alias="resource-type-key", min_length=1)
    xml_namespace: str | None = Field(default=FHIR_NAMESPACE, alias="xml-namespace")
    empty_policy: EmptyPolicy = Field(default=EmptyPolicy.OPTIONAL_EQUIVALENT, alias="empty-policy")
    schema_paths: tuple[str, ...] = Field(default=(), alias="schema-paths")


DEFAULT_SETTINGS = Settings()


def load_settings(path: Path) -> Settings:
    """Load and validate a settings file.

    An empty file yields the default settings. Relative ``schema-paths``
    entries are resolved against the directory containing *path*.

    Raises:
        SettingsError: If the file cannot be read, contains invalid YAML, or
            does not conform to the expected schema.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise SettingsError(f"Settings file not found: {path}") from None
    except OSError as exc:
        raise SettingsError(f"Cannot read settings file '{path}': {exc}") from exc

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise SettingsError(f"Invalid YAML in settings file '{path}': {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise SettingsError(f"{path}: settings must be a YAML mapping")

    try:
        settings = Settings.model_validate(data)
    except ValidationError as exc:
        raise SettingsError(f"Invalid settings file '{path}': {exc}") from exc

    base = path.parent
    resolved = tuple(str((base / p).resolve()) for p in settings.schema_paths)
    return settings.model_copy(update={"schema_paths": resolved})
