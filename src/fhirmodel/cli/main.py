# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""Entry point for the fhirmodel command-line interface."""

import argparse
import logging
import sys
from pathlib import Path
from types import ModuleType

from fhirmodel.codec import dict_codec, xml_codec
from fhirmodel.errors import DocumentError, FhirModelError, SchemaError, SettingsError
from fhirmodel.registry import build_registry
from fhirmodel.registry.registry import SchemaRegistry
from fhirmodel.settings import SETTINGS_FILE_NAME, Settings, load_settings
from fhirmodel.validation import Severity, validate

# ###############
# Public Interface
# ###############


def main() -> None:
    """Run the fhirmodel CLI."""
    parser = argparse.ArgumentParser(
        prog="fhirmodel",
        description="fhirmodel: schema-driven healthcare records in JSON and XML",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    # types subcommand
    types_parser = subparsers.add_parser(
        "types",
        help="List the registered record types",
        description="List the bundled record types and any loaded from --schema paths.",
    )
    _add_schema_arguments(types_parser)

    # validate subcommand
    validate_parser = subparsers.add_parser(
        "validate",
        help="Check a JSON or XML document against its record type",
        description=(
            "Read a document (format chosen by the .json or .xml suffix), report document "
            "issues and validation findings, and exit with code 1 if any is an error."
        ),
    )
    validate_parser.add_argument("file", help="Document to validate")
    validate_parser.add_argument(
        "--type",
        dest="type_name",
        help="Record type of the document (default: from the document)",
    )
    validate_parser.add_argument("--strict", action="store_true", help="Stop at the first document issue")
    _add_schema_arguments(validate_parser)

    # convert subcommand
    convert_parser = subparsers.add_parser(
        "convert",
        help="Convert a document between JSON and XML",
        description="Read SOURCE and write TARGET; formats are chosen by the .json or .xml suffix.",
    )
    convert_parser.add_argument("source", help="Document to read")
    convert_parser.add_argument("target", help="Document to write")
    convert_parser.add_argument(
        "--type",
        dest="type_name",
        help="Record type of the document (default: from the document)",
    )
    _add_schema_arguments(convert_parser)

    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        sys.exit(0)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    sys.exit(_dispatch(args))


# ################
# Implementation
# ################

_CODECS: dict[str, ModuleType] = {
    ".json": dict_codec,
    ".xml": xml_codec,
}


def _add_schema_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--schema",
        action="append",
        default=[],
        metavar="PATH",
        help="Additional schema file or directory (may be repeated)",
    )
    parser.add_argument(
        "--config",
        help=f"Settings file (default: {SETTINGS_FILE_NAME} in the current directory, if present)",
    )


def _dispatch(args: argparse.Namespace) -> int:
    """Dispatch to the appropriate subcommand handler."""
    try:
        if args.command == "types":
            return _cmd_types(args)
        if args.command == "validate":
            return _cmd_validate(args)
        if args.command == "convert":
            return _cmd_convert(args)
    except (SchemaError, SettingsError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


def _load_context(args: argparse.Namespace) -> tuple[SchemaRegistry, Settings]:
    """Load settings and build the registry they describe.

    Raises:
        SettingsError: If the settings file is invalid.
        SchemaError: If a schema path is invalid.
    """
    if args.config is not None:
        settings = load_settings(Path(args.config))
    else:
        default_file = Path.cwd() / SETTINGS_FILE_NAME
        settings = load_settings(default_file) if default_file.exists() else Settings()
    paths = [Path(p) for p in (*settings.schema_paths, *args.schema)]
    return build_registry(paths), settings


def _codec_for(path: Path) -> ModuleType | None:
    codec = _CODECS.get(path.suffix.lower())
    if codec is None:
        print(f"Error: cannot tell the format of '{path}'; use a .json or .xml suffix.", file=sys.stderr)
    return codec


def _cmd_types(args: argparse.Namespace) -> int:
    """Handle the types subcommand."""
    registry, _ = _load_context(args)
    for record_type in sorted(registry, key=lambda t: t.name):
        print(f"{record_type.name}  ({record_type.kind.value}, {len(record_type.fields)} fields)")
    return 0


def _cmd_validate(args: argparse.Namespace) -> int:
    """Handle the validate subcommand."""
    path = Path(args.file)
    if not path.exists():
        print(f"Error: file '{path}' does not exist.", file=sys.stderr)
        return 1
    codec = _codec_for(path)
    if codec is None:
        return 1

    registry, settings = _load_context(args)
    strict = args.strict or settings.strict
    try:
        result = codec.read_document(path, args.type_name, registry, settings, strict=strict)
    except (DocumentError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    has_errors = False
    for issue in result.issues:
        print(f"Error: {issue}", file=sys.stderr)
        has_errors = True
    for finding in validate(result.instance, registry=registry):
        if finding.severity is Severity.ERROR:
            print(f"Error: {finding.location}: {finding.message}", file=sys.stderr)
            has_errors = True
        elif finding.severity is Severity.WARNING:
            print(f"Warning: {finding.location}: {finding.message}")
        else:
            print(f"Info: {finding.location}: {finding.message}")

    if has_errors:
        return 1

    print(f"{path}: no errors found.")
    return 0


def _cmd_convert(args: argparse.Namespace) -> int:
    """Handle the convert subcommand."""
    source = Path(args.source)
    target = Path(args.target)
    if not source.exists():
        print(f"Error: file '{source}' does not exist.", file=sys.stderr)
        return 1
    reader = _codec_for(source)
    writer = _codec_for(target)
    if reader is None or writer is None:
        return 1

    registry, settings = _load_context(args)
    try:
        result = reader.read_document(source, args.type_name, registry, settings)
        for issue in result.issues:
            print(f"Warning: {issue}")
        writer.write_document(target, result.instance, registry, settings)
    except (FhirModelError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Wrote {target}.")
    return 0
