#!/usr/bin/env python3
# Copyright 2026 fhirmodel Contributors
# SPDX-License-Identifier: Apache-2.0

"""Run the fhirmodel CI checks locally: format, lint, type check, tests, docs, and build.

Pass step names to run a subset, e.g. ``tools/ci.py lint tests``.
"""

import subprocess
import sys
import time

from yachalk import chalk

# ###############
# Public Interface
# ###############

STEPS: dict[str, tuple[str, list[str]]] = {
    "format": ("Format check", ["uv", "run", "ruff", "format", "--check", "src/", "tests/", "tools/"]),
    "lint": ("Lint", ["uv", "run", "ruff", "check", "src/", "tests/", "tools/"]),
    "types": ("Type check", ["uv", "run", "ty", "check", "src/"]),
    "tests": ("Tests", ["uv", "run", "pytest", "--cov=fhirmodel", "--cov-report=term-missing"]),
    "docs": ("Docs", ["uv", "run", "sphinx-build", "-q", "-W", "docs/sphinx", "build/docs"]),
    "build": ("Build", ["uv", "build"]),
}


def main(argv: list[str] | None = None) -> int:
    """Run the selected CI steps (all by default) and report results."""
    selected = argv if argv is not None else sys.argv[1:]
    unknown = [key for key in selected if key not in STEPS]
    if unknown:
        print(chalk.red(f"Unknown step(s): {', '.join(unknown)}. Choose from: {', '.join(STEPS)}"))
        return 2

    results: list[tuple[str, bool, float]] = []
    for key in selected or list(STEPS):
        name, cmd = STEPS[key]
        _banner(name)
        start = time.monotonic()
        proc = subprocess.run(cmd, cwd=_repo_root())
        results.append((name, proc.returncode == 0, time.monotonic() - start))

    _banner("  Summary")
    for name, passed, elapsed in results:
        status = "PASS" if passed else "FAIL"
        colour = chalk.green if passed else chalk.red
        print(colour(f"  {status}  {name} ({elapsed:.1f}s)"))

    print()
    return 0 if all(passed for _, passed, _ in results) else 1


# ################
# Implementation
# ################


def _banner(title: str) -> None:
    sep = chalk.blue("=" * 60)
    print(f"\n{sep}")
    print(chalk.blue(title))
    print(sep)


def _repo_root() -> str:
    import pathlib

    return str(pathlib.Path(__file__).parent.parent)


if __name__ == "__main__":
    sys.exit(main())
