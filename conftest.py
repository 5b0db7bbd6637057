"""Pytest configuration running the Python blocks of the documentation."""

from os import chdir, getcwd
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Any

from sybil import Sybil
from sybil.parsers.markdown import PythonCodeBlockParser, SkipParser

DOCS = Path(__file__).parent / "docs"


def enter_scratch_directory(namespace: dict[str, Any]) -> None:
    """Run each documentation page inside its own temporary directory."""
    scratch = TemporaryDirectory()
    namespace["_previous_directory"] = getcwd()
    namespace["_scratch_directory"] = scratch
    chdir(scratch.name)


def leave_scratch_directory(namespace: dict[str, Any]) -> None:
    """Return to the original directory and remove the scratch directory."""
    chdir(namespace.pop("_previous_directory"))
    namespace.pop("_scratch_directory").cleanup()


pytest_collect_file = Sybil(
    parsers=[
        PythonCodeBlockParser(),
        SkipParser(),
    ],
    path=str(DOCS),
    pattern="**/*.md",
    setup=enter_scratch_directory,
    teardown=leave_scratch_directory,
).pytest()
