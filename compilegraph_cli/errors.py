"""Exception hierarchy shared by the scanner, graph builder and CLI."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union


class CompileGraphError(Exception):
    """Base class for every analysis failure."""


class SourceFileNotFound(CompileGraphError):
    """The source file of a unit cannot be read."""

    def __init__(self, source_file: Union[str, Path]) -> None:
        super().__init__(f"source file not found: {source_file}")
        self.source_file = str(source_file)


class ModuleNotFound(CompileGraphError):
    """The requested module is not defined in the source file."""

    def __init__(self, source_file: Union[str, Path], module: str) -> None:
        super().__init__(f"module {module} is not defined in {source_file}")
        self.source_file = str(source_file)
        self.module = module


class ParseError(CompileGraphError):
    """Malformed source text."""

    def __init__(self, message: str, line: int, source_file: Optional[str] = None) -> None:
        location = f"{source_file}:{line}" if source_file else f"line {line}"
        super().__init__(f"{location}: {message}")
        self.message = message
        self.line = line
        self.source_file = source_file


class ManifestError(CompileGraphError):
    """The build manifest is missing or malformed."""
