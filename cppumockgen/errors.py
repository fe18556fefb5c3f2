#!/usr/bin/env python3
"""
Error types raised by the mock generator.

Every failure that should stop a generation session derives from MockGenError.
The `label` is the prefix shown on the console when the error is reported.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence


class DiagnosticSeverity(Enum):
    IGNORED = 0
    NOTE = 1
    WARNING = 2
    ERROR = 3
    FATAL = 4

    @property
    def is_error(self) -> bool:
        return self in (DiagnosticSeverity.ERROR, DiagnosticSeverity.FATAL)


@dataclass(frozen=True)
class Diagnostic:
    """A diagnostic reported by the C/C++ front-end, already formatted."""
    severity: DiagnosticSeverity
    text: str


class MockGenError(Exception):
    label = "ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigError(MockGenError):
    """Malformed override rule text."""
    label = "CONFIG ERROR"

    def __init__(self, raw: str, message: str) -> None:
        super().__init__(f"{message} in override option '{raw}'")
        self.raw = raw


class ParseError(MockGenError):
    """The front-end reported errors while parsing the input file."""
    label = "PARSE ERROR"

    def __init__(self, input_path: str, diagnostics: Sequence[Diagnostic] = ()) -> None:
        super().__init__(f"Output could not be generated due to errors parsing the input file '{input_path}'")
        self.input_path = input_path
        self.diagnostics: List[Diagnostic] = list(diagnostics)


class InputError(MockGenError):
    """Missing or unusable input."""
    label = "INPUT ERROR"


class OutputError(MockGenError):
    """An output destination could not be written."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(message)
        self.path = path


__all__ = [
    "DiagnosticSeverity",
    "Diagnostic",
    "MockGenError",
    "ConfigError",
    "ParseError",
    "InputError",
    "OutputError",
]
