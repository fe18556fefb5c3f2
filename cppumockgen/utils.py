#!/usr/bin/env python3
"""
Utilities for logging, templating (Jinja2), console output and file I/O for the
CppUTest mock generator.

This module provides:
- Project-wide logging setup.
- Layered Jinja2 environment creation with user templates first and package
  templates as fallback.
- Helpers turning C++ names into identifiers usable in generated code.
- A console colorizer for status messages.
- All-or-nothing file writing helpers.

The goal is to keep the rest of the codebase clean and focused on parsing and emission logic.
"""

from __future__ import annotations

import os
import re
import sys
import tempfile
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, TextIO, Tuple, Union
import logging

from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
    TemplateNotFound,
)

from .errors import OutputError

logger = logging.getLogger(__name__)

def configure_logging(
    level: Optional[Union[int, str]] = None,
    *,
    to_file: Optional[Union[str, Path]] = None,
    fmt: Optional[str] = None,
    stream: Optional[TextIO] = None,
    propagate_package_loggers: bool = True,
) -> None:
    """
    Configure project-wide logging with consistent formatting and optional file output.

    Parameters:
    - level: int or name (e.g., 'INFO', 'DEBUG'). Defaults to INFO.
    - to_file: path to a log file; if provided, logs are also written there.
    - fmt: logging format string. Defaults to '%(levelname)s: %(message)s'.
    - stream: stream for console logs (defaults to sys.stderr).
    - propagate_package_loggers: whether the 'cppumockgen' logger propagates to root.
    """
    # Resolve level
    if level is None:
        resolved_level = logging.INFO
    elif isinstance(level, str):
        resolved_level = getattr(logging, level.upper(), logging.INFO)
    else:
        resolved_level = int(level)

    log_format = fmt or "%(levelname)s: %(message)s"
    stream = stream or sys.stderr

    # Reset root handlers for deterministic setup
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.setLevel(resolved_level)

    handlers: List[logging.Handler] = []

    stream_handler = logging.StreamHandler(stream)
    stream_handler.setLevel(resolved_level)
    stream_handler.setFormatter(logging.Formatter(log_format))
    handlers.append(stream_handler)

    if to_file:
        file_handler = logging.FileHandler(str(to_file), mode="w")
        file_handler.setLevel(resolved_level)
        file_handler.setFormatter(logging.Formatter(log_format))
        handlers.append(file_handler)

    for h in handlers:
        root.addHandler(h)

    # Package logger configuration
    pkg_logger = logging.getLogger("cppumockgen")
    pkg_logger.setLevel(resolved_level)
    pkg_logger.propagate = propagate_package_loggers


# ----------------------------------------
# Identifier helpers
# ----------------------------------------

_OPERATOR_NAMES: Dict[str, str] = {
    "+": "plus",
    "-": "minus",
    "*": "star",
    "/": "slash",
    "%": "percent",
    "^": "caret",
    "&": "amp",
    "|": "pipe",
    "~": "tilde",
    "!": "not",
    "=": "assign",
    "<": "less",
    ">": "greater",
    "+=": "plus_assign",
    "-=": "minus_assign",
    "*=": "star_assign",
    "/=": "slash_assign",
    "%=": "percent_assign",
    "^=": "caret_assign",
    "&=": "amp_assign",
    "|=": "pipe_assign",
    "<<": "shift_left",
    ">>": "shift_right",
    "<<=": "shift_left_assign",
    ">>=": "shift_right_assign",
    "==": "equal",
    "!=": "not_equal",
    "<=": "less_equal",
    ">=": "greater_equal",
    "<=>": "spaceship",
    "&&": "and",
    "||": "or",
    "++": "increment",
    "--": "decrement",
    ",": "comma",
    "->*": "arrow_star",
    "->": "arrow",
    "()": "call",
    "[]": "subscript",
    "new": "new",
    "delete": "delete",
    "new[]": "new_array",
    "delete[]": "delete_array",
}


def operator_identifier(name: str) -> str:
    """
    Spell an operator function name as a plain identifier:
    'operator==' -> 'operator_equal', 'operator[]' -> 'operator_subscript'.
    Non-operator names are returned unchanged.
    """
    m = re.match(r"^operator\b\s*(.*)$", name)
    if not m:
        return name
    symbol = re.sub(r"\s+", "", m.group(1))
    if symbol in _OPERATOR_NAMES:
        return f"operator_{_OPERATOR_NAMES[symbol]}"
    return sanitize_identifier(name)


def sanitize_identifier(name: str) -> str:
    """
    Replace every character that is not valid in a C++ identifier by '_'.
    """
    out = re.sub(r"\W", "_", name.strip())
    if out and out[0].isdigit():
        out = f"_{out}"
    return out


# ----------------------------------------
# Jinja environment helpers
# ----------------------------------------

class TemplateRenderer:
    """
    A thin wrapper over a Jinja2 Environment with layered loaders and useful filters.
    - templates_dir: user-provided templates directory (highest precedence)
    - package templates: cppumockgen/templates
    """

    def __init__(self, templates_dir: Optional[Path] = None) -> None:
        loaders: List[Any] = []

        # 1) User-provided directory
        if templates_dir:
            p = Path(templates_dir)
            if p.is_dir():
                loaders.append(FileSystemLoader(str(p)))
            else:
                logger.warning("Templates directory '%s' does not exist; using built-in templates", p)

        # 2) Package templates (installed alongside this module)
        # Prefer PackageLoader if available, else attempt a filesystem path.
        try:
            loaders.append(PackageLoader("cppumockgen", "templates"))
        except (ValueError, AssertionError):
            # Namespace packages may not expose a loader on older interpreters
            pkg_templates_fs = Path(__file__).parent / "templates"
            if pkg_templates_fs.is_dir():
                loaders.append(FileSystemLoader(str(pkg_templates_fs)))

        self.env = Environment(
            loader=ChoiceLoader(loaders),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            autoescape=False,
        )

        self._register_filters()

    def _register_filters(self) -> None:
        self.env.filters["include_guard"] = _filter_include_guard

    def render(self, template_name: str, context: Dict[str, Any]) -> str:
        try:
            template = self.env.get_template(template_name)
        except TemplateNotFound as e:
            raise RuntimeError(f"Template not found: {template_name}") from e
        return template.render(**context)


def _filter_include_guard(filename: Any) -> str:
    """
    'my-header_expect.hpp' -> 'MY_HEADER_EXPECT_HPP'
    """
    return sanitize_identifier(Path(str(filename)).name).upper()


# ----------------------------------------
# Console output
# ----------------------------------------

class Color(Enum):
    RESET = "\033[0m"
    LIGHT_RED = "\033[91m"
    LIGHT_GREEN = "\033[92m"
    YELLOW = "\033[93m"


class ConsoleColorizer:
    """
    Writes ANSI color sequences to a stream. Colors are only emitted when the
    stream is a terminal, unless `enabled` forces the choice.
    """

    def __init__(self, stream: TextIO, enabled: Optional[bool] = None) -> None:
        self.stream = stream
        if enabled is None:
            isatty = getattr(stream, "isatty", None)
            enabled = bool(isatty and isatty()) and os.environ.get("NO_COLOR") is None
        self.enabled = enabled

    def set_color(self, color: Color) -> None:
        if self.enabled:
            self.stream.write(color.value)

    def reset(self) -> None:
        self.set_color(Color.RESET)


# ----------------------------------------
# File I/O helpers
# ----------------------------------------

def normalize_newlines(text: str) -> str:
    """
    Normalize to Unix newlines for reproducible diffs and consistent build environments.
    """
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _discard(path: str) -> None:
    try:
        os.remove(path)
    except OSError:
        logger.warning(f"Could not remove file {path}")


def _stage_text(path: Path, content: str, encoding: str, mode: Optional[int]) -> str:
    """
    Write `content` to a temp file in the directory of `path` and return the
    temp file's name.
    """
    fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="\n") as f:
            f.write(normalize_newlines(content))
        if mode is not None:
            os.chmod(tmp_path, mode)
    except Exception:
        _discard(tmp_path)
        raise
    return tmp_path


def write_text_files(
    files: Sequence[Tuple[Path, str, str]],
    encoding: str = "utf-8",
    mode: Optional[int] = 0o644,
    log: bool = True,
) -> None:
    """
    Write several (path, content, description) files as one unit.

    Every file is first written to a temp file next to its target; the targets
    are only replaced once all temp files exist, so a failure leaves none of the
    new outputs behind. I/O failures are reported as OutputError naming the
    offending file.
    """
    staged: List[Tuple[str, Path]] = []
    committed: List[Path] = []
    done = False
    try:
        for path, content, description in files:
            path = Path(path)
            error = OutputError(str(path), f"{description} file '{path}' could not be opened")
            if not path.parent.is_dir():
                raise error
            try:
                staged.append((_stage_text(path, content, encoding, mode), path))
            except OSError as e:
                raise error from e

        for tmp_path, path in staged:
            try:
                os.replace(tmp_path, path)
            except OSError as e:
                raise OutputError(str(path), f"Output file '{path}' could not be written") from e
            committed.append(path)
        done = True
    finally:
        if not done:
            for tmp_path, _ in staged:
                if os.path.exists(tmp_path):
                    _discard(tmp_path)
            for path in committed:
                _discard(str(path))

    if log:
        for path in committed:
            logger.debug(f"[write] {path}")


__all__ = [
    "TemplateRenderer",
    "configure_logging",
    "operator_identifier",
    "sanitize_identifier",
    "Color",
    "ConsoleColorizer",
    "normalize_newlines",
    "write_text_files",
]
