#!/usr/bin/env python3
"""
CppUTest mock generator

This entrypoint wires together:
- Parsing (libclang-based) to discover the functions and methods declared in a header
- Type mapping to decide which declarations can be mocked and how
- Emitting to generate mock bodies and expectation (companion) functions
- Jinja2 templates for the file-level layout of the outputs

Outputs:
- <stem>_mock.cpp       mock definitions for every mockable declaration (-m)
- <stem>_expect.hpp     expectation function declarations (-e)
- <stem>_expect.cpp     expectation function definitions (-e)

Usage (example):
  python -m cppumockgen.generate_mocks \
    -i include/my_module.h \
    -m tests/mocks/ \
    -e tests/mocks/ \
    -I include -p "my_func#buffer=MemoryBuffer:size"

Notes:
- You need libclang and Jinja2 installed in your Python environment.
- '@' as output path writes to the console instead of a file.
"""

from __future__ import annotations

import argparse
import os
import re
import sys
from pathlib import Path
from typing import Callable, List, Optional, Sequence, TextIO, Tuple
import logging

logger = logging.getLogger(__name__)

# Local modules
from .config import Config
from .emitters.expectation_emitter import ExpectationEmitter
from .emitters.mock_emitter import MockEmitter
from .errors import (
    Diagnostic,
    DiagnosticSeverity,
    InputError,
    MockGenError,
    ParseError,
)
from .models import GenerationContext, ParsedHeader, assign_overload_indices
from .parsing.clang_parser import parse_header
from .type_mapping import MappedDeclaration, MockabilityEvaluator, TypeClassifier
from .utils import Color, ConsoleColorizer, TemplateRenderer, configure_logging, write_text_files

GENERATOR_VERSION = "0.1.0"

CONSOLE_OUTPUT = "@"

MOCK_SUFFIX = "_mock.cpp"
EXPECT_HEADER_SUFFIX = "_expect.hpp"
EXPECT_IMPL_SUFFIX = "_expect.cpp"

# Callable running the C/C++ front-end on one input file
FrontEnd = Callable[[GenerationContext], ParsedHeader]


# --------------------------
# Status reporting
# --------------------------

class StatusReporter:
    """
    Human-readable status lines ('SUCCESS: ...', 'PARSE ERROR: ...') on a
    console stream, colorized through an explicit ConsoleColorizer.
    """

    def __init__(self, stream: TextIO, colorizer: Optional[ConsoleColorizer] = None) -> None:
        self.stream = stream
        self.colorizer = colorizer or ConsoleColorizer(stream, enabled=False)

    def _emit(self, color: Optional[Color], label: str, text: str) -> None:
        if label:
            if color is not None:
                self.colorizer.set_color(color)
            self.stream.write(f"{label}: ")
            if color is not None:
                self.colorizer.reset()
        self.stream.write(f"{text}\n")
        self.stream.flush()

    def success(self, text: str) -> None:
        self._emit(Color.LIGHT_GREEN, "SUCCESS", text)

    def error(self, error: MockGenError) -> None:
        self._emit(Color.LIGHT_RED, error.label, error.message)

    def diagnostic(self, diag: Diagnostic) -> None:
        if diag.severity.is_error:
            self._emit(Color.LIGHT_RED, "PARSE ERROR", diag.text)
        elif diag.severity == DiagnosticSeverity.WARNING:
            self._emit(Color.YELLOW, "PARSE WARNING", diag.text)
        else:
            self._emit(None, "", diag.text)


# --------------------------
# Session
# --------------------------

class Parser:
    """
    One generation session: parse one input header, then generate any of the
    three outputs from the same set of mockable declarations.

    Usage:
        parser = Parser()
        parser.parse(Path("foo.h"), config, interpret_as_cpp=True)
        mock_text = parser.generate_mock(gen_opts)
    """

    def __init__(
        self,
        frontend: Optional[FrontEnd] = None,
        reporter: Optional[StatusReporter] = None,
        templates_dir: Optional[Path] = None,
    ) -> None:
        self.frontend = frontend or parse_header
        self.reporter = reporter or StatusReporter(sys.stderr, ConsoleColorizer(sys.stderr))
        self.templates_dir = templates_dir
        self._renderer: Optional[TemplateRenderer] = None
        self._ctx: Optional[GenerationContext] = None
        self._mapped: List[MappedDeclaration] = []

    # ---- Parsing ----

    def parse(
        self,
        input_path: Path,
        config: Config,
        interpret_as_cpp: bool = False,
        language_std: Optional[str] = None,
        include_paths: Sequence[str] = (),
        defines: Sequence[str] = (),
        include_files: Sequence[str] = (),
    ) -> None:
        """
        Run the front-end on `input_path` and keep the mockable declarations.

        Raises InputError when the file is missing or declares nothing mockable,
        and ParseError when the front-end reports errors.
        """
        input_path = Path(input_path)
        if not input_path.is_file():
            raise InputError(f"Input file '{input_path}' does not exist")

        ctx = GenerationContext(
            input_path=input_path,
            interpret_as_cpp=interpret_as_cpp,
            language_std=language_std,
            include_paths=list(include_paths),
            defines=list(defines),
            include_files=list(include_files),
            templates_dir=self.templates_dir,
        )

        parsed = self.frontend(ctx)
        for diag in parsed.diagnostics:
            if diag.severity != DiagnosticSeverity.IGNORED:
                self.reporter.diagnostic(diag)
        if parsed.diagnostics:
            logger.info(
                "Front-end reported %d diagnostic(s), %d error(s)",
                len(parsed.diagnostics),
                parsed.error_count,
            )
        if parsed.error_count:
            raise ParseError(str(input_path), parsed.diagnostics)

        evaluator = MockabilityEvaluator(TypeClassifier(config))
        mapped: List[MappedDeclaration] = []
        for decl in parsed.declarations:
            m = evaluator.evaluate(decl)
            if m.supported:
                mapped.append(m)
            else:
                logger.debug("Not mockable: %s (%s)", decl.cpp_signature, m.reason)

        if not mapped:
            raise InputError("The input file does not contain any mockable function")

        assign_overload_indices([m.declaration for m in mapped])
        logger.info("Found %d mockable declaration(s) out of %d", len(mapped), len(parsed.declarations))

        self._ctx = ctx
        self._mapped = mapped

    @property
    def declarations(self) -> List[MappedDeclaration]:
        return list(self._mapped)

    # ---- Generation ----

    def _require_parsed(self) -> GenerationContext:
        if self._ctx is None:
            raise RuntimeError("parse() must succeed before generating output")
        return self._ctx

    @property
    def renderer(self) -> TemplateRenderer:
        if self._renderer is None:
            self._renderer = TemplateRenderer(self.templates_dir)
        return self._renderer

    def _base_context(self, gen_opts: str) -> dict:
        ctx = self._require_parsed()
        return {
            "version": GENERATOR_VERSION,
            "gen_opts": gen_opts,
            "header_name": ctx.header_name,
            "interpret_as_cpp": ctx.interpret_as_cpp,
        }

    def generate_mock(self, gen_opts: str) -> str:
        context = self._base_context(gen_opts)
        emitter = MockEmitter()
        context["bodies"] = [emitter.generate(m) for m in self._mapped]
        return self.renderer.render("mock.cpp.j2", context)

    def generate_expectation_header(self, gen_opts: str) -> str:
        context = self._base_context(gen_opts)
        ctx = self._require_parsed()
        context["guard_source"] = f"{ctx.input_path.stem}{EXPECT_HEADER_SUFFIX}"
        context["section"] = ExpectationEmitter().generate_header_section(self._mapped)
        return self.renderer.render("expectation.hpp.j2", context)

    def generate_expectation_impl(self, gen_opts: str, header_path: Path) -> str:
        context = self._base_context(gen_opts)
        context["expectation_header"] = Path(header_path).name
        context["section"] = ExpectationEmitter().generate_impl_section(self._mapped)
        return self.renderer.render("expectation.cpp.j2", context)


# --------------------------
# Output naming
# --------------------------

def resolve_output_path(option: str, input_path: Path, suffix: str) -> Optional[Path]:
    """
    Map an output option value to a file path; None means the console.

    - '@'                          -> console
    - '' (option given w/o value)  -> current directory
    - existing directory or a value ending with a path separator -> directory
    - anything else                -> file path
    """
    if option == CONSOLE_OUTPUT:
        return None
    if not option:
        return Path.cwd() / f"{input_path.stem}{suffix}"
    p = Path(option)
    if option.endswith(("/", os.sep)) or p.is_dir():
        return p / f"{input_path.stem}{suffix}"
    return p


def expectation_output_paths(option: str, input_path: Path) -> Tuple[Optional[Path], Optional[Path]]:
    header = resolve_output_path(option, input_path, EXPECT_HEADER_SUFFIX)
    if header is None:
        return None, None
    return header, header.with_suffix(".cpp")


def _quote_option_value(value: str) -> str:
    if re.search(r"\s", value):
        return f'"{value}"'
    return value


def build_generation_options(ns: argparse.Namespace) -> str:
    """
    Echo of the options that influence the generated code, written into the
    heading of every output file so it can be regenerated identically.
    """
    parts: List[str] = []
    if ns.cpp:
        parts.append("-x")
    if ns.std:
        parts.append(f"-s {_quote_option_value(ns.std)}")
    if ns.underlying_typedef:
        parts.append("-u")
    for opt in ns.param_override:
        parts.append(f"-p {_quote_option_value(opt)}")
    for opt in ns.type_override:
        parts.append(f"-t {_quote_option_value(opt)}")
    return "".join(f"{p} " for p in parts)


# --------------------------
# CLI
# --------------------------

def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="cppumockgen",
        description="Generate CppUTest mocks and expectation functions from a C/C++ header",
    )

    p.add_argument(
        "-i",
        "--input",
        default=None,
        help="Input C/C++ header file.",
    )
    p.add_argument(
        "-m",
        "--mock-output",
        nargs="?",
        const="",
        default=None,
        help="Generate mocks into this file or directory ('@' for the console; no value for the current directory).",
    )
    p.add_argument(
        "-e",
        "--expect-output",
        nargs="?",
        const="",
        default=None,
        help="Generate expectation functions; the path names the header, the implementation is written alongside "
             "('@' for the console; no value for the current directory).",
    )
    p.add_argument(
        "-x",
        "--cpp",
        action="store_true",
        help="Interpret the input file as C++.",
    )
    p.add_argument(
        "-s",
        "--std",
        default=None,
        help="Language standard (e.g., c++11, c99).",
    )
    p.add_argument(
        "-u",
        "--underlying-typedef",
        action="store_true",
        help="Classify typedefs by their underlying type instead of their own name.",
    )
    p.add_argument(
        "-I",
        "--include-path",
        action="append",
        default=[],
        help="Include path (repeatable).",
    )
    p.add_argument(
        "-D",
        "--define",
        action="append",
        default=[],
        help="Preprocessor definition, e.g. FOO or FOO=1 (repeatable).",
    )
    p.add_argument(
        "--include-file",
        action="append",
        default=[],
        help="File included before the input file is parsed (repeatable).",
    )
    p.add_argument(
        "-p",
        "--param-override",
        action="append",
        default=[],
        help="Parameter override rule, e.g. 'foo#bar=String' or 'foo@=Int' (repeatable).",
    )
    p.add_argument(
        "-t",
        "--type-override",
        action="append",
        default=[],
        help="Type override rule, e.g. '#const Point &=Object:Point' (repeatable).",
    )
    p.add_argument(
        "--templates-dir",
        default=None,
        help="Optional templates directory. If omitted, package templates are used.",
    )
    p.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for DEBUG)."
    )
    p.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="Decrease verbosity (-q for ERROR, -qq for CRITICAL)."
    )
    p.add_argument(
        "--log-level",
        choices=["CRITICAL","ERROR","WARNING","INFO","DEBUG","NOTSET","critical","error","warning","info","debug","notset"],
        default=None,
        help="Explicit log level (overrides -v/-q)."
    )
    p.add_argument(
        "--log-format",
        default="%(levelname)s: %(message)s",
        help="Logging format string."
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Optional file to write logs to."
    )

    return p.parse_args(argv)


def _log_level(ns: argparse.Namespace) -> int:
    if getattr(ns, "log_level", None):
        return getattr(logging, str(ns.log_level).upper(), logging.WARNING)
    if getattr(ns, "verbose", 0) >= 1:
        return logging.DEBUG
    if getattr(ns, "quiet", 0) >= 2:
        return logging.CRITICAL
    if getattr(ns, "quiet", 0) == 1:
        return logging.ERROR
    # Status lines already go to the console; keep logs for warnings by default
    return logging.WARNING


def run(
    ns: argparse.Namespace,
    reporter: StatusReporter,
    stdout: TextIO,
    frontend: Optional[FrontEnd] = None,
) -> None:
    """
    Execute one generation session for parsed command-line options. Raises
    MockGenError subclasses on failure.
    """
    if not ns.input:
        raise MockGenError("No input file specified")
    if ns.mock_output is None and ns.expect_output is None:
        raise MockGenError(
            "At least the mock generation option (-m) or the expectation generation option (-e) must be specified"
        )

    config = Config.from_options(
        use_underlying_typedef_type=ns.underlying_typedef,
        param_override_options=ns.param_override,
        type_override_options=ns.type_override,
    )

    input_path = Path(ns.input)
    parser = Parser(
        frontend=frontend,
        reporter=reporter,
        templates_dir=Path(ns.templates_dir).resolve() if ns.templates_dir else None,
    )
    parser.parse(
        input_path,
        config,
        interpret_as_cpp=ns.cpp,
        language_std=ns.std,
        include_paths=ns.include_path,
        defines=ns.define,
        include_files=ns.include_file,
    )

    gen_opts = build_generation_options(ns)

    # Render everything before writing anything
    outputs: List[Tuple[Optional[Path], str, str]] = []
    if ns.mock_output is not None:
        mock_path = resolve_output_path(ns.mock_output, input_path, MOCK_SUFFIX)
        outputs.append((mock_path, parser.generate_mock(gen_opts), "Mock output"))
    if ns.expect_output is not None:
        header_path, impl_path = expectation_output_paths(ns.expect_output, input_path)
        header_name = header_path or Path(f"{input_path.stem}{EXPECT_HEADER_SUFFIX}")
        outputs.append((header_path, parser.generate_expectation_header(gen_opts), "Expectation header output"))
        outputs.append((impl_path, parser.generate_expectation_impl(gen_opts, header_name), "Expectation implementation output"))

    # Files are committed together; console output follows once they are in place
    write_text_files([(path, text, description) for path, text, description in outputs if path is not None])
    for path, text, _ in outputs:
        if path is None:
            stdout.write(text)

    if ns.mock_output is not None and outputs[0][0] is not None:
        reporter.success(f"Mock generated into '{outputs[0][0]}'")
    if ns.expect_output is not None and outputs[-1][0] is not None:
        reporter.success(f"Expectations generated into '{outputs[-2][0]}' and '{outputs[-1][0]}'")


# --------------------------
# Main
# --------------------------

def main(argv: Optional[Sequence[str]] = None) -> int:
    ns = parse_args(argv)

    # Configure logging as early as possible
    configure_logging(
        level=_log_level(ns),
        to_file=ns.log_file,
        fmt=getattr(ns, "log_format", "%(levelname)s: %(message)s"),
    )

    reporter = StatusReporter(sys.stderr, ConsoleColorizer(sys.stderr))
    try:
        run(ns, reporter, sys.stdout)
    except MockGenError as e:
        reporter.error(e)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
