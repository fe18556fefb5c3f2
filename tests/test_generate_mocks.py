import io
from pathlib import Path

import pytest

from cppumockgen.config import Config
from cppumockgen.errors import (
    Diagnostic,
    DiagnosticSeverity,
    InputError,
    MockGenError,
    OutputError,
    ParseError,
)
from cppumockgen.generate_mocks import (
    Parser,
    StatusReporter,
    build_generation_options,
    expectation_output_paths,
    main,
    parse_args,
    resolve_output_path,
    run,
)
from cppumockgen.models import CallableDeclaration, ParsedHeader, TypeCategory

from conftest import T, make_config, method


def sample_declarations():
    return [
        CallableDeclaration.build("function1", [("a", T("int"))], T("int")),
        CallableDeclaration.build("function1", [("a", T("double"))], T("int")),
        CallableDeclaration.build("unsupported", [("p", T("Point"))]),
        method("get", [("key", T("const char *"))], T("bool"), scopes=("ns", "Store"), is_const=True),
    ]


class FakeFrontEnd:
    def __init__(self, declarations=None, diagnostics=()):
        self.declarations = declarations if declarations is not None else sample_declarations()
        self.diagnostics = list(diagnostics)
        self.contexts = []

    def __call__(self, ctx):
        self.contexts.append(ctx)
        return ParsedHeader(declarations=list(self.declarations), diagnostics=list(self.diagnostics))


@pytest.fixture
def header(tmp_path):
    p = tmp_path / "sample.h"
    p.write_text("// declarations\n")
    return p


@pytest.fixture
def reporter(stream):
    return StatusReporter(stream)


class TestStatusReporter:
    def test_success(self, stream, reporter):
        reporter.success("Mock generated into 'a.cpp'")
        assert stream.getvalue() == "SUCCESS: Mock generated into 'a.cpp'\n"

    def test_error_uses_label(self, stream, reporter):
        reporter.error(InputError("boom"))
        assert stream.getvalue() == "INPUT ERROR: boom\n"

    def test_diagnostics(self, stream, reporter):
        reporter.diagnostic(Diagnostic(DiagnosticSeverity.WARNING, "w"))
        reporter.diagnostic(Diagnostic(DiagnosticSeverity.FATAL, "f"))
        reporter.diagnostic(Diagnostic(DiagnosticSeverity.NOTE, "n"))
        assert stream.getvalue() == "PARSE WARNING: w\nPARSE ERROR: f\nn\n"


class TestParser:
    def test_missing_input(self, tmp_path, reporter):
        parser = Parser(frontend=FakeFrontEnd(), reporter=reporter)
        with pytest.raises(InputError) as exc:
            parser.parse(tmp_path / "missing.h", Config.from_options())
        assert "does not exist" in exc.value.message

    def test_forwards_language_options(self, header, reporter):
        frontend = FakeFrontEnd()
        Parser(frontend=frontend, reporter=reporter).parse(
            header,
            Config.from_options(),
            interpret_as_cpp=True,
            language_std="c++14",
            include_paths=["inc"],
            defines=["X=1"],
        )
        ctx = frontend.contexts[0]
        assert ctx.clang_args == ["-xc++", "-std=c++14", "-Iinc", "-DX=1"]

    def test_keeps_mockable_declarations_only(self, header, reporter):
        parser = Parser(frontend=FakeFrontEnd(), reporter=reporter)
        parser.parse(header, Config.from_options())
        names = [m.declaration.registered_name for m in parser.declarations]
        assert names == ["function1_1", "function1", "ns::Store::get"]

    def test_parse_errors(self, header, stream, reporter):
        frontend = FakeFrontEnd(diagnostics=[Diagnostic(DiagnosticSeverity.ERROR, "sample.h:1:1: error: oops")])
        parser = Parser(frontend=frontend, reporter=reporter)
        with pytest.raises(ParseError) as exc:
            parser.parse(header, Config.from_options())
        assert "PARSE ERROR: sample.h:1:1: error: oops" in stream.getvalue()
        assert exc.value.diagnostics[0].text == "sample.h:1:1: error: oops"

    def test_warnings_do_not_stop_generation(self, header, stream, reporter):
        frontend = FakeFrontEnd(diagnostics=[Diagnostic(DiagnosticSeverity.WARNING, "careful")])
        parser = Parser(frontend=frontend, reporter=reporter)
        parser.parse(header, Config.from_options())
        assert stream.getvalue() == "PARSE WARNING: careful\n"
        assert parser.declarations

    def test_nothing_mockable(self, header, reporter):
        frontend = FakeFrontEnd([CallableDeclaration.build("f", [("p", T("Point"))])])
        with pytest.raises(InputError) as exc:
            Parser(frontend=frontend, reporter=reporter).parse(header, Config.from_options())
        assert exc.value.message == "The input file does not contain any mockable function"

    def test_overrides_apply(self, header, reporter):
        frontend = FakeFrontEnd([CallableDeclaration.build("f", [("p", T("Point"))])])
        parser = Parser(frontend=frontend, reporter=reporter)
        parser.parse(header, make_config(types=["#Point=Object:PointComparator"]))
        assert len(parser.declarations) == 1

    def test_generate_before_parse(self, reporter):
        with pytest.raises(RuntimeError):
            Parser(frontend=FakeFrontEnd(), reporter=reporter).generate_mock("")


class TestGeneratedFiles:
    @pytest.fixture
    def parser(self, header, reporter):
        p = Parser(frontend=FakeFrontEnd(), reporter=reporter)
        p.parse(header, Config.from_options())
        return p

    def test_mock_file(self, parser):
        text = parser.generate_mock("-x ")
        assert text.startswith("/*\n * This file has been auto-generated by CppUMockGen")
        assert " * Generation options: -x \n" in text
        assert 'extern "C" {\n#include "sample.h"\n}\n' in text
        assert "#include <CppUTestExt/MockSupport.h>\n" in text
        assert "int function1(int a)\n{\n" in text
        assert 'mock().actualCall("function1_1")' in text
        assert "bool ns::Store::get(const char *key) const\n" in text
        assert "unsupported" not in text

    def test_cpp_input_is_included_directly(self, header, reporter):
        p = Parser(frontend=FakeFrontEnd(), reporter=reporter)
        p.parse(header, Config.from_options(), interpret_as_cpp=True)
        text = p.generate_mock("")
        assert 'extern "C"' not in text
        assert '#include "sample.h"\n' in text

    def test_expectation_header(self, parser):
        text = parser.generate_expectation_header("")
        assert "#ifndef SAMPLE_EXPECT_HPP\n#define SAMPLE_EXPECT_HPP\n" in text
        assert "namespace expect {\n" in text
        assert "MockExpectedCall& function1(double a, int __return__);\n" in text
        assert "MockExpectedCall& function1_1(int a, int __return__);\n" in text
        assert "namespace ns$ {\nnamespace Store$ {\n" in text
        assert text.rstrip().endswith("#endif // SAMPLE_EXPECT_HPP")

    def test_expectation_impl(self, parser, tmp_path):
        text = parser.generate_expectation_impl("", tmp_path / "sample_expect.hpp")
        assert '#include "sample_expect.hpp"\n' in text
        assert 'mock().expectNCalls(__numCalls__, "function1_1")' in text
        assert "MockExpectedCall& get(unsigned int __numCalls__, const void *__object__, const char *key, bool __return__)" in text


class TestOutputPaths:
    def test_console(self, header):
        assert resolve_output_path("@", header, "_mock.cpp") is None
        assert expectation_output_paths("@", header) == (None, None)

    def test_current_directory(self, header, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        assert resolve_output_path("", header, "_mock.cpp") == tmp_path / "sample_mock.cpp"

    def test_directory(self, header, tmp_path):
        assert resolve_output_path(str(tmp_path), header, "_mock.cpp") == tmp_path / "sample_mock.cpp"
        assert resolve_output_path("out/", header, "_mock.cpp") == Path("out") / "sample_mock.cpp"

    def test_file(self, header, tmp_path):
        assert resolve_output_path(str(tmp_path / "m.cpp"), header, "_mock.cpp") == tmp_path / "m.cpp"

    def test_expectation_pair(self, header, tmp_path):
        hpp, cpp = expectation_output_paths(str(tmp_path / "exp.hpp"), header)
        assert hpp == tmp_path / "exp.hpp"
        assert cpp == tmp_path / "exp.cpp"


class TestGenerationOptions:
    def test_echo(self):
        ns = parse_args([
            "-i", "a.h", "-m",
            "-x", "-s", "c++11", "-u",
            "-p", "foo#bar=String",
            "-t", "#const Point &=Object:Point",
        ])
        assert build_generation_options(ns) == '-x -s c++11 -u -p foo#bar=String -t "#const Point &=Object:Point" '

    def test_empty(self):
        assert build_generation_options(parse_args(["-i", "a.h", "-m"])) == ""


class TestRun:
    def test_writes_all_outputs(self, header, tmp_path, stream, reporter):
        out = tmp_path / "out"
        out.mkdir()
        ns = parse_args(["-i", str(header), "-m", str(out), "-e", str(out)])
        run(ns, reporter, io.StringIO(), frontend=FakeFrontEnd())
        assert (out / "sample_mock.cpp").read_text().count("mock().actualCall") == 3
        assert (out / "sample_expect.hpp").is_file()
        assert '#include "sample_expect.hpp"' in (out / "sample_expect.cpp").read_text()
        messages = stream.getvalue()
        assert f"SUCCESS: Mock generated into '{out / 'sample_mock.cpp'}'" in messages
        assert (
            f"SUCCESS: Expectations generated into '{out / 'sample_expect.hpp'}' and '{out / 'sample_expect.cpp'}'"
            in messages
        )

    def test_console_output(self, header, stream, reporter):
        stdout = io.StringIO()
        run(parse_args(["-i", str(header), "-m", "@"]), reporter, stdout, frontend=FakeFrontEnd())
        assert "int function1(int a)" in stdout.getvalue()
        assert "SUCCESS" not in stream.getvalue()

    def test_unwritable_output(self, header, tmp_path, reporter):
        ns = parse_args(["-i", str(header), "-m", str(tmp_path / "nope" / "x.cpp")])
        with pytest.raises(OutputError) as exc:
            run(ns, reporter, io.StringIO(), frontend=FakeFrontEnd())
        assert exc.value.message.startswith("Mock output file ")

    def test_failed_expectation_output_leaves_no_mock(self, header, tmp_path, stream, reporter):
        out = tmp_path / "out"
        out.mkdir()
        ns = parse_args(["-i", str(header), "-m", str(out), "-e", str(tmp_path / "nope" / "x.hpp")])
        with pytest.raises(OutputError) as exc:
            run(ns, reporter, io.StringIO(), frontend=FakeFrontEnd())
        assert exc.value.message.startswith("Expectation header output file ")
        assert list(out.iterdir()) == []
        assert "SUCCESS" not in stream.getvalue()

    def test_requires_an_output(self, header, reporter):
        with pytest.raises(MockGenError) as exc:
            run(parse_args(["-i", str(header)]), reporter, io.StringIO(), frontend=FakeFrontEnd())
        assert "(-m)" in exc.value.message


class TestMain:
    def test_no_input(self, capsys):
        assert main(["-m"]) == 1
        assert "ERROR: No input file specified" in capsys.readouterr().err

    def test_missing_input_file(self, tmp_path, capsys):
        assert main(["-i", str(tmp_path / "missing.h"), "-m"]) == 1
        assert "INPUT ERROR: Input file" in capsys.readouterr().err

    def test_bad_override(self, header, capsys):
        assert main(["-i", str(header), "-m", "-p", "foo#bar=Bogus"]) == 1
        err = capsys.readouterr().err
        assert "CONFIG ERROR: Invalid mock type 'Bogus' in override option 'foo#bar=Bogus'" in err
