import pytest

from cppumockgen.models import (
    CallableDeclaration,
    DeclarationKind,
    GenerationContext,
    ParsedHeader,
    TypeCategory,
    TypeDescriptor,
    assign_overload_indices,
    canonical_builtin_name,
    normalize_spelling,
    qualify_spelling,
)
from cppumockgen.errors import Diagnostic, DiagnosticSeverity

from conftest import T, method


class TestSpellings:
    def test_normalize_pointer_spacing(self):
        assert normalize_spelling("const  char  *") == "const char*"
        assert normalize_spelling("int * * p") == "int** p"
        assert normalize_spelling("int [ 4 ]") == "int[4]"

    def test_builtin_aliases(self):
        assert canonical_builtin_name("unsigned") == "unsigned int"
        assert canonical_builtin_name("long  unsigned int") == "unsigned long"
        assert canonical_builtin_name("_Bool") == "bool"
        assert canonical_builtin_name("Point") is None

    @pytest.mark.parametrize(
        "spelling, name, qualified, expected",
        [
            ("Store *", "Store", "ns::Store", "ns::Store *"),
            ("const Store &", "Store", "ns::Store", "const ns::Store &"),
            ("Store const *", "Store", "ns::Store", "ns::Store const *"),
            ("inner::Mode", "inner::Mode", "ns::inner::Mode", "ns::inner::Mode"),
            ("ns::Store *", "ns::Store", "ns::Store", "ns::Store *"),
            ("StoreRef", "Store", "ns::Store", "StoreRef"),
            ("uint8_t[16]", "uint8_t", "uint8_t", "uint8_t[16]"),
        ],
    )
    def test_qualify_spelling(self, spelling, name, qualified, expected):
        assert qualify_spelling(spelling, name, qualified) == expected


class TestTypeDescriptor:
    def test_pointer_to_const(self):
        t = T("const char *")
        assert t.base == "char"
        assert t.pointer_depth == 1
        assert t.is_const
        assert t.category == TypeCategory.BUILTIN
        assert t.spelling == "const char *"

    def test_reference(self):
        t = T("const Point &")
        assert t.is_reference
        assert not t.is_rvalue_reference
        assert t.base == "Point"
        assert t.category == TypeCategory.CLASS
        assert t.value_spelling == "const Point"

    def test_rvalue_reference(self):
        t = T("Point &&")
        assert t.is_rvalue_reference
        assert not t.is_reference

    def test_array_extents(self):
        t = T("const int [4]")
        assert t.array_dims == (4,)
        assert t.indirection_depth == 1
        assert t.static_element_count == 4
        assert t.decayed_spelling == "const int*"
        assert t.pointee_spelling == "const int"

    def test_unknown_extent(self):
        t = T("int []")
        assert t.array_dims == (None,)
        assert t.static_element_count is None

    def test_pointee_of_double_pointer(self):
        assert T("char **").pointee_spelling == "char*"

    def test_categories_guessed_from_spelling(self):
        assert T("void (*)(int)").category == TypeCategory.FUNCTION
        assert T("std::vector<int>").category == TypeCategory.TEMPLATE
        assert T("unsigned long int").base == "unsigned long"

    def test_void(self):
        assert T("void").is_void
        assert not T("void *").is_void

    def test_typedef_expansion(self):
        under = T("unsigned long")
        t = T("size_type", category=TypeCategory.TYPEDEF, underlying=under)
        assert t.expanded() is under
        assert under.expanded() is under


class TestCallableDeclaration:
    def test_unnamed_parameters_get_positional_names(self):
        decl = CallableDeclaration.build("f", [("", T("int")), ("b", T("int"))])
        assert [p.effective_name for p in decl.parameters] == ["_unnamedArg0", "b"]

    def test_positions_must_be_contiguous(self):
        from cppumockgen.models import Parameter

        with pytest.raises(ValueError):
            CallableDeclaration(name="f", parameters=[Parameter(name="a", position=1, type=T("int"))])

    def test_member_names(self):
        decl = method("get", scopes=("ns", "Foo"))
        assert decl.qualified_name == "ns::Foo::get"
        assert decl.class_name == "ns::Foo"
        assert decl.needs_object

    def test_static_member_needs_no_object(self):
        assert not method("create", is_static=True).needs_object

    def test_free_function_has_no_class(self):
        decl = CallableDeclaration.build("f", scopes=["ns"])
        assert decl.kind == DeclarationKind.FREE_FUNCTION
        assert decl.class_name == ""
        assert not decl.needs_object

    def test_conversion_operator_detection(self):
        assert method("operator bool", is_operator=True).is_conversion_operator
        assert method("operator Foo *", is_operator=True).is_conversion_operator
        assert not method("operator==", is_operator=True).is_conversion_operator
        assert not method("operator new", is_operator=True).is_conversion_operator

    def test_cpp_signature(self):
        decl = method("m", [("x", T("double"))], T("bool"), is_const=True)
        assert decl.cpp_signature == "bool Foo::m(double) const"

    def test_variadic_signature(self):
        decl = CallableDeclaration.build("printf_like", [("fmt", T("const char *"))], T("int"), is_variadic=True)
        assert decl.cpp_signature == "int printf_like(const char *, ...)"


class TestOverloadIndices:
    def test_unique_names_have_no_suffix(self):
        a = CallableDeclaration.build("a")
        b = CallableDeclaration.build("b")
        assign_overload_indices([a, b])
        assert [d.registered_name for d in (a, b)] == ["a", "b"]
        assert a.overload_index is None

    def test_colliding_names_sorted_by_parameter_types(self):
        f_int = CallableDeclaration.build("f", [("x", T("int"))])
        f_double = CallableDeclaration.build("f", [("x", T("double"))])
        assign_overload_indices([f_int, f_double])
        assert f_double.registered_name == "f"
        assert f_int.registered_name == "f_1"

    def test_const_only_overloads_are_distinct(self):
        plain = method("get")
        const = method("get", is_const=True)
        assign_overload_indices([const, plain])
        assert plain.registered_name == "Foo::get"
        assert const.registered_name == "Foo::get_1"

    def test_indices_do_not_depend_on_input_order(self):
        decls = [CallableDeclaration.build("f", [("x", T(s))]) for s in ("long", "char", "int")]
        assign_overload_indices(decls)
        first = {d.parameters[0].type.spelling: d.registered_name for d in decls}
        decls = [CallableDeclaration.build("f", [("x", T(s))]) for s in ("int", "long", "char")]
        assign_overload_indices(decls)
        second = {d.parameters[0].type.spelling: d.registered_name for d in decls}
        assert first == second


class TestParsedHeader:
    def test_error_count(self):
        parsed = ParsedHeader(
            diagnostics=[
                Diagnostic(DiagnosticSeverity.WARNING, "w"),
                Diagnostic(DiagnosticSeverity.ERROR, "e"),
                Diagnostic(DiagnosticSeverity.FATAL, "f"),
            ]
        )
        assert parsed.error_count == 2


class TestGenerationContext:
    def test_clang_args(self, tmp_path):
        ctx = GenerationContext(
            input_path=tmp_path / "foo.h",
            interpret_as_cpp=True,
            language_std="c++11",
            include_paths=["inc"],
            defines=["FOO=1"],
            include_files=["pre.h"],
        )
        assert ctx.clang_args == ["-xc++", "-std=c++11", "-Iinc", "-DFOO=1", "-include", "pre.h"]
        assert ctx.header_name == "foo.h"

    def test_c_defaults(self, tmp_path):
        ctx = GenerationContext(input_path=tmp_path / "foo.h")
        assert ctx.clang_args == []
        assert ctx.templates_dir is None
