import pytest

from cppumockgen.emitters.mock_emitter import MockEmitter, declare, object_type, strip_const
from cppumockgen.models import CallableDeclaration, TypeCategory, assign_overload_indices

from conftest import T, make_config, map_decl, method


@pytest.fixture
def emitter():
    return MockEmitter()


def size_t():
    return T("size_t", category=TypeCategory.TYPEDEF, underlying=T("unsigned long"))


class TestHelpers:
    def test_declare(self):
        assert declare(T("int"), "a") == "int a"
        assert declare(T("const char *"), "s") == "const char *s"
        assert declare(T("const int [4]"), "buf") == "const int buf[4]"
        assert declare(T("void (*)(int)"), "cb") == "void (*cb)(int)"

    def test_strip_const(self):
        assert strip_const("const Point") == "Point"
        assert strip_const("Point const") == "Point"

    def test_object_type(self):
        assert object_type(T("const Point &")) == "Point"
        assert object_type(T("Point *")) == "Point"
        assert object_type(T("Point")) == "Point"


class TestFreeFunctions:
    def test_scalar_parameter_and_return(self, emitter):
        mapped = map_decl(CallableDeclaration.build("function2", [("a", T("int"))], T("int")))
        assert emitter.generate(mapped) == (
            "int function2(int a)\n"
            "{\n"
            '    return static_cast<int>(mock().actualCall("function2").withIntParameter("a", a).returnIntValue());\n'
            "}\n"
        )

    def test_void_function(self, emitter):
        mapped = map_decl(CallableDeclaration.build("reset"))
        assert emitter.generate(mapped) == 'void reset()\n{\n    mock().actualCall("reset");\n}\n'

    def test_parameters_keep_declaration_order(self, emitter):
        decl = CallableDeclaration.build(
            "f",
            [("b", T("bool")), ("s", T("const char *")), ("d", T("double")), ("p", T("const void *"))],
        )
        call = emitter.actual_call_expression(map_decl(decl))
        assert call == (
            'mock().actualCall("f")'
            '.withBoolParameter("b", b)'
            '.withStringParameter("s", s)'
            '.withDoubleParameter("d", d)'
            '.withConstPointerParameter("p", p)'
        )

    def test_unnamed_parameter(self, emitter):
        mapped = map_decl(CallableDeclaration.build("f", [("", T("int"))]))
        text = emitter.generate(mapped)
        assert text.startswith("void f(int _unnamedArg0)\n")
        assert '.withIntParameter("_unnamedArg0", _unnamedArg0)' in text

    def test_output_parameters(self, emitter):
        decl = CallableDeclaration.build("read", [("out", T("int *")), ("ref", T("long &"))])
        call = emitter.actual_call_expression(map_decl(decl))
        assert '.withOutputParameter("out", out)' in call
        assert '.withOutputParameter("ref", &ref)' in call

    def test_static_memory_buffer(self, emitter):
        mapped = map_decl(CallableDeclaration.build("f", [("buf", T("const int [4]"))]))
        text = emitter.generate(mapped)
        assert text.startswith("void f(const int buf[4])\n")
        assert (
            '.withMemoryBufferParameter("buf", static_cast<const unsigned char *>(static_cast<const void *>(buf)), '
            "sizeof(const int) * 4)"
        ) in text

    def test_memory_buffer_sized_by_other_parameter(self, emitter):
        cfg = make_config(params=["write#data=MemoryBuffer:size"])
        decl = CallableDeclaration.build("write", [("data", T("const void *")), ("size", size_t())])
        call = emitter.actual_call_expression(map_decl(decl, cfg))
        assert (
            '.withMemoryBufferParameter("data", static_cast<const unsigned char *>(static_cast<const void *>(data)), size)'
            '.withUnsignedLongIntParameter("size", size)'
        ) in call

    def test_enum_parameter_is_cast(self, emitter):
        decl = CallableDeclaration.build("paint", [("c", T("Color", category=TypeCategory.ENUM))], T("Color", category=TypeCategory.ENUM))
        text = emitter.generate(map_decl(decl))
        assert '.withIntParameter("c", static_cast<int>(c))' in text
        assert "return static_cast<Color>(" in text
        assert ".returnIntValue());" in text

    def test_namespaced_return_type(self, emitter):
        decl = method("instance", [], T("ns::Store *"), scopes=("ns", "Store"), is_static=True)
        text = emitter.generate(map_decl(decl))
        assert text.startswith("ns::Store *ns::Store::instance()\n")
        assert "return static_cast<ns::Store *>(" in text

    def test_string_return(self, emitter):
        text = emitter.generate(map_decl(CallableDeclaration.build("name", return_type=T("const char *"))))
        assert 'return static_cast<const char *>(mock().actualCall("name").returnStringValue());' in text

    def test_reference_return_is_dereferenced(self, emitter):
        text = emitter.generate(map_decl(CallableDeclaration.build("counter", return_type=T("int &"))))
        assert text.startswith("int &counter()\n")
        assert 'return *static_cast<int *>(mock().actualCall("counter").returnPointerValue());' in text

    def test_skipped_parameter_is_omitted(self, emitter):
        cfg = make_config(params=["f#cb=Skip"])
        decl = CallableDeclaration.build("f", [("cb", T("void (*)(int)")), ("x", T("int"))])
        text = emitter.generate(map_decl(decl, cfg))
        assert text.startswith("void f(void (*cb)(int), int x)\n")
        assert '"cb"' not in text

    def test_parameter_expression(self, emitter):
        cfg = make_config(params=["f#p=Int/*$"])
        decl = CallableDeclaration.build("f", [("p", T("const int *"))])
        assert '.withIntParameter("p", *p)' in emitter.actual_call_expression(map_decl(decl, cfg))

    def test_overloads_use_distinct_names(self, emitter):
        f_int = CallableDeclaration.build("f", [("x", T("int"))])
        f_double = CallableDeclaration.build("f", [("x", T("double"))])
        assign_overload_indices([f_int, f_double])
        assert 'mock().actualCall("f")' in emitter.generate(map_decl(f_double))
        assert 'mock().actualCall("f_1")' in emitter.generate(map_decl(f_int))

    def test_non_mockable_is_rejected(self, emitter):
        with pytest.raises(RuntimeError):
            emitter.generate(map_decl(CallableDeclaration.build("f", [("p", T("Point"))])))


class TestMemberFunctions:
    def test_const_method(self, emitter):
        decl = method("get", [("x", T("double"))], T("bool"), scopes=("ns", "Foo"), is_const=True)
        assert emitter.generate(map_decl(decl)) == (
            "bool ns::Foo::get(double x) const\n"
            "{\n"
            '    return static_cast<bool>(mock().actualCall("ns::Foo::get").onObject(this)'
            '.withDoubleParameter("x", x).returnBoolValue());\n'
            "}\n"
        )

    def test_static_method_has_no_object(self, emitter):
        decl = method("create", is_static=True)
        assert emitter.actual_call_expression(map_decl(decl)) == 'mock().actualCall("Foo::create")'


class TestObjects:
    def test_object_input(self, emitter):
        cfg = make_config(types=["#const Point &=Object:PointComparator"])
        decl = CallableDeclaration.build("move", [("p", T("const Point &"))])
        call = emitter.actual_call_expression(map_decl(decl, cfg))
        assert call.endswith('.withParameterOfType("PointComparator", "p", &p)')

    def test_object_output(self, emitter):
        cfg = make_config(types=["#Point=Object:PointCopier"])
        decl = CallableDeclaration.build("locate", [("p", T("Point *"))])
        call = emitter.actual_call_expression(map_decl(decl, cfg))
        assert call.endswith('.withOutputParameterOfType("PointCopier", "p", p)')

    def test_object_return_by_value(self, emitter):
        cfg = make_config(types=["@Point=Object:PointComparator"])
        decl = CallableDeclaration.build("origin", return_type=T("Point"))
        text = emitter.generate(map_decl(decl, cfg))
        assert 'return *static_cast<const Point *>(mock().actualCall("origin").returnConstPointerValue());' in text
