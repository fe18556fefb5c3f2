#!/usr/bin/env python3
"""
Emitter for CppUTest mock function bodies.

For each mockable declaration this module renders one substitute definition that
forwards the call to the mocking framework:

    int function2(int a)
    {
        return static_cast<int>(mock().actualCall("function2").withIntParameter("a", a).returnIntValue());
    }

- Parameters are attached in declaration order, each with the API call chosen
  by its DataKind (see type_mapping.TypeClassifier).
- Member functions are defined with their class scope and register the object
  through onObject(this) unless they are static.
- The return value, if any, is retrieved and cast back to the declared type.

The file-level layout (heading, includes) is rendered from templates by the
session in generate_mocks.py; this module only produces the per-declaration text.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from ..models import DataKind, TypeCategory, TypeDescriptor
from ..type_mapping import Classification, MappedDeclaration, MappedParameter

logger = logging.getLogger(__name__)


# --------------------------
# Helpers
# --------------------------

_PARAMETER_METHODS = {
    DataKind.BOOL: "withBoolParameter",
    DataKind.INT: "withIntParameter",
    DataKind.UNSIGNED_INT: "withUnsignedIntParameter",
    DataKind.LONG_INT: "withLongIntParameter",
    DataKind.UNSIGNED_LONG_INT: "withUnsignedLongIntParameter",
    DataKind.DOUBLE: "withDoubleParameter",
    DataKind.STRING: "withStringParameter",
    DataKind.POINTER: "withPointerParameter",
    DataKind.CONST_POINTER: "withConstPointerParameter",
    DataKind.OUTPUT: "withOutputParameter",
}

_RETURN_METHODS = {
    DataKind.BOOL: "returnBoolValue",
    DataKind.INT: "returnIntValue",
    DataKind.UNSIGNED_INT: "returnUnsignedIntValue",
    DataKind.LONG_INT: "returnLongIntValue",
    DataKind.UNSIGNED_LONG_INT: "returnUnsignedLongIntValue",
    DataKind.DOUBLE: "returnDoubleValue",
    DataKind.STRING: "returnStringValue",
    DataKind.POINTER: "returnPointerValue",
    DataKind.CONST_POINTER: "returnConstPointerValue",
    DataKind.OBJECT: "returnConstPointerValue",
}

# C++ types used by the mocking API for each scalar kind
SCALAR_CPP_TYPES = {
    DataKind.BOOL: "bool",
    DataKind.INT: "int",
    DataKind.UNSIGNED_INT: "unsigned int",
    DataKind.LONG_INT: "long",
    DataKind.UNSIGNED_LONG_INT: "unsigned long",
    DataKind.DOUBLE: "double",
}


def declare(t: TypeDescriptor, name: str) -> str:
    """
    Render a declaration of `name` with type `t`, placing the name where C++
    expects it for arrays ('int a[4]') and function pointers ('void (*cb)(int)').
    """
    spelling = t.spelling
    if "(*)" in spelling:
        return spelling.replace("(*)", f"(*{name})", 1)
    if "[" in spelling:
        idx = spelling.index("[")
        return f"{spelling[:idx].rstrip()} {name}{spelling[idx:]}"
    if spelling.endswith(("*", "&")):
        return f"{spelling}{name}"
    return f"{spelling} {name}"


def strip_const(spelling: str) -> str:
    """'const Foo' / 'Foo const' -> 'Foo'"""
    return re.sub(r"\s+", " ", re.sub(r"\bconst\b", "", spelling)).strip()


def is_enum(t: TypeDescriptor) -> bool:
    """True for enumerations, including typedef names of enumerations."""
    return t.expanded().category == TypeCategory.ENUM


def _address_of(t: TypeDescriptor, name: str) -> str:
    """
    Address of the value referred to by a parameter: pointers and arrays are
    already addresses, values and references need '&'.
    """
    shape = t.expanded()
    if shape.indirection_depth > 0:
        return name
    return f"&{name}"


def _referred_spelling(t: TypeDescriptor) -> str:
    """Type referred to by a (possibly typedef'd) reference, or the value type."""
    if t.is_reference or not t.expanded().is_reference:
        return t.value_spelling
    return t.expanded().value_spelling


def object_type(t: TypeDescriptor) -> str:
    """
    Class type handled by an Object override, without qualifiers or declarators.
    """
    if t.indirection_depth > 0:
        return strip_const(t.pointee_spelling)
    shape = t.expanded()
    if shape.indirection_depth > 0:
        return strip_const(shape.pointee_spelling)
    return strip_const(_referred_spelling(t))


# --------------------------
# Emitter
# --------------------------

class MockEmitter:
    """
    Render mock bodies for mapped declarations.

    Usage:
        emitter = MockEmitter()
        text = emitter.generate(evaluator.evaluate(decl))
    """

    # ---- Public API ----

    def generate(self, mapped: MappedDeclaration) -> str:
        if not mapped.supported:
            raise RuntimeError(f"Cannot generate a mock for non-mockable declaration: {mapped.declaration.cpp_signature}")

        decl = mapped.declaration
        call = self.actual_call_expression(mapped)

        lines: List[str] = []
        lines.append(self.signature(mapped))
        lines.append("{")
        ret = mapped.return_value
        if mapped.has_return and ret is not None:
            lines.append(f"    return {self._retrieve_return(ret, call)};")
        else:
            lines.append(f"    {call};")
        lines.append("}")
        logger.debug("Generated mock for %s", decl.cpp_signature)
        return "\n".join(lines) + "\n"

    def signature(self, mapped: MappedDeclaration) -> str:
        """
        Out-of-class definition header: 'Ret Scope::name(params) const'.
        """
        decl = mapped.declaration
        params = ", ".join(declare(p.type, p.effective_name) for p in decl.parameters)
        const_q = " const" if decl.is_const else ""
        ret_spelling = decl.return_type.spelling
        name = decl.qualified_name
        if ret_spelling.endswith(("*", "&")):
            return f"{ret_spelling}{name}({params}){const_q}"
        return f"{ret_spelling} {name}({params}){const_q}"

    def actual_call_expression(self, mapped: MappedDeclaration) -> str:
        decl = mapped.declaration
        parts: List[str] = [f'mock().actualCall("{decl.registered_name}")']
        if decl.needs_object:
            parts.append(".onObject(this)")
        for mp in mapped.parameters:
            text = self._parameter_call(mp)
            if text:
                parts.append(text)
        return "".join(parts)

    # ---- Parameters ----

    def _parameter_call(self, mp: MappedParameter) -> Optional[str]:
        c = mp.classification
        name = mp.name
        kind = c.kind

        if kind == DataKind.SKIP:
            return None

        if kind == DataKind.MEMORY_BUFFER:
            value = c.apply_expression(name)
            size = (c.argument or "sizeof(*$)").replace("$", name)
            return (
                f'.withMemoryBufferParameter("{name}", '
                f"static_cast<const unsigned char *>(static_cast<const void *>({value})), {size})"
            )

        if kind == DataKind.OBJECT:
            value = c.expression.replace("$", name) if c.expression else _address_of(c.type, name)
            method = "withOutputParameterOfType" if c.is_output else "withParameterOfType"
            return f'.{method}("{c.argument}", "{name}", {value})'

        if kind == DataKind.OUTPUT:
            value = c.expression.replace("$", name) if c.expression else _address_of(c.type, name)
            return f'.withOutputParameter("{name}", {value})'

        value = c.apply_expression(name)
        if kind.is_scalar and not c.expression and is_enum(c.type):
            value = f"static_cast<{SCALAR_CPP_TYPES[kind]}>({value})"
        return f'.{_PARAMETER_METHODS[kind]}("{name}", {value})'

    # ---- Return value ----

    def _retrieve_return(self, ret: Classification, call: str) -> str:
        t = ret.type
        shape = t.expanded()
        retrieved = f"{call}.{_RETURN_METHODS[ret.kind]}()"
        value = ret.apply_expression(retrieved)

        if ret.expression:
            return f"static_cast<{t.spelling}>({value})"

        if ret.kind == DataKind.OBJECT:
            if shape.is_pointer:
                if shape.is_const:
                    return f"static_cast<{t.spelling}>({value})"
                return f"static_cast<{t.spelling}>(const_cast<void *>({value}))"
            target = _referred_spelling(t)
            if shape.is_reference and not shape.is_const:
                return f"*static_cast<{target} *>(const_cast<void *>({value}))"
            if not shape.is_const:
                target = f"const {target}"
            return f"*static_cast<{target} *>({value})"

        if shape.is_reference and ret.kind in (DataKind.POINTER, DataKind.CONST_POINTER):
            # Reference returns are retrieved as pointers to the referred value
            return f"*static_cast<{_referred_spelling(t)} *>({value})"

        return f"static_cast<{t.spelling}>({value})"


__all__ = [
    "MockEmitter",
    "SCALAR_CPP_TYPES",
    "declare",
    "is_enum",
    "object_type",
    "strip_const",
]
