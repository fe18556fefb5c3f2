#!/usr/bin/env python3
"""
Emitter for CppUTest expectation (companion) functions.

For each mockable declaration a test-side helper is generated in namespace
'expect' that registers the expected call mirroring the mock's actual call:

    namespace expect {
    MockExpectedCall& function2(int a, int __return__);
    MockExpectedCall& function2(unsigned int __numCalls__, int a, int __return__);
    }

Parameter roles are inverted with respect to the mock:
- scalar, String, pointer and Object inputs become expected values
- Output parameters become values injected through the pointer when the mock runs
- a non-void return becomes a trailing '__return__' value

Enclosing namespaces and classes are mapped to nested namespaces named
'<scope>$', so 'ns::Class::method' becomes 'expect::ns$::Class$::method'.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..models import CallableDeclaration, DataKind
from ..type_mapping import Classification, MappedDeclaration, MappedParameter
from ..utils import operator_identifier
from .mock_emitter import SCALAR_CPP_TYPES, is_enum, object_type, strip_const

logger = logging.getLogger(__name__)

EXPECT_NAMESPACE = "expect"

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
}


# --------------------------
# Companion model
# --------------------------

@dataclass(frozen=True)
class CompanionArgument:
    """
    One argument of a companion function.

    `registration` is the member call applied to the expected call, or None for
    arguments consumed by another argument's registration (buffer sizes).
    """
    type_spelling: str
    name: str
    registration: Optional[str] = None

    @property
    def declaration(self) -> str:
        if self.type_spelling.endswith(("*", "&")):
            return f"{self.type_spelling}{self.name}"
        return f"{self.type_spelling} {self.name}"


def _pointer_to(spelling: str) -> str:
    return f"{spelling} *"


def _const_pointer_to(spelling: str) -> str:
    """Pointer to const `spelling`, without repeating a top-level const already there."""
    top = spelling.rsplit("*", 1)[-1]
    if re.search(r"\bconst\b", top):
        return _pointer_to(spelling)
    return _pointer_to(f"{spelling} const")


def _size_name(name: str) -> str:
    return f"__size_{name}"


# --------------------------
# Emitter
# --------------------------

class ExpectationEmitter:
    """
    Render companion function declarations and definitions.

    Usage:
        emitter = ExpectationEmitter()
        header_text = emitter.generate_header_section(mapped_decls)
        impl_text = emitter.generate_impl_section(mapped_decls)
    """

    # ---- Naming ----

    def companion_name(self, decl: CallableDeclaration) -> str:
        name = operator_identifier(decl.name)
        if decl.overload_index:
            name = f"{name}_{decl.overload_index}"
        return name

    def companion_scopes(self, decl: CallableDeclaration) -> List[str]:
        return [f"{s}$" for s in decl.scopes]

    # ---- Arguments ----

    def companion_arguments(self, mapped: MappedDeclaration) -> List[CompanionArgument]:
        """
        Arguments in order: object (non-static members), mocked parameters, return value.
        """
        args: List[CompanionArgument] = []
        decl = mapped.declaration
        if decl.needs_object:
            args.append(CompanionArgument("const void *", "__object__", "onObject(const_cast<void *>(__object__))"))
        for mp in mapped.parameters:
            args.extend(self._parameter_arguments(mp))
        if mapped.has_return and mapped.return_value is not None:
            args.append(self._return_argument(mapped.return_value))
        return args

    def _parameter_arguments(self, mp: MappedParameter) -> List[CompanionArgument]:
        c = mp.classification
        name = mp.name
        kind = c.kind

        if kind == DataKind.SKIP:
            return []

        if kind.is_scalar:
            method = _PARAMETER_METHODS[kind]
            if not c.expression and is_enum(c.type):
                # Enumerations keep their own type; scoped ones do not convert to int implicitly
                ctype = SCALAR_CPP_TYPES[kind]
                return [
                    CompanionArgument(c.type.value_spelling, name, f'{method}("{name}", static_cast<{ctype}>({name}))')
                ]
            return [CompanionArgument(SCALAR_CPP_TYPES[kind], name, f'{method}("{name}", {name})')]

        if kind == DataKind.STRING:
            return [CompanionArgument("const char *", name, f'withStringParameter("{name}", {name})')]

        if kind == DataKind.POINTER:
            return [CompanionArgument("void *", name, f'withPointerParameter("{name}", {name})')]

        if kind == DataKind.CONST_POINTER:
            return [CompanionArgument("const void *", name, f'withConstPointerParameter("{name}", {name})')]

        if kind == DataKind.OUTPUT:
            pointee = self._output_pointee(c)
            if pointee is None:
                return [
                    CompanionArgument(
                        "const void *",
                        name,
                        f'withOutputParameterReturning("{name}", {name}, {_size_name(name)})',
                    ),
                    CompanionArgument("size_t", _size_name(name)),
                ]
            return [
                CompanionArgument(
                    _const_pointer_to(pointee),
                    name,
                    f'withOutputParameterReturning("{name}", {name}, sizeof(*{name}))',
                )
            ]

        if kind == DataKind.MEMORY_BUFFER:
            buffer = f"static_cast<const unsigned char *>({name})"
            if c.static_size and c.argument:
                return [
                    CompanionArgument(
                        "const void *",
                        name,
                        f'withMemoryBufferParameter("{name}", {buffer}, {c.argument})',
                    )
                ]
            return [
                CompanionArgument(
                    "const void *",
                    name,
                    f'withMemoryBufferParameter("{name}", {buffer}, {_size_name(name)})',
                ),
                CompanionArgument("size_t", _size_name(name)),
            ]

        if kind == DataKind.OBJECT:
            method = "withOutputParameterOfTypeReturning" if c.is_output else "withParameterOfType"
            return [
                CompanionArgument(
                    f"{object_type(c.type)} const &",
                    name,
                    f'{method}("{c.argument}", "{name}", &{name})',
                )
            ]

        raise RuntimeError(f"Unhandled data kind for parameter '{name}': {kind}")

    def _output_pointee(self, c: Classification) -> Optional[str]:
        """
        Type written through an Output parameter, or None when it cannot be named
        (untyped pointers), in which case the caller supplies the size.
        """
        t = c.type
        if c.expression:
            return None
        if t.indirection_depth > 0 or t.is_reference:
            pointee = t.pointee_spelling
        else:
            shape = t.expanded()
            if not (shape.indirection_depth > 0 or shape.is_reference):
                return None
            pointee = shape.pointee_spelling
        if strip_const(pointee) == "void":
            return None
        return pointee

    def _return_argument(self, ret: Classification) -> CompanionArgument:
        t = ret.type
        shape = t.expanded()
        kind = ret.kind
        name = "__return__"

        if kind.is_scalar:
            ctype = SCALAR_CPP_TYPES[kind]
            spelling = ctype if ret.expression else t.spelling
            return CompanionArgument(spelling, name, f"andReturnValue(static_cast<{ctype}>({name}))")

        if kind == DataKind.STRING:
            spelling = "const char *" if ret.expression else t.decayed_spelling
            return CompanionArgument(spelling, name, f"andReturnValue(static_cast<const char *>({name}))")

        if kind in (DataKind.POINTER, DataKind.CONST_POINTER):
            target = "void *" if kind == DataKind.POINTER else "const void *"
            if ret.expression:
                return CompanionArgument(target, name, f"andReturnValue({name})")
            if shape.is_reference:
                return CompanionArgument(t.spelling, name, f"andReturnValue(static_cast<{target}>(&{name}))")
            return CompanionArgument(t.decayed_spelling, name, f"andReturnValue(static_cast<{target}>({name}))")

        if kind == DataKind.OBJECT:
            if shape.is_pointer and not ret.expression:
                return CompanionArgument(t.spelling, name, f"andReturnValue(static_cast<const void *>({name}))")
            return CompanionArgument(
                f"{object_type(t)} const &",
                name,
                f"andReturnValue(static_cast<const void *>(&{name}))",
            )

        raise RuntimeError(f"Unhandled data kind for return value: {kind}")

    # ---- Rendering ----

    def _prototypes(self, mapped: MappedDeclaration) -> List[Tuple[str, List[CompanionArgument], bool]]:
        """
        (name, arguments, counted) for the single-call and the N-calls flavours.
        """
        name = self.companion_name(mapped.declaration)
        args = self.companion_arguments(mapped)
        counted = [CompanionArgument("unsigned int", "__numCalls__")] + args
        return [(name, args, False), (name, counted, True)]

    def generate_declaration(self, mapped: MappedDeclaration) -> str:
        if not mapped.supported:
            raise RuntimeError(f"Cannot generate expectations for non-mockable declaration: {mapped.declaration.cpp_signature}")
        lines: List[str] = [f"// {mapped.declaration.cpp_signature}"]
        for name, args, _ in self._prototypes(mapped):
            params = ", ".join(a.declaration for a in args)
            lines.append(f"MockExpectedCall& {name}({params});")
        return "\n".join(lines) + "\n"

    def generate_definition(self, mapped: MappedDeclaration) -> str:
        if not mapped.supported:
            raise RuntimeError(f"Cannot generate expectations for non-mockable declaration: {mapped.declaration.cpp_signature}")
        decl = mapped.declaration
        lines: List[str] = []
        for name, args, counted in self._prototypes(mapped):
            params = ", ".join(a.declaration for a in args)
            if counted:
                expect = f'mock().expectNCalls(__numCalls__, "{decl.registered_name}")'
            else:
                expect = f'mock().expectOneCall("{decl.registered_name}")'
            lines.append(f"MockExpectedCall& {name}({params})")
            lines.append("{")
            lines.append(f"    MockExpectedCall& __expectedCall__ = {expect};")
            for a in args:
                if a.registration:
                    lines.append(f"    __expectedCall__.{a.registration};")
            lines.append("    return __expectedCall__;")
            lines.append("}")
            lines.append("")
        logger.debug("Generated expectations for %s", decl.cpp_signature)
        return "\n".join(lines)

    def generate_header_section(self, mapped_decls: Sequence[MappedDeclaration]) -> str:
        blocks = [(self.companion_scopes(m.declaration), self.generate_declaration(m)) for m in mapped_decls]
        return wrap_in_namespaces(blocks)

    def generate_impl_section(self, mapped_decls: Sequence[MappedDeclaration]) -> str:
        blocks = [(self.companion_scopes(m.declaration), self.generate_definition(m)) for m in mapped_decls]
        return wrap_in_namespaces(blocks)


def wrap_in_namespaces(blocks: Sequence[Tuple[List[str], str]]) -> str:
    """
    Emit text blocks inside 'namespace expect', opening and closing the nested
    scope namespaces only where consecutive blocks differ.
    """
    lines: List[str] = [f"namespace {EXPECT_NAMESPACE} {{"]
    current: List[str] = []
    for scopes, text in blocks:
        common = 0
        while common < min(len(current), len(scopes)) and current[common] == scopes[common]:
            common += 1
        for _ in range(len(current) - common):
            lines.append("}")
        for s in scopes[common:]:
            lines.append(f"namespace {s} {{")
        current = list(scopes)
        lines.append(text.rstrip("\n"))
        lines.append("")
    for _ in current:
        lines.append("}")
    lines.append("}")
    return "\n".join(lines) + "\n"


__all__ = [
    "CompanionArgument",
    "ExpectationEmitter",
    "EXPECT_NAMESPACE",
    "wrap_in_namespaces",
]
