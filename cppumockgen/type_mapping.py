#!/usr/bin/env python3
"""
Type mapping for CppUTest mocks.

This module analyzes parsed C/C++ types and declarations (from `models.py`) and
computes how to express them through the CppUTest mocking API. It provides:

- A catalog of builtin scalar mappings (bool, integral widths, floating point)
- String, pointer, output-parameter and memory-buffer heuristics
- Override resolution (parameter-level rules, then type-level rules)
- Per-declaration mockability decisions with reasons for unsupported signatures

Typical usage (high level):

    from .config import Config
    from .type_mapping import TypeClassifier, MockabilityEvaluator

    classifier = TypeClassifier(Config.from_options(...))
    evaluator = MockabilityEvaluator(classifier)

    for decl in declarations:
        mapped = evaluator.evaluate(decl)
        if not mapped.supported:
            # skip emitting this declaration; mapped.reason provides details
            continue
        # Use mapped.parameters / mapped.return_value to generate mock bodies
        # and expectation functions.

Design notes:
- Classification never raises: DataKind.SKIP is the "cannot be expressed" answer,
  with `reason` telling why.
- Classification is a pure function of (type, role, function/parameter names,
  config), so results do not depend on traversal order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import logging

from .config import Config, OverrideRule, TypeRole
from .models import (
    CallableDeclaration,
    DataKind,
    Parameter,
    TypeCategory,
    TypeDescriptor,
)

logger = logging.getLogger(__name__)


# --------------------------
# Helpers
# --------------------------

_SCALAR_BY_BUILTIN: Dict[str, DataKind] = {
    "bool": DataKind.BOOL,
    "char": DataKind.INT,
    "signed char": DataKind.INT,
    "wchar_t": DataKind.INT,
    "char16_t": DataKind.INT,
    "short": DataKind.INT,
    "int": DataKind.INT,
    "unsigned char": DataKind.UNSIGNED_INT,
    "char32_t": DataKind.UNSIGNED_INT,
    "unsigned short": DataKind.UNSIGNED_INT,
    "unsigned int": DataKind.UNSIGNED_INT,
    "long": DataKind.LONG_INT,
    "long long": DataKind.LONG_INT,
    "unsigned long": DataKind.UNSIGNED_LONG_INT,
    "unsigned long long": DataKind.UNSIGNED_LONG_INT,
    "float": DataKind.DOUBLE,
    "double": DataKind.DOUBLE,
    "long double": DataKind.DOUBLE,
}


def _scalar_kind(t: TypeDescriptor) -> Optional[DataKind]:
    """
    Scalar kind for a builtin or enum base type, ignoring pointers/references.
    """
    if t.category == TypeCategory.BUILTIN:
        return _SCALAR_BY_BUILTIN.get(t.base)
    if t.category == TypeCategory.ENUM:
        # Enumerations go through Int unless their underlying type is long-sized
        if t.underlying is not None:
            kind = _SCALAR_BY_BUILTIN.get(t.underlying.base)
            if kind in (DataKind.LONG_INT, DataKind.UNSIGNED_LONG_INT):
                return kind
        return DataKind.INT
    return None


def _is_char(t: TypeDescriptor) -> bool:
    return t.category == TypeCategory.BUILTIN and t.base == "char"


def _is_void_base(t: TypeDescriptor) -> bool:
    return t.category == TypeCategory.BUILTIN and t.base == "void"


def _points_to_const(t: TypeDescriptor) -> bool:
    """
    Constness of what the first indirection level refers to. For deeper
    pointers (e.g. 'const char **') the first level is itself a mutable pointer.
    """
    return t.is_const and t.indirection_depth <= 1


def _is_opaque_handle(t: TypeDescriptor) -> bool:
    return t.category == TypeCategory.INCOMPLETE and t.indirection_depth == 1 and not t.is_reference


# --------------------------
# Mapping model
# --------------------------

@dataclass(frozen=True)
class Classification:
    """
    Describes how a single type is expressed through the mocking API.

    - `argument`: comparator/copier name (Object) or size expression with '$'
      placeholder (MemoryBuffer).
    - `expression`: C++ expression template with '$' placeholder applied to the
      value before it is handed over (or to the retrieved return value).
    - `static_size`: for MemoryBuffer, whether the size expression depends only
      on the value itself.
    - `rule`: the override that decided the kind, if any.
    """
    kind: DataKind
    type: TypeDescriptor
    argument: Optional[str] = None
    expression: Optional[str] = None
    static_size: bool = True
    rule: Optional[OverrideRule] = None
    reason: Optional[str] = None

    @property
    def overridden(self) -> bool:
        return self.rule is not None

    @property
    def is_output(self) -> bool:
        """
        True when the value flows out of the call through a non-const pointer/reference.
        """
        if self.kind == DataKind.OUTPUT:
            return True
        if self.kind == DataKind.OBJECT and self.expression is None:
            t = self.type.expanded()
            return (t.is_pointer or t.is_reference) and not t.is_const
        return False

    def apply_expression(self, value: str) -> str:
        if not self.expression:
            return value
        return self.expression.replace("$", value)


@dataclass(frozen=True)
class MappedParameter:
    parameter: Parameter
    classification: Classification

    @property
    def name(self) -> str:
        return self.parameter.effective_name

    @property
    def kind(self) -> DataKind:
        return self.classification.kind


@dataclass
class MappedDeclaration:
    """
    Full mapping for a declaration, ready for code emission.
    """
    declaration: CallableDeclaration
    parameters: List[MappedParameter] = field(default_factory=list)
    return_value: Optional[Classification] = None
    supported: bool = True
    reason: Optional[str] = None

    @property
    def has_return(self) -> bool:
        return self.return_value is not None and self.return_value.kind != DataKind.VOID

    @property
    def mocked_parameters(self) -> List[MappedParameter]:
        """Parameters that take part in the mocked call (overridden Skips removed)."""
        return [p for p in self.parameters if p.kind != DataKind.SKIP]


# --------------------------
# Classifier
# --------------------------

class TypeClassifier:
    """
    Maps a type to a DataKind using override rules and builtin heuristics.

    Resolution order:
      1. parameter-level override (function+parameter, then parameter name only)
         or function return override
      2. type-level override (qualified shape, then bare type name); typedefs are
         expanded first when the config asks for underlying types
      3. heuristics; typedefs fall back to their underlying type
    """

    def __init__(self, config: Optional[Config] = None) -> None:
        self.config = config or Config.from_options()

    # ---- Public API ----

    def classify(
        self,
        t: TypeDescriptor,
        role: TypeRole = TypeRole.PARAMETER,
        function_name: Optional[str] = None,
        param_name: Optional[str] = None,
    ) -> Classification:
        if function_name is not None:
            if role == TypeRole.PARAMETER and param_name:
                rule = self.config.resolve_parameter_override(function_name, param_name)
            elif role == TypeRole.RETURN:
                rule = self.config.resolve_return_override(function_name)
            else:
                rule = None
            if rule is not None:
                return self._from_rule(t, rule)
        return self._classify_type(t, role)

    def classify_parameter(self, decl: CallableDeclaration, p: Parameter) -> Classification:
        return self.classify(p.type, TypeRole.PARAMETER, decl.qualified_name, p.name)

    def classify_return(self, decl: CallableDeclaration) -> Classification:
        return self.classify(decl.return_type, TypeRole.RETURN, decl.qualified_name)

    # ---- Overrides ----

    def _from_rule(self, t: TypeDescriptor, rule: OverrideRule) -> Classification:
        argument = rule.argument
        static_size = True
        if rule.kind == DataKind.MEMORY_BUFFER:
            if not argument:
                shape = t.expanded()
                if shape.pointer_depth == 1 and not shape.is_array and _is_void_base(shape):
                    # 'sizeof(*$)' on an untyped pointer does not compile
                    return self._skip(t, f"MemoryBuffer override on '{t.spelling}' requires a size argument")
                argument = self._default_buffer_size(shape)
            static_size = "$" not in argument and rule.argument is None
        return Classification(
            kind=rule.kind,
            type=t,
            argument=argument,
            expression=rule.expression,
            static_size=static_size,
            rule=rule,
        )

    def _with_type(self, c: Classification, t: TypeDescriptor) -> Classification:
        return Classification(
            kind=c.kind,
            type=t,
            argument=c.argument,
            expression=c.expression,
            static_size=c.static_size,
            rule=c.rule,
            reason=c.reason,
        )

    def _classify_type(self, t: TypeDescriptor, role: TypeRole) -> Classification:
        if t.category == TypeCategory.TYPEDEF and t.underlying is not None and self.config.use_underlying_typedef_type():
            return self._with_type(self._classify_type(t.underlying, role), t)

        rule = self.config.resolve_type_override(t, role)
        if rule is not None:
            return self._from_rule(t, rule)

        if t.category == TypeCategory.TYPEDEF:
            if t.underlying is None:
                return self._skip(t, f"typedef '{t.base}' has no resolvable underlying type")
            return self._with_type(self._classify_type(t.underlying, role), t)

        if role == TypeRole.RETURN:
            return self._heuristic_return(t)
        return self._heuristic_parameter(t)

    # ---- Heuristics ----

    def _skip(self, t: TypeDescriptor, reason: str) -> Classification:
        return Classification(kind=DataKind.SKIP, type=t, reason=reason)

    def _unsupported_category(self, t: TypeDescriptor) -> Optional[Classification]:
        if t.category == TypeCategory.TEMPLATE:
            return self._skip(t, f"template type '{t.spelling}' is not supported")
        if t.category == TypeCategory.FUNCTION:
            return self._skip(t, f"function type '{t.spelling}' is not supported")
        if t.category == TypeCategory.INCOMPLETE and not _is_opaque_handle(t):
            return self._skip(t, f"incomplete type '{t.spelling}' is not supported")
        if t.is_rvalue_reference:
            return self._skip(t, f"rvalue reference '{t.spelling}' is not supported")
        return None

    def _default_buffer_size(self, t: TypeDescriptor) -> str:
        count = t.static_element_count
        if count is not None:
            return f"sizeof({t.pointee_spelling}) * {count}"
        return "sizeof(*$)"

    def _heuristic_parameter(self, t: TypeDescriptor) -> Classification:
        unsupported = self._unsupported_category(t)
        if unsupported is not None:
            return unsupported

        if t.is_void:
            return self._skip(t, "void parameter is invalid")

        depth = t.indirection_depth
        scalar = _scalar_kind(t)

        # Plain values and const references to scalars
        if depth == 0 and (not t.is_reference or t.is_const):
            if scalar is not None:
                return Classification(kind=scalar, type=t)
            return self._skip(t, f"type '{t.spelling}' requires an Object override naming its comparator")

        # C strings
        if depth == 1 and not t.is_reference and _is_char(t):
            return Classification(kind=DataKind.STRING, type=t)

        # Untyped pointers and handles to incomplete types
        if depth == 1 and not t.is_reference and (_is_void_base(t) or _is_opaque_handle(t)):
            return Classification(kind=DataKind.CONST_POINTER if t.is_const else DataKind.POINTER, type=t)

        if _points_to_const(t):
            if t.static_element_count is not None:
                return Classification(
                    kind=DataKind.MEMORY_BUFFER,
                    type=t,
                    argument=self._default_buffer_size(t),
                )
            return Classification(kind=DataKind.CONST_POINTER, type=t)

        # Non-const pointer or reference: the callee may write through it
        return Classification(kind=DataKind.OUTPUT, type=t)

    def _heuristic_return(self, t: TypeDescriptor) -> Classification:
        unsupported = self._unsupported_category(t)
        if unsupported is not None:
            return unsupported

        if t.is_void:
            return Classification(kind=DataKind.VOID, type=t)

        depth = t.indirection_depth
        scalar = _scalar_kind(t)

        if depth == 0 and not t.is_reference:
            if scalar is not None:
                return Classification(kind=scalar, type=t)
            return self._skip(t, f"return type '{t.spelling}' requires an Object override naming its comparator")

        if depth == 1 and not t.is_reference and _is_char(t) and t.is_const:
            return Classification(kind=DataKind.STRING, type=t)

        return Classification(kind=DataKind.CONST_POINTER if _points_to_const(t) else DataKind.POINTER, type=t)


# --------------------------
# Mockability
# --------------------------

class MockabilityEvaluator:
    """
    Decides whether a declaration can be mocked. Results are cached per
    declaration instance for the lifetime of the evaluator.
    """

    def __init__(self, classifier: TypeClassifier) -> None:
        self.classifier = classifier
        self._cache: Dict[int, Tuple[CallableDeclaration, MappedDeclaration]] = {}

    def is_mockable(self, decl: CallableDeclaration) -> bool:
        return self.evaluate(decl).supported

    def evaluate(self, decl: CallableDeclaration) -> MappedDeclaration:
        cached = self._cache.get(id(decl))
        if cached is not None and cached[0] is decl:
            return cached[1]
        mapped = self._evaluate(decl)
        self._cache[id(decl)] = (decl, mapped)
        if not mapped.supported:
            logger.debug("Skipping non-mockable declaration %s: %s", decl.cpp_signature, mapped.reason)
        return mapped

    def _unsupported(self, decl: CallableDeclaration, reason: str) -> MappedDeclaration:
        return MappedDeclaration(declaration=decl, supported=False, reason=reason)

    def _evaluate(self, decl: CallableDeclaration) -> MappedDeclaration:
        if decl.is_template:
            return self._unsupported(decl, "function templates cannot be mocked")
        if decl.is_conversion_operator:
            return self._unsupported(decl, "conversion operators cannot be mocked")
        if decl.is_pure_virtual:
            return self._unsupported(decl, "pure virtual methods have no call target to substitute")
        if decl.has_body:
            return self._unsupported(decl, "already defined inline in the header")
        if decl.is_variadic:
            return self._unsupported(decl, "variadic functions cannot be mocked")

        parameters: List[MappedParameter] = []
        for p in decl.parameters:
            c = self.classifier.classify_parameter(decl, p)
            if c.kind == DataKind.SKIP and not c.overridden:
                return self._unsupported(
                    decl,
                    f"unsupported parameter '{p.effective_name}' of type '{p.type.spelling}' ({c.reason})",
                )
            parameters.append(MappedParameter(parameter=p, classification=c))

        ret = self.classifier.classify_return(decl)
        if ret.kind == DataKind.SKIP:
            return self._unsupported(decl, f"unsupported return type '{decl.return_type.spelling}' ({ret.reason})")

        return MappedDeclaration(declaration=decl, parameters=parameters, return_value=ret)


__all__ = [
    "Classification",
    "MappedParameter",
    "MappedDeclaration",
    "TypeClassifier",
    "MockabilityEvaluator",
]
