#!/usr/bin/env python3
"""
Override configuration for the mock generator.

Users can force the data kind used for a specific parameter, for the return
value of a specific function, or for every parameter/return value of a given
type. Rules are given as text on the command line and parsed once, before the
input file is parsed.

Override grammar (version 1, whitespace-insensitive):

    Parameter-level rules (-p):
        <function>#<param>=<kind-spec>      parameter <param> of <function>
        #<param>=<kind-spec>                parameter <param> of any function
        <function>@=<kind-spec>             return value of <function>

    Type-level rules (-t):
        #<type>=<kind-spec>                 parameters of type <type>
        @<type>=<kind-spec>                 return values of type <type>

    <kind-spec> := <Kind>[:<argument>][/<expression>]

<function> is a qualified name (e.g. 'ns::Class::method'). A <type> containing
qualifier tokens ('const', 'volatile', '*', '&', '[]') must match the full
shape of the type; a bare type name matches that type in any shape.
<argument> is the comparator/copier name for 'Object' (required) or a size
expression for 'MemoryBuffer'. In <expression> (and in size expressions) '$'
stands for the parameter value, or for the retrieved value of a return rule:
'&$' passes the address, '*$' dereferences.

Examples:

    foo#bar=String
    #handle=ConstPointer
    foo@=Int/&$
    #const Point &=Object:Point
    @const bar=Int/&$
    #uint8_t *=MemoryBuffer:len
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import ConfigError
from .models import DataKind, TypeDescriptor, canonical_builtin_name, normalize_spelling

OVERRIDE_GRAMMAR_VERSION = 1


class OverrideSelector(Enum):
    FUNCTION_AND_PARAMETER = auto()
    PARAMETER_NAME_ONLY = auto()
    QUALIFIED_TYPE_NAME = auto()
    TYPE_NAME_ONLY = auto()


class TypeRole(Enum):
    """Whether a type is used for a parameter or for a return value."""
    PARAMETER = "#"
    RETURN = "@"


_KIND_BY_NAME: Dict[str, DataKind] = {k.value: k for k in DataKind if k != DataKind.VOID}
_KIND_BY_NAME.update({
    "Long": DataKind.LONG_INT,
    "UnsignedLong": DataKind.UNSIGNED_LONG_INT,
})

_KINDS_WITH_ARGUMENT = (DataKind.OBJECT, DataKind.MEMORY_BUFFER)
_KINDS_INVALID_FOR_RETURN = (DataKind.OUTPUT, DataKind.MEMORY_BUFFER, DataKind.SKIP)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_]\w*$")
_KIND_SPEC_RE = re.compile(r"^(?P<kind>[A-Za-z]+)\s*(?::(?P<arg>[^/]*))?(?:/(?P<expr>.*))?$")
_QUALIFIER_RE = re.compile(r"[*&\[\]]|\bconst\b|\bvolatile\b")


def _shape_key(t: TypeDescriptor) -> Tuple:
    return (t.base, t.pointer_depth, t.is_reference, t.is_rvalue_reference, t.array_dims, t.is_const, t.is_volatile)


@dataclass(frozen=True)
class OverrideRule:
    """
    A single user override. `raw` keeps the original text for diagnostics and
    does not take part in comparisons.
    """
    selector: OverrideSelector
    target: TypeRole
    kind: DataKind
    function: Optional[str] = None
    parameter: Optional[str] = None
    type_spelling: Optional[str] = None
    argument: Optional[str] = None
    expression: Optional[str] = None
    raw: str = field(default="", compare=False)

    @property
    def kind_spec(self) -> str:
        text = self.kind.value
        if self.argument:
            text += f":{self.argument}"
        if self.expression:
            text += f"/{self.expression}"
        return text

    def to_text(self) -> str:
        """
        Serialize back to canonical override text.
        """
        if self.selector == OverrideSelector.FUNCTION_AND_PARAMETER:
            if self.target == TypeRole.RETURN:
                return f"{self.function}@={self.kind_spec}"
            return f"{self.function}#{self.parameter}={self.kind_spec}"
        if self.selector == OverrideSelector.PARAMETER_NAME_ONLY:
            return f"#{self.parameter}={self.kind_spec}"
        return f"{self.target.value}{self.type_spelling}={self.kind_spec}"

    def apply_expression(self, value: str) -> str:
        """
        Substitute `value` into the expression modifier (identity when there is none).
        """
        if not self.expression:
            return value
        return self.expression.replace("$", value)

    def matches_type(self, t: TypeDescriptor) -> bool:
        if self.type_spelling is None:
            return False
        if self.selector == OverrideSelector.QUALIFIED_TYPE_NAME:
            return _shape_key(TypeDescriptor.from_spelling(self.type_spelling)) == _shape_key(t)
        if self.selector == OverrideSelector.TYPE_NAME_ONLY:
            return self.type_spelling == t.base
        return False


# --------------------------
# Parsing
# --------------------------

def _parse_kind_spec(raw: str, text: str, target: TypeRole) -> Tuple[DataKind, Optional[str], Optional[str]]:
    m = _KIND_SPEC_RE.match(text.strip())
    if not m:
        raise ConfigError(raw, "Invalid mock type specification")

    kind_name = m.group("kind")
    kind = _KIND_BY_NAME.get(kind_name)
    if kind is None:
        raise ConfigError(raw, f"Invalid mock type '{kind_name}'")

    argument = m.group("arg")
    if argument is not None:
        argument = re.sub(r"\s+", " ", argument.strip())
        if not argument:
            raise ConfigError(raw, f"Empty argument for mock type '{kind_name}'")
        if kind not in _KINDS_WITH_ARGUMENT:
            raise ConfigError(raw, f"Mock type '{kind_name}' does not take an argument")
    if kind == DataKind.OBJECT and not argument:
        raise ConfigError(raw, "Mock type 'Object' requires a comparator/copier name")

    expression = m.group("expr")
    if expression is not None:
        expression = re.sub(r"\s+", " ", expression.strip())
        if "$" not in expression:
            raise ConfigError(raw, "Expression modifier must contain the '$' placeholder")
        if kind == DataKind.SKIP:
            raise ConfigError(raw, "Mock type 'Skip' does not take an expression modifier")

    if target == TypeRole.RETURN and kind in _KINDS_INVALID_FOR_RETURN:
        raise ConfigError(raw, f"Mock type '{kind_name}' is not valid for return values")

    return kind, argument, expression


def parse_param_override(raw: str) -> OverrideRule:
    """
    Parse a parameter-level override rule. Raises ConfigError when malformed.
    """
    m = re.match(r"^(?P<func>[^#@]*)(?P<sep>[#@])(?P<rest>.*)$", raw.strip())
    if not m:
        raise ConfigError(raw, "Missing parameter ('#') or return ('@') separator")

    function = re.sub(r"\s+", " ", m.group("func").strip()) or None
    rest = m.group("rest")
    if "=" not in rest:
        raise ConfigError(raw, "Missing '=' before the mock type")
    name, spec = rest.split("=", 1)
    name = name.strip()

    if m.group("sep") == "@":
        if name:
            raise ConfigError(raw, "Unexpected text between '@' and '='")
        if function is None:
            raise ConfigError(raw, "Return value override requires a function name")
        kind, argument, expression = _parse_kind_spec(raw, spec, TypeRole.RETURN)
        return OverrideRule(
            selector=OverrideSelector.FUNCTION_AND_PARAMETER,
            target=TypeRole.RETURN,
            kind=kind,
            function=function,
            argument=argument,
            expression=expression,
            raw=raw,
        )

    if not _IDENTIFIER_RE.match(name):
        raise ConfigError(raw, f"Invalid parameter name '{name}'")
    kind, argument, expression = _parse_kind_spec(raw, spec, TypeRole.PARAMETER)
    return OverrideRule(
        selector=OverrideSelector.FUNCTION_AND_PARAMETER if function else OverrideSelector.PARAMETER_NAME_ONLY,
        target=TypeRole.PARAMETER,
        kind=kind,
        function=function,
        parameter=name,
        argument=argument,
        expression=expression,
        raw=raw,
    )


def parse_type_override(raw: str) -> OverrideRule:
    """
    Parse a type-level override rule. Raises ConfigError when malformed.
    """
    text = raw.strip()
    if not text or text[0] not in "#@":
        raise ConfigError(raw, "Type override must start with '#' (parameters) or '@' (return values)")
    target = TypeRole(text[0])
    if "=" not in text:
        raise ConfigError(raw, "Missing '=' before the mock type")
    type_text, spec = text[1:].split("=", 1)
    type_text = normalize_spelling(type_text)
    if not type_text:
        raise ConfigError(raw, "Missing type name")

    if _QUALIFIER_RE.search(type_text):
        selector = OverrideSelector.QUALIFIED_TYPE_NAME
    else:
        selector = OverrideSelector.TYPE_NAME_ONLY
        type_text = canonical_builtin_name(type_text) or type_text

    kind, argument, expression = _parse_kind_spec(raw, spec, target)
    return OverrideRule(
        selector=selector,
        target=target,
        kind=kind,
        type_spelling=type_text,
        argument=argument,
        expression=expression,
        raw=raw,
    )


# --------------------------
# Configuration
# --------------------------

class Config:
    """
    Ordered override rules plus global classification options.

    Build it with from_options() (or add rules and call freeze()); once frozen it
    can no longer be modified.
    """

    def __init__(self, use_underlying_typedef_type: bool = False) -> None:
        self._use_underlying_typedef_type = use_underlying_typedef_type
        self._param_rules: List[OverrideRule] = []
        self._type_rules: List[OverrideRule] = []
        self._frozen = False

    @staticmethod
    def from_options(
        use_underlying_typedef_type: bool = False,
        param_override_options: Iterable[str] = (),
        type_override_options: Iterable[str] = (),
    ) -> "Config":
        cfg = Config(use_underlying_typedef_type)
        for opt in param_override_options:
            cfg.add_param_override(opt)
        for opt in type_override_options:
            cfg.add_type_override(opt)
        cfg.freeze()
        return cfg

    # ---- Building ----

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("Config is frozen; overrides must be added before generation starts")

    def add_param_override(self, text: str) -> OverrideRule:
        self._check_mutable()
        rule = parse_param_override(text)
        self._param_rules.append(rule)
        return rule

    def add_type_override(self, text: str) -> OverrideRule:
        self._check_mutable()
        rule = parse_type_override(text)
        self._type_rules.append(rule)
        return rule

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def param_rules(self) -> Tuple[OverrideRule, ...]:
        return tuple(self._param_rules)

    @property
    def type_rules(self) -> Tuple[OverrideRule, ...]:
        return tuple(self._type_rules)

    # ---- Lookups ----

    def use_underlying_typedef_type(self) -> bool:
        return self._use_underlying_typedef_type

    def resolve_parameter_override(self, function_name: str, param_name: str) -> Optional[OverrideRule]:
        """
        Function-specific rules beat parameter-name-only rules; within a class
        the first registered rule wins.
        """
        for selector, wants_function in (
            (OverrideSelector.FUNCTION_AND_PARAMETER, True),
            (OverrideSelector.PARAMETER_NAME_ONLY, False),
        ):
            for rule in self._param_rules:
                if rule.selector != selector or rule.target != TypeRole.PARAMETER:
                    continue
                if rule.parameter != param_name:
                    continue
                if wants_function and rule.function != function_name:
                    continue
                return rule
        return None

    def resolve_return_override(self, function_name: str) -> Optional[OverrideRule]:
        for rule in self._param_rules:
            if rule.target == TypeRole.RETURN and rule.function == function_name:
                return rule
        return None

    def resolve_type_override(self, t: TypeDescriptor, role: TypeRole = TypeRole.PARAMETER) -> Optional[OverrideRule]:
        """
        Rules naming the full qualified shape beat bare type-name rules.
        """
        for selector in (OverrideSelector.QUALIFIED_TYPE_NAME, OverrideSelector.TYPE_NAME_ONLY):
            for rule in self._type_rules:
                if rule.selector == selector and rule.target == role and rule.matches_type(t):
                    return rule
        return None


__all__ = [
    "OVERRIDE_GRAMMAR_VERSION",
    "OverrideSelector",
    "TypeRole",
    "OverrideRule",
    "Config",
    "parse_param_override",
    "parse_type_override",
]
