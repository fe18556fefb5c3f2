#!/usr/bin/env python3
"""
Data models for the CppUTest mock generator.

This module provides strongly-typed data structures to describe:
- C/C++ types (pointer/reference/array shape, qualifiers, category, typedef expansion)
- Function parameters
- Callable declarations (free functions and member functions)
- The data kinds used to express a type through the CppUTest mocking API
- Generation context (input, language options, output naming)

The models are designed to be consumed by:
- The parsing layer (to populate instances from libclang cursors)
- The type mapping layer (to classify every parameter and return type)
- The emitters (to render mock bodies and expectation functions)

Declarations are plain values: they carry no reference to the front-end that
produced them, so everything downstream can be exercised from hand-built
instances.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import Diagnostic

# --------------------------
# Type model
# --------------------------

class TypeCategory(Enum):
    BUILTIN = auto()
    ENUM = auto()
    CLASS = auto()
    TYPEDEF = auto()
    TEMPLATE = auto()
    FUNCTION = auto()
    INCOMPLETE = auto()


BUILTIN_TYPE_NAMES = frozenset({
    "void",
    "bool",
    "char",
    "signed char",
    "unsigned char",
    "wchar_t",
    "char16_t",
    "char32_t",
    "short",
    "unsigned short",
    "int",
    "unsigned int",
    "long",
    "unsigned long",
    "long long",
    "unsigned long long",
    "float",
    "double",
    "long double",
})

# Alternative spellings folded onto the names above
_BUILTIN_ALIASES: Dict[str, str] = {
    "_Bool": "bool",
    "signed": "int",
    "signed int": "int",
    "unsigned": "unsigned int",
    "short int": "short",
    "signed short": "short",
    "signed short int": "short",
    "short signed int": "short",
    "unsigned short int": "unsigned short",
    "short unsigned int": "unsigned short",
    "long int": "long",
    "signed long": "long",
    "signed long int": "long",
    "long signed int": "long",
    "unsigned long int": "unsigned long",
    "long unsigned int": "unsigned long",
    "long long int": "long long",
    "signed long long": "long long",
    "unsigned long long int": "unsigned long long",
    "long long unsigned int": "unsigned long long",
}

_CV_KEYWORDS = ("const", "volatile")
_TAG_KEYWORDS = ("class", "struct", "enum", "union")


def normalize_spelling(spelling: str) -> str:
    """
    Normalize a C++ type spelling for comparisons:
    - Collapse whitespace
    - No space before '*' / '&', one space after them when followed by a word
    """
    s = re.sub(r"\s+", " ", (spelling or "").strip())
    s = re.sub(r"\s*([*&])", r"\1", s)
    s = re.sub(r"([*&])\s*(?=[A-Za-z_])", r"\1 ", s)
    s = re.sub(r"\s*\[\s*", "[", s)
    s = re.sub(r"\s*\]", "]", s)
    return s


def canonical_builtin_name(name: str) -> Optional[str]:
    """
    Return the canonical builtin spelling for `name`, or None if not a builtin.
    """
    n = re.sub(r"\s+", " ", name.strip())
    n = _BUILTIN_ALIASES.get(n, n)
    return n if n in BUILTIN_TYPE_NAMES else None


def qualify_spelling(spelling: str, name: str, qualified: str) -> str:
    """
    Replace the type name `name` in `spelling` by its fully qualified form:
    qualify_spelling('const Store *', 'Store', 'ns::Store') -> 'const ns::Store *'.
    """
    if not name or not qualified or name == qualified:
        return spelling
    pattern = r"(?<![\w:])" + re.escape(name) + r"(?![\w:])"
    return re.sub(pattern, lambda _m: qualified, spelling, count=1)


@dataclass(frozen=True)
class TypeDescriptor:
    """
    Normalized description of a C/C++ type, independent of any parser.

    - `spelling` is the type as written, with the innermost named type fully
      qualified so it can be used verbatim at global scope in generated code.
    - `base` is the innermost named type without qualifiers or declarators.
    - `is_const`/`is_volatile` qualify the innermost (pointed-to) type.
    - `array_dims` lists array extents; None marks an unknown extent.
    - `underlying` is the fully expanded type when `base` names a typedef, and
      the integer type of an enumeration when `category` is ENUM.
    """
    spelling: str
    base: str
    category: TypeCategory = TypeCategory.BUILTIN
    pointer_depth: int = 0
    is_reference: bool = False
    is_rvalue_reference: bool = False
    array_dims: Tuple[Optional[int], ...] = ()
    is_const: bool = False
    is_volatile: bool = False
    underlying: Optional[TypeDescriptor] = None

    @staticmethod
    def from_spelling(
        spelling: str,
        category: Optional[TypeCategory] = None,
        underlying: Optional[TypeDescriptor] = None,
    ) -> TypeDescriptor:
        """
        Parse a C++ type spelling heuristically into a TypeDescriptor.

        Handles cv-qualifiers on either side of the base name, any number of
        '*', a trailing '&'/'&&' and array extents ('int[4]'). The category is
        guessed (builtin vs. class) unless given explicitly.
        """
        text = normalize_spelling(spelling)
        dims: List[Optional[int]] = []
        for m in re.finditer(r"\[(\d*)\]", text):
            dims.append(int(m.group(1)) if m.group(1) else None)
        core = re.sub(r"\[\d*\]", "", text).strip()

        is_rvalue = core.endswith("&&")
        is_ref = not is_rvalue and core.endswith("&")
        core = core.rstrip("&").strip()

        pointer_depth = core.count("*")
        first_star = core.find("*")
        inner = core if first_star < 0 else core[:first_star]

        tokens = inner.split()
        is_const = "const" in tokens
        is_volatile = "volatile" in tokens
        base_tokens = [t for t in tokens if t not in _CV_KEYWORDS and t not in _TAG_KEYWORDS]
        base = " ".join(base_tokens)

        builtin = canonical_builtin_name(base)
        if builtin is not None:
            base = builtin
        if category is None:
            if builtin is not None:
                category = TypeCategory.BUILTIN
            elif "(" in core:
                category = TypeCategory.FUNCTION
            elif "<" in base:
                category = TypeCategory.TEMPLATE
            else:
                category = TypeCategory.CLASS

        return TypeDescriptor(
            spelling=re.sub(r"\s+", " ", (spelling or "").strip()),
            base=base,
            category=category,
            pointer_depth=pointer_depth,
            is_reference=is_ref,
            is_rvalue_reference=is_rvalue,
            array_dims=tuple(dims),
            is_const=is_const,
            is_volatile=is_volatile,
            underlying=underlying,
        )

    # ---- Shape helpers ----

    @property
    def is_pointer(self) -> bool:
        return self.pointer_depth > 0

    @property
    def is_array(self) -> bool:
        return bool(self.array_dims)

    @property
    def is_indirect(self) -> bool:
        """True for pointers, references and arrays."""
        return self.pointer_depth > 0 or self.is_reference or self.is_rvalue_reference or self.is_array

    @property
    def is_void(self) -> bool:
        return self.base == "void" and not self.is_indirect

    @property
    def indirection_depth(self) -> int:
        """Pointer levels plus array levels (an array parameter decays to a pointer)."""
        return self.pointer_depth + len(self.array_dims)

    @property
    def normalized(self) -> str:
        return normalize_spelling(self.spelling)

    @property
    def static_element_count(self) -> Optional[int]:
        """Number of elements when every array extent is known, else None."""
        if not self.array_dims or any(d is None for d in self.array_dims):
            return None
        count = 1
        for d in self.array_dims:
            count *= d  # type: ignore[operator]
        return count

    @property
    def decayed_spelling(self) -> str:
        """
        Spelling usable as a function parameter or variable type: arrays decay
        to pointers, references are kept.
        """
        if not self.array_dims:
            return self.spelling
        return normalize_spelling(re.sub(r"\[\d*\]", "", self.spelling, count=1).strip() + " *")

    @property
    def pointee_spelling(self) -> str:
        """
        Spelling of the type one indirection level down:
        'int *' -> 'int', 'Foo &' -> 'Foo', 'char **' -> 'char *', 'int[4]' -> 'int'.
        """
        s = self.decayed_spelling
        s = normalize_spelling(s)
        if self.is_reference or self.is_rvalue_reference:
            return s.rstrip("&").strip()
        idx = s.rfind("*")
        if idx < 0:
            return s
        return s[:idx].strip()

    @property
    def value_spelling(self) -> str:
        """Spelling with any reference removed."""
        if self.is_reference or self.is_rvalue_reference:
            return normalize_spelling(self.spelling).rstrip("&").strip()
        return self.decayed_spelling

    def expanded(self) -> TypeDescriptor:
        """Return the typedef-expanded type (self if not a typedef)."""
        if self.category == TypeCategory.TYPEDEF and self.underlying is not None:
            return self.underlying
        return self


VOID_TYPE = TypeDescriptor(spelling="void", base="void")


# --------------------------
# Declaration models
# --------------------------

class DeclarationKind(Enum):
    FREE_FUNCTION = auto()
    MEMBER_FUNCTION = auto()


@dataclass(frozen=True)
class Parameter:
    name: str
    position: int
    type: TypeDescriptor

    @property
    def effective_name(self) -> str:
        """
        Name used in generated code; unnamed parameters get a positional name.
        """
        return self.name or f"_unnamedArg{self.position}"


@dataclass
class CallableDeclaration:
    """
    Normalized view of one parsed function or method.

    `scopes` lists the enclosing namespaces and classes, outermost first;
    `class_depth` tells how many of the innermost scopes are classes (0 for free
    functions). Overloads are represented as separate instances.
    """
    name: str
    kind: DeclarationKind = DeclarationKind.FREE_FUNCTION
    parameters: List[Parameter] = field(default_factory=list)
    return_type: TypeDescriptor = VOID_TYPE
    scopes: List[str] = field(default_factory=list)
    is_const: bool = False
    is_static: bool = False
    is_virtual: bool = False
    is_template: bool = False
    is_operator: bool = False
    is_pure_virtual: bool = False
    is_variadic: bool = False
    has_body: bool = False

    # Set by assign_overload_indices() when several declarations share a name
    overload_index: Optional[int] = None

    def __post_init__(self) -> None:
        for expected, p in enumerate(self.parameters):
            if p.position != expected:
                raise ValueError(
                    f"Parameter positions of '{self.name}' must be contiguous and 0-based "
                    f"(got {[q.position for q in self.parameters]})"
                )

    @staticmethod
    def build(
        name: str,
        params: Sequence[Tuple[str, TypeDescriptor]] = (),
        return_type: Optional[TypeDescriptor] = None,
        **kwargs,
    ) -> CallableDeclaration:
        """
        Convenience constructor numbering parameters in order.
        """
        parameters = [Parameter(name=n, position=i, type=t) for i, (n, t) in enumerate(params)]
        return CallableDeclaration(
            name=name,
            parameters=parameters,
            return_type=return_type or VOID_TYPE,
            **kwargs,
        )

    @property
    def qualified_name(self) -> str:
        return "::".join(list(self.scopes) + [self.name])

    @property
    def class_name(self) -> str:
        """Qualified name of the enclosing class for member functions, else ''."""
        if self.kind != DeclarationKind.MEMBER_FUNCTION:
            return ""
        return "::".join(self.scopes)

    @property
    def is_conversion_operator(self) -> bool:
        """
        True for user-defined conversion operators ('operator bool', 'operator Foo *').
        """
        return self.is_operator and bool(re.match(r"^operator\s+[A-Za-z_]", self.name)) and not re.match(
            r"^operator\s+(new|delete)\b", self.name
        )

    @property
    def needs_object(self) -> bool:
        return self.kind == DeclarationKind.MEMBER_FUNCTION and not self.is_static

    @property
    def registered_name(self) -> str:
        """
        Name under which the call is registered in the mocking framework.
        """
        if self.overload_index:
            return f"{self.qualified_name}_{self.overload_index}"
        return self.qualified_name

    @property
    def signature_key(self) -> Tuple[Tuple[str, ...], bool]:
        """
        Ordering key for overload disambiguation: parameter-type spellings in
        declaration order, then constness.
        """
        return tuple(p.type.normalized for p in self.parameters), self.is_const

    @property
    def cpp_signature(self) -> str:
        """
        Human-friendly signature used in diagnostics.
        """
        params = ", ".join(p.type.spelling for p in self.parameters)
        if self.is_variadic:
            params = f"{params}, ..." if params else "..."
        const_q = " const" if self.is_const else ""
        return f"{self.return_type.spelling} {self.qualified_name}({params}){const_q}"


def assign_overload_indices(declarations: Sequence[CallableDeclaration]) -> None:
    """
    Detect declarations sharing a qualified name and assign deterministic indices.
    The first one (by signature_key) keeps the base name (index 0), the others get
    suffixes (_1, _2, ...). Non-colliding declarations keep overload_index None.
    """
    groups: Dict[str, List[CallableDeclaration]] = {}
    for d in declarations:
        groups.setdefault(d.qualified_name, []).append(d)

    for decls in groups.values():
        if len(decls) <= 1:
            for d in decls:
                d.overload_index = None
            continue
        for order, d in enumerate(sorted(decls, key=lambda x: x.signature_key)):
            d.overload_index = order


# --------------------------
# Front-end output
# --------------------------

@dataclass
class ParsedHeader:
    """
    What a C/C++ front-end reports for one input file: the declarations found in
    the file itself (in declaration order) and every diagnostic it produced.
    """
    declarations: List[CallableDeclaration] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.severity.is_error)


# --------------------------
# Data kinds
# --------------------------

class DataKind(Enum):
    """
    Semantic category chosen for a type when expressing it through the
    mocking framework's parameter/return-value API.
    """
    BOOL = "Bool"
    INT = "Int"
    UNSIGNED_INT = "UnsignedInt"
    LONG_INT = "LongInt"
    UNSIGNED_LONG_INT = "UnsignedLongInt"
    DOUBLE = "Double"
    STRING = "String"
    POINTER = "Pointer"
    CONST_POINTER = "ConstPointer"
    OUTPUT = "Output"
    MEMORY_BUFFER = "MemoryBuffer"
    OBJECT = "Object"
    SKIP = "Skip"
    # Return-only: nothing to retrieve
    VOID = "Void"

    @property
    def is_scalar(self) -> bool:
        return self in SCALAR_KINDS


SCALAR_KINDS = frozenset({
    DataKind.BOOL,
    DataKind.INT,
    DataKind.UNSIGNED_INT,
    DataKind.LONG_INT,
    DataKind.UNSIGNED_LONG_INT,
    DataKind.DOUBLE,
})


# --------------------------
# Generation context
# --------------------------

@dataclass
class GenerationContext:
    """
    Parameters for a single generation run.
    """
    input_path: Path
    interpret_as_cpp: bool = False
    language_std: Optional[str] = None
    include_paths: List[str] = field(default_factory=list)
    defines: List[str] = field(default_factory=list)
    include_files: List[str] = field(default_factory=list)
    templates_dir: Optional[Path] = None

    @property
    def header_name(self) -> str:
        return self.input_path.name

    @property
    def clang_args(self) -> List[str]:
        args: List[str] = []
        if self.interpret_as_cpp:
            args.append("-xc++")
        if self.language_std:
            args.append(f"-std={self.language_std}")
        args.extend(f"-I{p}" for p in self.include_paths)
        args.extend(f"-D{d}" for d in self.defines)
        for inc in self.include_files:
            args.extend(["-include", inc])
        return args


__all__ = [
    "TypeCategory",
    "TypeDescriptor",
    "VOID_TYPE",
    "Parameter",
    "DeclarationKind",
    "CallableDeclaration",
    "assign_overload_indices",
    "ParsedHeader",
    "DataKind",
    "SCALAR_KINDS",
    "GenerationContext",
    "normalize_spelling",
    "qualify_spelling",
    "canonical_builtin_name",
]
