#!/usr/bin/env python3
"""
Clang-based parsing for collecting mockable C/C++ declarations.

This module parses one C/C++ header using libclang and converts the free
functions and member functions it declares into `models.CallableDeclaration`
values, together with the diagnostics clang reported.

Key features:
- Only declarations located in the input file itself are collected (included
  headers contribute types, not declarations).
- Explicit recursive traversal through namespaces, classes, structs and
  linkage specifications ('extern "C"' blocks).
- Type shape (pointers, references, arrays, qualifiers) taken from clang's
  type tree rather than from spellings; typedefs keep their canonical expansion.
- Redeclarations are merged by USR; a later inline definition marks the
  declaration as already defined.

Requirements:
- Python clang bindings (pip install libclang)
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional
import logging

logger = logging.getLogger(__name__)

try:
    from clang import cindex  # type: ignore
except ImportError:  # pragma: no cover
    cindex = None  # Lazy error on use

from ..errors import Diagnostic, DiagnosticSeverity, ParseError
from ..models import (
    CallableDeclaration,
    DeclarationKind,
    GenerationContext,
    Parameter,
    ParsedHeader,
    TypeCategory,
    TypeDescriptor,
    canonical_builtin_name,
    qualify_spelling,
)


# --------------------------
# libclang setup
# --------------------------

def ensure_libclang_loaded() -> None:
    """
    Ensure clang.cindex is importable. This function doesn't try to set a library path,
    but provides a single point to improve discovery in future.
    """
    if cindex is None:
        raise RuntimeError(
            "libclang (clang.cindex) is not available. Install clang Python bindings "
            "(e.g., pip install libclang) and ensure libclang is discoverable."
        )


def _create_index():
    ensure_libclang_loaded()
    idx_cls = getattr(cindex, "Index", None)
    if idx_cls is None:
        raise RuntimeError("clang.cindex.Index is unavailable even though libclang is loaded")
    return idx_cls.create()


def parse_translation_unit(header: Path, clang_args: List[str]):
    """
    Parse a single header into a TranslationUnit. Function bodies are parsed so
    that inline definitions can be told apart from plain declarations.
    """
    idx = _create_index()
    try:
        return idx.parse(
            str(header),
            args=list(clang_args),
            options=getattr(getattr(cindex, "TranslationUnit", None), "PARSE_INCOMPLETE", 0),
        )
    except cindex.TranslationUnitLoadError as e:
        raise ParseError(str(header)) from e


# --------------------------
# Helpers
# --------------------------

_CONTAINER_KINDS = (
    "NAMESPACE",
    "CLASS_DECL",
    "STRUCT_DECL",
    "UNION_DECL",
    "CLASS_TEMPLATE",
    "LINKAGE_SPEC",
)

_SCOPE_KINDS = (
    "NAMESPACE",
    "CLASS_DECL",
    "STRUCT_DECL",
    "UNION_DECL",
    "CLASS_TEMPLATE",
)

_FUNCTION_KINDS = ("FUNCTION_DECL", "CXX_METHOD", "CONVERSION_FUNCTION", "FUNCTION_TEMPLATE")

_ARRAY_KINDS = ("INCOMPLETEARRAY", "VARIABLEARRAY", "DEPENDENTSIZEDARRAY")

_CV_TAG_RE = re.compile(r"\b(const|volatile|struct|class|enum|union)\b")
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_]\w*$")


def _kind_name(obj: Any) -> str:
    return getattr(getattr(obj, "kind", None), "name", "")


def _bare_name(spelling: str) -> str:
    return re.sub(r"\s+", " ", _CV_TAG_RE.sub("", spelling or "")).strip()


def _is_in_file(cursor: Any, main_file: Path) -> bool:
    loc = getattr(cursor, "location", None)
    f = getattr(loc, "file", None)
    if f is None:
        return False
    try:
        return Path(str(f.name)).resolve() == main_file
    except OSError:
        return False


def _collect_scopes(cursor: Any) -> List[str]:
    """
    Names of the enclosing namespaces and classes, outermost first.
    """
    scopes: List[str] = []
    cur = getattr(cursor, "semantic_parent", None)
    while cur is not None and _kind_name(cur) in _SCOPE_KINDS:
        if cur.spelling:
            scopes.append(cur.spelling)
        cur = cur.semantic_parent
    scopes.reverse()
    return scopes


def _in_class_template(cursor: Any) -> bool:
    cur = getattr(cursor, "semantic_parent", None)
    while cur is not None and _kind_name(cur) in _SCOPE_KINDS:
        if _kind_name(cur) == "CLASS_TEMPLATE":
            return True
        cur = cur.semantic_parent
    return False


# --------------------------
# Types
# --------------------------

def _base_descriptor_fields(tp: Any) -> Dict[str, Any]:
    """
    Category, base name and extra info for the innermost (non-pointer, non-array) type.
    """
    kind = _kind_name(tp)
    spelling = getattr(tp, "spelling", "") or ""
    name = _bare_name(spelling)

    if kind == "TYPEDEF":
        return {
            "category": TypeCategory.TYPEDEF,
            "base": name,
            "underlying": None,  # filled by the caller from the full canonical type
        }
    if kind == "ENUM":
        underlying = None
        decl = tp.get_declaration()
        enum_type = getattr(decl, "enum_type", None)
        if enum_type is not None:
            underlying = descriptor_from_type(enum_type)
        return {"category": TypeCategory.ENUM, "base": name, "underlying": underlying}
    if kind == "RECORD":
        if tp.get_num_template_arguments() > 0:
            return {"category": TypeCategory.TEMPLATE, "base": name}
        if tp.get_size() < 0:
            return {"category": TypeCategory.INCOMPLETE, "base": name}
        return {"category": TypeCategory.CLASS, "base": name}
    if kind in ("FUNCTIONPROTO", "FUNCTIONNOPROTO"):
        return {"category": TypeCategory.FUNCTION, "base": name}
    if kind in ("TEMPLATETYPEPARM", "DEPENDENT", "TEMPLATESPECIALIZATION"):
        return {"category": TypeCategory.TEMPLATE, "base": name}
    if kind == "UNEXPOSED":
        # Usually a template specialization the bindings do not expose
        return {"category": TypeCategory.TEMPLATE if "<" in name else TypeCategory.INCOMPLETE, "base": name}

    builtin = canonical_builtin_name(name)
    if builtin is not None:
        return {"category": TypeCategory.BUILTIN, "base": builtin}
    return {"category": TypeCategory.INCOMPLETE, "base": name}


def _qualified_name(tp: Any) -> Optional[str]:
    """
    Fully qualified name of the record, enum or typedef `tp` refers to, or None
    when it has no nameable declaration (anonymous types, builtins).
    """
    if _kind_name(tp) not in ("RECORD", "ENUM", "TYPEDEF"):
        return None
    decl = tp.get_declaration()
    if decl is None or not _IDENTIFIER_RE.match(decl.spelling or ""):
        return None
    parts = _collect_scopes(decl) + [decl.spelling]
    if not all(_IDENTIFIER_RE.match(p) for p in parts):
        return None
    return "::".join(parts)


def descriptor_from_type(tp: Any) -> TypeDescriptor:
    """
    Convert a clang Type into a TypeDescriptor by walking references, pointers
    and arrays down to the innermost type.

    The innermost named type is spelled fully qualified: generated code lives at
    global scope (mocks) or in its own namespaces (expectations), where the
    as-written name of a namespaced type does not resolve.
    """
    spelling = getattr(tp, "spelling", "") or ""
    cur = tp
    is_ref = False
    is_rref = False
    pointer_depth = 0
    dims: List[Optional[int]] = []

    kind = _kind_name(cur)
    if kind == "LVALUEREFERENCE":
        is_ref = True
        cur = cur.get_pointee()
    elif kind == "RVALUEREFERENCE":
        is_rref = True
        cur = cur.get_pointee()

    # Qualifiers written on a sugared type ('const struct Foo') are not always
    # carried over to the named type, and canonical arrays carry them on the
    # array type itself
    is_const = False
    is_volatile = False
    written: Optional[str] = None
    while True:
        kind = _kind_name(cur)
        if kind == "ELABORATED":
            is_const = is_const or bool(cur.is_const_qualified())
            is_volatile = is_volatile or bool(cur.is_volatile_qualified())
            written = _bare_name(cur.spelling)
            cur = cur.get_named_type()
        elif kind == "POINTER":
            is_const = is_volatile = False
            pointer_depth += 1
            cur = cur.get_pointee()
        elif kind == "CONSTANTARRAY" or kind in _ARRAY_KINDS:
            is_const = is_const or bool(cur.is_const_qualified())
            is_volatile = is_volatile or bool(cur.is_volatile_qualified())
            dims.append(cur.get_array_size() if kind == "CONSTANTARRAY" else None)
            cur = cur.get_array_element_type()
        else:
            break

    fields = _base_descriptor_fields(cur)
    if fields["category"] == TypeCategory.TYPEDEF:
        canonical = tp.get_canonical()
        fields["underlying"] = descriptor_from_type(canonical)

    qualified = _qualified_name(cur) if fields["category"] != TypeCategory.TEMPLATE else None
    if qualified is not None:
        fields["base"] = qualified
        spelling = qualify_spelling(spelling, written or _bare_name(cur.spelling), qualified)

    return TypeDescriptor(
        spelling=spelling,
        base=fields["base"],
        category=fields["category"],
        pointer_depth=pointer_depth,
        is_reference=is_ref,
        is_rvalue_reference=is_rref,
        array_dims=tuple(dims),
        is_const=is_const or bool(cur.is_const_qualified()),
        is_volatile=is_volatile or bool(cur.is_volatile_qualified()),
        underlying=fields.get("underlying"),
    )


# --------------------------
# Declarations
# --------------------------

def _is_operator_name(name: str) -> bool:
    return bool(re.match(r"^operator(\W|\s)", name))


def _call_flag(cursor: Any, method: str) -> bool:
    fn = getattr(cursor, method, None)
    return bool(fn()) if callable(fn) else False


def declaration_from_cursor(cursor: Any) -> CallableDeclaration:
    """
    Convert a function, method, conversion operator or function template cursor to a CallableDeclaration.
    """
    kind_name = _kind_name(cursor)
    name = cursor.spelling or ""
    parent_kind = _kind_name(getattr(cursor, "semantic_parent", None))
    is_member = kind_name in ("CXX_METHOD", "CONVERSION_FUNCTION") or parent_kind in (
        "CLASS_DECL", "STRUCT_DECL", "UNION_DECL", "CLASS_TEMPLATE"
    )

    params: List[Parameter] = []
    for i, arg in enumerate(cursor.get_arguments() or []):
        params.append(Parameter(name=arg.spelling or "", position=i, type=descriptor_from_type(arg.type)))

    fn_type = cursor.type
    is_variadic = False
    if _kind_name(fn_type) == "FUNCTIONPROTO":
        is_variadic = bool(fn_type.is_function_variadic())

    return CallableDeclaration(
        name=name,
        kind=DeclarationKind.MEMBER_FUNCTION if is_member else DeclarationKind.FREE_FUNCTION,
        parameters=params,
        return_type=descriptor_from_type(cursor.result_type),
        scopes=_collect_scopes(cursor),
        is_const=_call_flag(cursor, "is_const_method"),
        is_static=_call_flag(cursor, "is_static_method"),
        is_virtual=_call_flag(cursor, "is_virtual_method"),
        is_template=kind_name == "FUNCTION_TEMPLATE" or _in_class_template(cursor),
        is_operator=_is_operator_name(name),
        is_pure_virtual=_call_flag(cursor, "is_pure_virtual_method"),
        is_variadic=is_variadic,
        has_body=bool(cursor.is_definition()),
    )


def _walk(cursor: Any, main_file: Path) -> Iterator[Any]:
    """
    Yield the function cursors declared in `main_file`, in source order.
    """
    for child in cursor.get_children():
        if not _is_in_file(child, main_file):
            continue
        kind = _kind_name(child)
        if kind in _FUNCTION_KINDS:
            yield child
        elif kind in _CONTAINER_KINDS:
            yield from _walk(child, main_file)


def collect_declarations(tu: Any, main_file: Path) -> List[CallableDeclaration]:
    """
    Traverse the TU and return the declarations of `main_file`, merging redeclarations.
    """
    by_usr: Dict[str, CallableDeclaration] = {}
    ordered: List[CallableDeclaration] = []
    for cursor in _walk(tu.cursor, main_file.resolve()):
        usr = cursor.get_usr() or ""
        existing = by_usr.get(usr) if usr else None
        if existing is not None:
            existing.has_body = existing.has_body or bool(cursor.is_definition())
            continue
        decl = declaration_from_cursor(cursor)
        if usr:
            by_usr[usr] = decl
        ordered.append(decl)
    return ordered


def collect_diagnostics(tu: Any) -> List[Diagnostic]:
    out: List[Diagnostic] = []
    for d in tu.diagnostics:
        severity = DiagnosticSeverity(min(int(d.severity), DiagnosticSeverity.FATAL.value))
        fmt = getattr(d, "format", None)
        text = fmt() if callable(fmt) else str(d)
        out.append(Diagnostic(severity=severity, text=text))
    return out


# --------------------------
# Public API
# --------------------------

def parse_header(ctx: GenerationContext) -> ParsedHeader:
    """
    Parse `ctx.input_path` with the language options of `ctx`.

    Declarations are only collected when clang reported no error; diagnostics
    are always returned.
    """
    ensure_libclang_loaded()

    tu = parse_translation_unit(ctx.input_path, ctx.clang_args)
    diagnostics = collect_diagnostics(tu)
    result = ParsedHeader(diagnostics=diagnostics)
    if result.error_count:
        return result

    result.declarations = collect_declarations(tu, ctx.input_path)
    logger.debug("Collected %d declarations from %s", len(result.declarations), ctx.input_path)
    return result


__all__ = [
    "parse_header",
    "parse_translation_unit",
    "collect_declarations",
    "collect_diagnostics",
    "declaration_from_cursor",
    "descriptor_from_type",
    "ensure_libclang_loaded",
]
