import io
from typing import Iterable, Optional

import pytest

from cppumockgen.config import Config
from cppumockgen.models import CallableDeclaration, DeclarationKind, TypeCategory, TypeDescriptor
from cppumockgen.type_mapping import MappedDeclaration, MockabilityEvaluator, TypeClassifier


def T(spelling: str, category: Optional[TypeCategory] = None, underlying: Optional[TypeDescriptor] = None) -> TypeDescriptor:
    return TypeDescriptor.from_spelling(spelling, category=category, underlying=underlying)


def method(name, params=(), return_type=None, scopes=("Foo",), **kwargs) -> CallableDeclaration:
    return CallableDeclaration.build(
        name,
        params,
        return_type,
        kind=DeclarationKind.MEMBER_FUNCTION,
        scopes=list(scopes),
        **kwargs,
    )


def make_config(params: Iterable[str] = (), types: Iterable[str] = (), underlying: bool = False) -> Config:
    return Config.from_options(
        use_underlying_typedef_type=underlying,
        param_override_options=params,
        type_override_options=types,
    )


def map_decl(decl: CallableDeclaration, config: Optional[Config] = None) -> MappedDeclaration:
    return MockabilityEvaluator(TypeClassifier(config)).evaluate(decl)


@pytest.fixture
def classifier():
    return TypeClassifier()


@pytest.fixture
def stream():
    return io.StringIO()
