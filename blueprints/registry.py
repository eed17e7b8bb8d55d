"""
Maps a value type to the extractor that knows how to decompose it into
child values plus a function rebuilding it from resolved children.
"""
from __future__ import annotations
import dataclasses
from typing import Any, Callable, Dict, List, NamedTuple, Sequence


class Extraction(NamedTuple):
    children: List[Any]
    rebuild: Callable[[Sequence[Any]], Any]


Extractor = Callable[[Any], Extraction]

_REGISTRY: Dict[type, Extractor] = {}


class DataclassRecord:
    """Registry slot for dataclass instances, which share no common base."""


def register(typ: type):
    """
    Register an extractor for ``typ`` and its subclasses. This is the
    integration point for user containers:

        @register(Pair)
        def _(p):
            return Extraction([p.left, p.right], lambda xs: Pair(*xs))
    """
    def deco(fn: Extractor):
        _REGISTRY[typ] = fn
        return fn
    return deco


class Returns:
    """Constructor of a leaf node: ignores its (empty) inputs."""

    __slots__ = ("value",)

    def __init__(self, value: Any):
        self.value = value

    def __call__(self, _resolved: Sequence[Any] = ()) -> Any:
        return self.value

    def __repr__(self) -> str:
        return f"Returns({self.value!r})"


def opaque(value: Any) -> Extraction:
    return Extraction([], Returns(value))


def get_extractor(value: Any) -> Extractor:
    for cls in type(value).__mro__:
        if cls in _REGISTRY:
            return _REGISTRY[cls]
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _REGISTRY.get(DataclassRecord, opaque)
    return opaque


def dependencies(value: Any) -> Extraction:
    """Children of ``value`` and a rebuild function such that rebuild(children) == value."""
    return get_extractor(value)(value)
