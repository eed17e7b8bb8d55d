from __future__ import annotations

from typing import Any, Callable, Sequence, Tuple

from ..ir import Blueprint, CachedBlueprint, MutableBlueprint, PhonyBlueprint
from ..registry import Extraction, dependencies, register


class Call:
    """Constructor of a blueprint node: calls ``func`` with resolved inputs."""

    __slots__ = ("func", "nargs", "keys")

    def __init__(self, func: Callable[..., Any], nargs: int, keys: Tuple[str, ...]):
        self.func = func
        self.nargs = nargs
        self.keys = keys

    def __call__(self, xs: Sequence[Any]) -> Any:
        args = xs[: self.nargs]
        params = dict(zip(self.keys, xs[self.nargs:]))
        return self.func(*args, **params)

    def __repr__(self) -> str:
        return f"Call({self.func!r})"


def _call_extraction(func: Callable[..., Any], args: Sequence[Any], params: Sequence[Tuple[str, Any]]) -> Extraction:
    keys = tuple(k for k, _ in params)
    deps = [*args, *(v for _, v in params)]
    return Extraction(deps, Call(func, len(args), keys))


@register(Blueprint)
def run_blueprint(bp: Blueprint) -> Extraction:
    return _call_extraction(bp.func, bp.args, bp.params)


@register(MutableBlueprint)
def run_mutable_blueprint(bp: MutableBlueprint) -> Extraction:
    return _call_extraction(bp.func, bp.args, list(bp.params.items()))


@register(CachedBlueprint)
def run_cached_blueprint(bp: CachedBlueprint) -> Extraction:
    # the store key is picked up by the graph builder
    return dependencies(bp.blueprint)


@register(PhonyBlueprint)
def run_phony_blueprint(bp: PhonyBlueprint) -> Extraction:
    return Extraction(list(bp.dependencies), bp.constructor)
