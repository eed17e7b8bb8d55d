from __future__ import annotations

import copy
from typing import Any, Dict, List, Sequence

from ..registry import Extraction, register


class ZipDict:
    """Rebuilds a dict from its resolved keys followed by its resolved values."""

    __slots__ = ("keycount",)

    def __init__(self, keycount: int):
        self.keycount = keycount

    def __call__(self, xs: Sequence[Any]) -> Dict[Any, Any]:
        return dict(zip(xs[: self.keycount], xs[self.keycount:]))

    def __repr__(self) -> str:
        return f"dict[{self.keycount}]"


class Refill:
    """
    Rebuilds an instance of a list, set or dict subclass by filling a copy of
    an emptied instance, which keeps its type and attributes (e.g. the
    ``default_factory`` of a defaultdict).
    """

    __slots__ = ("empty", "keycount")

    def __init__(self, empty: Any, keycount: int = 0):
        self.empty = empty
        self.keycount = keycount

    def __call__(self, xs: Sequence[Any]) -> Any:
        out = copy.copy(self.empty)
        if isinstance(out, dict):
            # item assignment, Counter.update would add counts
            for k, v in zip(xs[: self.keycount], xs[self.keycount:]):
                out[k] = v
        elif isinstance(out, list):
            out.extend(xs)
        else:
            out.update(xs)
        return out

    def __repr__(self) -> str:
        return f"Refill({type(self.empty).__qualname__})"


def _emptied(x: Any) -> Any:
    empty = copy.copy(x)
    empty.clear()
    return empty


@register(list)
def run_list(x: List[Any]) -> Extraction:
    if type(x) is list:
        return Extraction(list(x), list)
    return Extraction(list(x), Refill(_emptied(x)))


@register(tuple)
def run_tuple(x: tuple) -> Extraction:
    cls = type(x)
    if cls is tuple:
        return Extraction(list(x), tuple)
    if hasattr(cls, "_fields"):
        # named tuple
        return Extraction(list(x), cls._make)
    return Extraction(list(x), cls)


@register(set)
def run_set(x: set) -> Extraction:
    if type(x) is set:
        return Extraction(list(x), set)
    return Extraction(list(x), Refill(_emptied(x)))


@register(frozenset)
def run_frozenset(x: frozenset) -> Extraction:
    return Extraction(list(x), type(x))


@register(dict)
def run_dict(x: Dict[Any, Any]) -> Extraction:
    children = [*x.keys(), *x.values()]
    if type(x) is dict:
        return Extraction(children, ZipDict(len(x)))
    return Extraction(children, Refill(_emptied(x), len(x)))
