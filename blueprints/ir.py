"""
This module defines the Intermediate Representation of a blueprint computation.
It contains:
- Blueprints - deferred calls of pure functions
- Cached / phony blueprints - deferred calls with a store key or a stand-in
- DependencyGraph - deduplicated nodes and how they depend on each other
"""
from __future__ import annotations
import os
import dataclasses
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple, Union

from .errors import MissingParameterError
from .util import function_identifier, stable_hash

MAX_GROUP_KEY_LENGTH = 1000


def _lookup(args: Sequence[Any], params: Sequence[Tuple[str, Any]], key: Union[int, str]) -> Any:
    if isinstance(key, str):
        for name, value in params:
            if name == key:
                return value
        raise MissingParameterError(key)
    return args[key]


@dataclass(frozen=True)
class Blueprint:
    """
    Deferred evaluation of ``func(*args, **params)``.

    Positional arguments are retrieved with ``bp[0]``, parameters with
    ``bp["name"]``. Blueprints are deduplicated by identity during
    construction: the same instance used twice is built once.

    The blueprinted function must be pure. It must not modify its inputs and
    its result must not depend on side effects.
    """

    func: Callable[..., Any]
    args: Tuple[Any, ...] = ()
    params: Tuple[Tuple[str, Any], ...] = ()

    def __getitem__(self, key: Union[int, str]) -> Any:
        return _lookup(self.args, self.params, key)

    def mutable(self) -> "MutableBlueprint":
        return MutableBlueprint(self.func, list(self.args), dict(self.params))


@dataclass(eq=False)
class MutableBlueprint:
    """Blueprint whose arguments can be patched in place."""

    func: Callable[..., Any]
    args: List[Any] = field(default_factory=list)
    params: Dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: Union[int, str]) -> Any:
        return _lookup(self.args, list(self.params.items()), key)

    def __setitem__(self, key: Union[int, str], value: Any) -> None:
        if isinstance(key, str):
            self.params[key] = value
        else:
            self.args[key] = value


@dataclass(frozen=True, eq=False)
class PhonyBlueprint:
    """
    Looks and serializes like ``blueprint``, but actually executes
    ``constructor(resolved_dependencies)``.

    Useful when the real computation contains closures or serializes badly:
    the stand-in keeps the result pure in terms of its own args and params.
    """

    constructor: Callable[[Sequence[Any]], Any]
    dependencies: Tuple[Any, ...]
    blueprint: Union[Blueprint, MutableBlueprint]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, PhonyBlueprint):
            return self.blueprint == other.blueprint
        return self.blueprint == other

    def __hash__(self) -> int:
        return hash(self.blueprint)

    def __getitem__(self, key: Union[int, str]) -> Any:
        return self.blueprint[key]

    @property
    def func(self) -> Callable[..., Any]:
        return self.blueprint.func


AnyBlueprint = Union[Blueprint, MutableBlueprint, PhonyBlueprint]


@dataclass(frozen=True)
class CachedBlueprint:
    """
    A blueprint whose result is kept in the store file ``locator`` under
    ``key``. If the entry exists it is loaded instead of constructed.
    """

    locator: str
    key: str
    blueprint: AnyBlueprint

    def __getitem__(self, key: Union[int, str]) -> Any:
        return self.blueprint[key]

    @property
    def func(self) -> Callable[..., Any]:
        return self.blueprint.func


class CacheKey(NamedTuple):
    locator: str
    key: str


def get_cache(value: Any) -> Optional[CacheKey]:
    if isinstance(value, CachedBlueprint):
        return CacheKey(value.locator, value.key)
    return None


def B(func: Callable[..., Any], *args: Any, **params: Any) -> Blueprint:
    """Defines a blueprint for the evaluation of ``func(*args, **params)``."""
    return Blueprint(func, tuple(args), tuple(params.items()))


def _split_locator(locator: Any) -> Tuple[str, Optional[str]]:
    if isinstance(locator, tuple):
        if len(locator) != 2:
            raise TypeError(f"Expected (locator, key) pair, got {locator!r}")
        path, key = locator
        return os.fspath(path), str(key)
    if isinstance(locator, (str, os.PathLike)):
        return os.fspath(locator), None
    raise TypeError(f"Cache locator must be a path or a (path, key) pair, got {type(locator)}")


def CachedB(locator: Any, func: Any, *args: Any, **params: Any) -> CachedBlueprint:
    """
    CachedB(locator, func, *args, **params)
    CachedB((locator, key), func, *args, **params)
    CachedB(locator, blueprint)

    Defines a cached blueprint. If ``key`` is omitted it is derived with
    :func:`default_group_key`. Containers are walked and functions are named
    by module and qualname; other objects contribute their ``repr``, so the
    key is only stable across sessions when those reprs are (not true for
    lambdas and closures, whose qualnames collide).
    """
    path, key = _split_locator(locator)

    if isinstance(func, (Blueprint, MutableBlueprint, PhonyBlueprint)):
        if args or params:
            raise TypeError("CachedB(locator, blueprint) takes no further arguments")
        bp = func
    else:
        bp = B(func, *args, **params)

    if key is None:
        key = default_group_key(bp)
    return CachedBlueprint(path, key, bp)


def default_group_key(value: Any) -> str:
    """
    Textual rendering of the call, e.g. ``'pkg.f(1,2;n=3)'``. Replaced by a
    SHA-256 hash when longer than MAX_GROUP_KEY_LENGTH or containing '/'.
    """
    if isinstance(value, CachedBlueprint):
        return default_group_key(value.blueprint)
    if isinstance(value, PhonyBlueprint):
        return default_group_key(value.blueprint)
    if isinstance(value, MutableBlueprint):
        return _call_group_key(value.func, value.args, list(value.params.items()))
    if isinstance(value, Blueprint):
        return _call_group_key(value.func, value.args, value.params)
    return _value_group_key(value)


def _value_group_key(value: Any) -> str:
    # containers are walked so nested blueprints and functions render by name
    if isinstance(value, (str, bytes, int, float, complex, bool)) or value is None:
        return repr(value)
    if isinstance(value, list):
        return f"[{', '.join(default_group_key(v) for v in value)}]"
    if isinstance(value, tuple):
        items = [default_group_key(v) for v in value]
        if hasattr(type(value), "_fields"):
            fields = ", ".join(f"{k}={v}" for k, v in zip(value._fields, items))
            return f"{type(value).__qualname__}({fields})"
        if len(items) == 1:
            return f"({items[0]},)"
        return f"({', '.join(items)})"
    if isinstance(value, (set, frozenset)):
        # element order of a set is not stable across processes
        items = ", ".join(sorted(default_group_key(v) for v in value))
        if isinstance(value, frozenset):
            return f"frozenset({{{items}}})"
        return f"{{{items}}}" if items else "set()"
    if isinstance(value, dict):
        items = ", ".join(f"{default_group_key(k)}: {default_group_key(v)}" for k, v in value.items())
        return f"{{{items}}}"
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = ", ".join(
            f"{f.name}={default_group_key(getattr(value, f.name))}"
            for f in dataclasses.fields(value)
            if f.repr
        )
        return f"{type(value).__qualname__}({fields})"
    if callable(value):
        return function_identifier(value)
    return repr(value)


def _call_group_key(func: Any, args: Sequence[Any], params: Sequence[Tuple[str, Any]]) -> str:
    kwargs = ""
    if params:
        kwargs = ";" + ",".join(f"{k}={default_group_key(v)}" for k, v in params)

    key = f"{function_identifier(func)}({','.join(default_group_key(a) for a in args)}{kwargs})"

    if len(key) > MAX_GROUP_KEY_LENGTH or "/" in key:
        key = stable_hash(key)
    return key


@dataclass
class DependencyGraph:
    """
    Nodes in build order: every dependency index of a node refers to a node
    appended before it. The last node is the root.
    """

    constructors: List[Callable[[Sequence[Any]], Any]] = field(default_factory=list)
    dependencies: List[List[int]] = field(default_factory=list)
    caches: List[Optional[CacheKey]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.constructors)

    @property
    def root(self) -> int:
        return len(self.constructors) - 1

    def append(self, constructor: Callable[[Sequence[Any]], Any], deps: List[int], cache: Optional[CacheKey]) -> int:
        idx = len(self.constructors)
        for d in deps:
            if not 0 <= d < idx:
                raise ValueError(f"Node {idx} depends on {d}, which is not built before it")
        self.constructors.append(constructor)
        self.dependencies.append(deps)
        self.caches.append(cache)
        return idx
