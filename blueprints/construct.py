from __future__ import annotations

from typing import Any, Optional

from .backends.local import LocalBackend, MapPolicy
from .cache import CacheStore, FileCacheStore, validate_caches
from .graph import build_graph
from .ir import DependencyGraph


def construct(
    x: Any,
    policy: Optional[MapPolicy] = None,
    copy: bool = True,
    readonly: bool = False,
    store: Optional[CacheStore] = None,
) -> Any:
    """
    - If ``x`` is a blueprint, constructs it.
    - If ``x`` is a cached blueprint, loads it from its store if present,
      otherwise constructs it and writes the entry.
    - If ``x`` has a registered extractor (lists, dicts, tuples, dataclasses,
      ...), constructs its children and rebuilds it.
    - Else, returns ``x``.

    Each blueprint instance is constructed once, however often it is
    referenced (identity, not equality).

    ``policy`` sets how the independent nodes of a stage are dispatched, see
    :class:`MapPolicy`. With ``copy`` every input is deep-copied before it is
    passed to a constructor, so a function mutating its arguments cannot
    corrupt a memoized value shared with other consumers. This is a safety
    net; blueprinted functions must not mutate their inputs.

    With ``readonly`` the call fails before computing anything if some needed
    cache entry does not exist yet. In this mode several processes can
    construct the same cached blueprints without coordination.
    """
    graph = x if isinstance(x, DependencyGraph) else build_graph(x)
    backend = LocalBackend(policy, store)
    return backend.run(graph, copy=copy, readonly=readonly)


def is_cached(x: Any, store: Optional[CacheStore] = None) -> bool:
    """True iff every cache entry in the dependency graph of ``x`` already exists."""
    graph = build_graph(x)
    caches = [c for c in graph.caches if c is not None]
    return all(validate_caches(caches, store if store is not None else FileCacheStore()))
