"""
Builds the dependency graph of a value and reduces it before execution:
- build_graph: walks the value, deduplicating by identity
- use_cache_loads: replaces cached nodes whose entries exist by loaders
- trim_unused: drops nodes the final node(s) do not depend on
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Sequence, Tuple

from .cache import CacheLoader, CacheStore, validate_caches
from .errors import CyclicGraphError
from .ir import DependencyGraph, get_cache
from .registry import dependencies

logger = logging.getLogger(__name__)


@dataclass
class _Frame:
    value: Any
    children: List[Any]
    rebuild: Callable[[Sequence[Any]], Any]
    deps: List[int] = field(default_factory=list)


class GraphBuilder:
    """
    Post-order walk over a value. Visited values are keyed by ``id()``, not by
    equality: a subexpression reused by reference becomes one node, two equal
    but distinct blueprints become two.
    """

    def __init__(self) -> None:
        self.graph = DependencyGraph()
        # value kept alongside its index so its id() cannot be recycled
        self._elements: Dict[int, Tuple[Any, int]] = {}
        self._pending: Dict[int, Any] = {}

    def _open(self, value: Any) -> _Frame:
        self._pending[id(value)] = value
        children, rebuild = dependencies(value)
        return _Frame(value, list(children), rebuild)

    def _close(self, frame: _Frame) -> int:
        del self._pending[id(frame.value)]
        idx = self.graph.append(frame.rebuild, frame.deps, get_cache(frame.value))
        self._elements[id(frame.value)] = (frame.value, idx)
        return idx

    def visit(self, root: Any) -> int:
        if id(root) in self._elements:
            return self._elements[id(root)][1]

        frames = [self._open(root)]
        idx = -1
        while frames:
            frame = frames[-1]
            if len(frame.deps) < len(frame.children):
                child = frame.children[len(frame.deps)]
                if id(child) in self._elements:
                    frame.deps.append(self._elements[id(child)][1])
                elif id(child) in self._pending:
                    raise CyclicGraphError(
                        [f.deps for f in frames],
                        f"value of type {type(child).__name__} contains itself",
                    )
                else:
                    frames.append(self._open(child))
                continue

            frames.pop()
            idx = self._close(frame)
            if frames:
                frames[-1].deps.append(idx)
        return idx


def build_graph(root: Any) -> DependencyGraph:
    builder = GraphBuilder()
    builder.visit(root)
    logger.debug("built dependency graph with %d nodes", len(builder.graph))
    return builder.graph


def use_cache_loads(graph: DependencyGraph, store: CacheStore) -> DependencyGraph:
    """
    Nodes whose cache entry exists lose their dependencies and load instead;
    their cache key is cleared since nothing needs saving.
    """
    valid = validate_caches(graph.caches, store)

    constructors = list(graph.constructors)
    deps = [list(d) for d in graph.dependencies]
    caches = list(graph.caches)
    for i, hit in enumerate(valid):
        if hit:
            constructors[i] = CacheLoader(store, caches[i])
            deps[i] = []
            caches[i] = None

    if any(valid):
        logger.debug("%d cache hits", sum(valid))
    return DependencyGraph(constructors, deps, caches)


def trim_unused(deps: Sequence[Sequence[int]], finals: Iterable[int]) -> Tuple[List[List[int]], List[int]]:
    """
    Keep only nodes reachable from ``finals``. Returns the renumbered
    dependency lists and ``index_map`` (new index -> old index). Kept nodes
    retain their relative order.
    """
    used = set()
    stack = list(finals)
    while stack:
        idx = stack.pop()
        if idx in used:
            continue
        used.add(idx)
        stack.extend(d for d in deps[idx] if d not in used)

    index_map = sorted(used)
    inverse = {old: new for new, old in enumerate(index_map)}
    new_deps = [[inverse[d] for d in deps[old]] for old in index_map]
    return new_deps, index_map


def trim_graph(graph: DependencyGraph, finals: Iterable[int]) -> DependencyGraph:
    new_deps, index_map = trim_unused(graph.dependencies, finals)
    dropped = len(graph) - len(index_map)
    if dropped:
        logger.debug("dropped %d unused nodes", dropped)
    return DependencyGraph(
        [graph.constructors[i] for i in index_map],
        new_deps,
        [graph.caches[i] for i in index_map],
    )
