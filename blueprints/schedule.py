"""
Stage scheduling of a dependency graph.

``topological_rank`` gives every node a deterministic rank, ``schedule_stages``
packs the ranked nodes into stages of bounded width (Coffman-Graham layering)
so that each node only depends on nodes of strictly earlier stages.
"""
from __future__ import annotations

import heapq
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set, Tuple

from .errors import CyclicGraphError


@dataclass(frozen=True)
class _Priority:
    # dependency ranks, sorted descending; larger lists are picked first
    ranks: Tuple[int, ...]

    def __lt__(self, other: "_Priority") -> bool:
        return self.ranks > other.ranks


def _outgoing(incoming: Sequence[Sequence[int]]) -> List[Set[int]]:
    n = len(incoming)
    outgoing: List[Set[int]] = [set() for _ in range(n)]
    for v, deps in enumerate(incoming):
        for d in deps:
            if not 0 <= d < n:
                raise ValueError(f"Node {v} depends on unknown node {d}")
            outgoing[d].add(v)
    return outgoing


def topological_rank(incoming: Sequence[Sequence[int]]) -> List[int]:
    """
    Ranks 1..N. Among the nodes whose dependencies are all ranked, the next
    rank goes to the one whose descending list of dependency ranks is
    lexicographically largest; ties go to the lower node index.
    """
    n = len(incoming)
    outgoing = _outgoing(incoming)
    ordering = [0] * n
    waiting = [len(set(deps)) for deps in incoming]

    ready: List[Tuple[_Priority, int]] = [(_Priority(()), v) for v in range(n) if waiting[v] == 0]
    heapq.heapify(ready)

    rank = 0
    while ready:
        _, v = heapq.heappop(ready)
        rank += 1
        ordering[v] = rank
        for w in outgoing[v]:
            waiting[w] -= 1
            if waiting[w] == 0:
                score = tuple(sorted((ordering[d] for d in incoming[w]), reverse=True))
                heapq.heappush(ready, (_Priority(score), w))

    if rank < n:
        raise CyclicGraphError(incoming)
    return ordering


def schedule_stages(incoming: Sequence[Sequence[int]], max_width: Optional[int] = None) -> List[List[int]]:
    """
    Coffman-Graham layering. Returns stages in execution order; no stage holds
    more than ``max_width`` nodes (default: unbounded).
    """
    n = len(incoming)
    if max_width is None:
        max_width = max(n, 1)
    if max_width < 1:
        raise ValueError(f"max_width must be positive, got {max_width}")

    ordering = topological_rank(incoming)
    outgoing = _outgoing(incoming)

    # stages are filled from the sinks; index 0 is executed last
    levels = [0] * n
    stages: List[List[int]] = []
    for v in sorted(range(n), key=lambda i: ordering[i], reverse=True):
        minlevel = max((levels[w] for w in outgoing[v]), default=-1) + 1
        stageidx = next(
            (s for s in range(minlevel, len(stages)) if len(stages[s]) < max_width),
            None,
        )
        if stageidx is None:
            stages.append([v])
            stageidx = len(stages) - 1
        else:
            stages[stageidx].append(v)
        levels[v] = stageidx

    stages.reverse()
    return stages


def stage_last_use(incoming: Sequence[Sequence[int]], stages: Sequence[Sequence[int]]) -> List[int]:
    """Index of the last stage that consumes each node's result, -1 if none."""
    last_use = [-1] * len(incoming)
    for s, stage in enumerate(stages):
        for v in stage:
            for d in incoming[v]:
                last_use[d] = max(last_use[d], s)
    return last_use
