"""
Executes a dependency graph locally, stage by stage.
- loads existing caches and drops nodes the root no longer needs
- determines stages (Coffman-Graham, width bounded by the policy)
- dispatches every stage through the policy's map
- writes caches, then frees results no later stage reads
"""
from __future__ import annotations

import copy as copymodule
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

from ..cache import CacheStore, FileCacheStore, pending_keys, write_caches
from ..errors import ReadonlyViolationError
from ..graph import trim_graph, use_cache_loads
from ..ir import DependencyGraph
from ..schedule import schedule_stages, stage_last_use

logger = logging.getLogger(__name__)

MapFunc = Callable[[Callable[[Any], Any], Iterable[Any]], Iterable[Any]]


@dataclass
class MapPolicy:
    """
    Execution policy built on a parallel implementation of ``map``, e.g.
    ``ThreadPoolExecutor().map`` or a distributed map. It must return results
    in input order.

    ``max_concurrency`` caps the number of nodes per stage. Smaller stages
    mean more frequent cache writes and lower peak memory, at the cost of
    less parallelism within a stage.
    """

    map: MapFunc = map
    max_concurrency: Optional[int] = None

    def __post_init__(self) -> None:
        if not callable(self.map):
            raise TypeError(f"MapPolicy needs a callable map, got {self.map!r}")
        if self.max_concurrency is not None and self.max_concurrency < 1:
            raise ValueError(f"max_concurrency must be positive, got {self.max_concurrency}")

    def parallel_map(self, f: Callable[[Any], Any], items: Sequence[Any]) -> List[Any]:
        return list(self.map(f, items))


class _Released:
    """Placeholder for a result no remaining node depends on."""

    def __repr__(self) -> str:
        return "<released>"


RELEASED = _Released()


def _apply(task: Tuple[Callable[[Sequence[Any]], Any], List[Any]]) -> Any:
    constructor, args = task
    return constructor(args)


class LocalBackend:
    def __init__(self, policy: Optional[MapPolicy] = None, store: Optional[CacheStore] = None):
        self.policy = policy if policy is not None else MapPolicy()
        self.store = store if store is not None else FileCacheStore()

    def prepare(self, graph: DependencyGraph, readonly: bool = False) -> DependencyGraph:
        graph = use_cache_loads(graph, self.store)
        graph = trim_graph(graph, [graph.root])

        if readonly:
            missing = pending_keys(graph.caches)
            if missing:
                raise ReadonlyViolationError(missing)
        return graph

    def run(self, graph: DependencyGraph, copy: bool = True, readonly: bool = False) -> Any:
        if len(graph) == 0:
            raise ValueError("Cannot execute an empty dependency graph")

        graph = self.prepare(graph, readonly)
        stages = schedule_stages(graph.dependencies, self.policy.max_concurrency)
        release_after: List[List[int]] = [[] for _ in stages]
        for i, last in enumerate(stage_last_use(graph.dependencies, stages)):
            if last >= 0:
                release_after[last].append(i)
        results: List[Any] = [RELEASED] * len(graph)

        for s, stage in enumerate(stages):
            t0 = time.time()
            logger.info("==> STAGE %d/%d  nodes=%d", s + 1, len(stages), len(stage))

            args = [[results[d] for d in graph.dependencies[i]] for i in stage]
            if copy:
                # each node receives its own copy of shared results
                args = [copymodule.deepcopy(a) for a in args]

            tasks = [(graph.constructors[i], a) for i, a in zip(stage, args)]
            outputs = self.policy.parallel_map(_apply, tasks)
            if len(outputs) != len(stage):
                raise RuntimeError(
                    f"Policy map returned {len(outputs)} results for {len(stage)} nodes"
                )
            for i, out in zip(stage, outputs):
                results[i] = out

            write_caches(
                [graph.caches[i] for i in stage],
                outputs,
                self.store,
            )

            for i in release_after[s]:
                results[i] = RELEASED
            if release_after[s]:
                logger.debug("released %d results", len(release_after[s]))

            logger.info("    done in %.2fs", time.time() - t0)

        return results[graph.root]
