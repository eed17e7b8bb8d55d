"""
Blueprints: deferred, pure computations that are deduplicated by identity,
cached to disk and constructed stage by stage.

    from blueprints import B, CachedB, construct

    a = B(make_matrix, 3, 3)
    b = CachedB("cache/products.zip", multiply, a, B(make_matrix, 3, 1))
    result = construct(b)
"""
from . import extractors  # noqa: F401  (registers the built-in extractors)
from .ir import (
    B,
    Blueprint,
    CacheKey,
    CachedB,
    CachedBlueprint,
    DependencyGraph,
    MutableBlueprint,
    PhonyBlueprint,
    default_group_key,
)
from .registry import Extraction, dependencies, register
from .graph import build_graph
from .schedule import schedule_stages, topological_rank
from .cache import CacheStore, FileCacheStore
from .backends.local import LocalBackend, MapPolicy
from .construct import construct, is_cached
from .config import ConstructConfig, construct_from_config, load_construct_config
from .errors import (
    BlueprintError,
    CacheStoreError,
    CyclicGraphError,
    MissingParameterError,
    ReadonlyViolationError,
)

__version__ = "0.1.0"

__all__ = (
    "B",
    "CachedB",
    "Blueprint",
    "MutableBlueprint",
    "CachedBlueprint",
    "PhonyBlueprint",
    "CacheKey",
    "DependencyGraph",
    "default_group_key",
    "Extraction",
    "dependencies",
    "register",
    "build_graph",
    "schedule_stages",
    "topological_rank",
    "CacheStore",
    "FileCacheStore",
    "LocalBackend",
    "MapPolicy",
    "construct",
    "is_cached",
    "ConstructConfig",
    "construct_from_config",
    "load_construct_config",
    "BlueprintError",
    "CacheStoreError",
    "CyclicGraphError",
    "MissingParameterError",
    "ReadonlyViolationError",
)
