"""
Configuration of a construct call, loaded from a plain mapping
(e.g. parsed from a YAML or JSON file).

    construct:
      copy: true
      readonly: false
      max_concurrency: 4
      map_func: "concurrent.futures:ThreadPoolExecutor"
      compress: true
"""
from __future__ import annotations
import concurrent.futures
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Union

from .backends.local import MapPolicy
from .construct import construct
from .cache import CacheStore, FileCacheStore
from .util import load_callable


@dataclass
class ConstructConfig:
    copy: bool = True
    readonly: bool = False
    max_concurrency: Optional[int] = None
    map_func: Optional[str] = None  # 'pkg.module:callable' or an Executor class
    compress: bool = True


def _flag(c: Dict[str, Any], name: str, default: bool) -> bool:
    value = c.get(name, default)
    if not isinstance(value, bool):
        raise ValueError(f"construct option {name!r} must be true or false, got {value!r}")
    return value


def load_construct_config(d: Dict[str, Any]) -> ConstructConfig:
    c = d.get("construct", d)
    unknown = set(c) - {"copy", "readonly", "max_concurrency", "map_func", "compress"}
    if unknown:
        raise ValueError(f"Unknown construct options: {sorted(unknown)}")

    max_concurrency = c.get("max_concurrency")
    return ConstructConfig(
        copy=_flag(c, "copy", True),
        readonly=_flag(c, "readonly", False),
        max_concurrency=int(max_concurrency) if max_concurrency is not None else None,
        map_func=c.get("map_func"),
        compress=_flag(c, "compress", True),
    )


@contextmanager
def policy_from_config(cfg: ConstructConfig) -> Iterator[MapPolicy]:
    """
    Yields the policy described by ``cfg``. An Executor class is instantiated
    with ``max_workers=max_concurrency`` and shut down on exit.
    """
    if cfg.map_func is None:
        yield MapPolicy(map, cfg.max_concurrency)
        return

    obj = load_callable(cfg.map_func)
    if isinstance(obj, type) and issubclass(obj, concurrent.futures.Executor):
        with obj(max_workers=cfg.max_concurrency) as executor:
            yield MapPolicy(executor.map, cfg.max_concurrency)
    else:
        yield MapPolicy(obj, cfg.max_concurrency)


def construct_from_config(
    x: Any,
    cfg: Union[ConstructConfig, Dict[str, Any]],
    store: Optional[CacheStore] = None,
) -> Any:
    if not isinstance(cfg, ConstructConfig):
        cfg = load_construct_config(cfg)
    if store is None:
        store = FileCacheStore(compress=cfg.compress)

    with policy_from_config(cfg) as policy:
        return construct(x, policy=policy, copy=cfg.copy, readonly=cfg.readonly, store=store)
