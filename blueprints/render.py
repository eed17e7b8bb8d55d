"""
Rendering of blueprints into plain records / JSON, and a text listing of a
dependency graph by stage.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from .cache import CacheLoader
from .extractors.nodes import Call
from .ir import Blueprint, CachedBlueprint, DependencyGraph, MutableBlueprint, PhonyBlueprint
from .registry import Returns
from .schedule import schedule_stages
from .util import function_identifier


def to_record(value: Any) -> Dict[str, Any]:
    """
    {"func": name, "1": first arg, ..., param: value}. Cached blueprints
    also carry "locator" and "key"; phony blueprints render as their stand-in.
    """
    if isinstance(value, CachedBlueprint):
        record = to_record(value.blueprint)
        record.update(locator=value.locator, key=value.key)
        return record
    if isinstance(value, PhonyBlueprint):
        return to_record(value.blueprint)
    if isinstance(value, MutableBlueprint):
        params = list(value.params.items())
    elif isinstance(value, Blueprint):
        params = list(value.params)
    else:
        raise TypeError(f"Cannot render {type(value).__name__} as a blueprint record")

    record: Dict[str, Any] = {"func": function_identifier(value.func)}
    record.update((str(i), arg) for i, arg in enumerate(value.args, start=1))
    record.update(params)
    return record


def _lower(value: Any) -> Any:
    if isinstance(value, (Blueprint, MutableBlueprint, PhonyBlueprint, CachedBlueprint)):
        return to_record(value)
    if isinstance(value, (tuple, set, frozenset)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_json(value: Any, indent: Optional[int] = 2) -> str:
    return json.dumps(value, default=_lower, indent=indent)


def _label(constructor: Any) -> str:
    if isinstance(constructor, Returns):
        return repr(constructor.value)
    if isinstance(constructor, Call):
        return function_identifier(constructor.func)
    if isinstance(constructor, CacheLoader):
        return repr(constructor)
    return function_identifier(constructor)


def describe(graph: DependencyGraph, max_width: Optional[int] = None) -> str:
    lines: List[str] = ["DependencyGraph:"]
    for s, stage in enumerate(schedule_stages(graph.dependencies, max_width), start=1):
        lines.append(f"Stage {s}:")
        for j in sorted(stage):
            deps = graph.dependencies[j]
            args = f"({','.join(map(str, deps))})" if deps else ""
            cache = graph.caches[j]
            suffix = f" -> {cache.locator}:/{cache.key}" if cache is not None else ""
            lines.append(f" {j}. {_label(graph.constructors[j])}{args}{suffix}")
    return "\n".join(lines)
