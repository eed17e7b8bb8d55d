from __future__ import annotations

import functools
import hashlib
import importlib
from typing import Any, Callable


def import_from_string(path: str) -> Any:
    """
    Import 'pkg.module:obj' or 'pkg.module.obj'.
    """
    if ":" in path:
        module_name, attr = path.split(":", 1)
    else:
        module_name, attr = path.rsplit(".", 1)
    module = importlib.import_module(module_name)
    for part in attr.split("."):
        module = getattr(module, part)
    return module


def load_callable(path: str) -> Callable[..., Any]:
    obj = import_from_string(path)
    if not callable(obj):
        raise TypeError(f"Imported object is not callable: {path}")
    return obj


def function_identifier(func: Any) -> str:
    """
    Stable textual name of a callable: 'module.qualname', without the
    module for builtins. Partials render as 'name(args)'.
    """
    if isinstance(func, functools.partial):
        inner = [function_identifier(func.func)]
        inner += [repr(a) for a in func.args]
        inner += [f"{k}={v!r}" for k, v in func.keywords.items()]
        return f"partial({','.join(inner)})"

    qualname = getattr(func, "__qualname__", None)
    if qualname is None:
        return repr(func)
    module = getattr(func, "__module__", None)
    if not module or module == "builtins":
        return qualname
    return f"{module}.{qualname}"


def stable_hash(text: str) -> str:
    # python's hash() is salted per process, keys must survive restarts
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
