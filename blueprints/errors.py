"""
Exceptions raised by graph construction, scheduling, caching and execution.
"""
from __future__ import annotations
from typing import Any, Sequence


class BlueprintError(Exception):
    pass


class CyclicGraphError(BlueprintError, ValueError):
    def __init__(self, dependencies: Sequence[Any], message: str = "attempted topological sort on a cyclic graph"):
        super().__init__(f"{message}: {list(dependencies)!r}")
        self.dependencies = dependencies


class MissingParameterError(BlueprintError, KeyError):
    def __init__(self, name: str):
        super().__init__(f"no parameter named {name!r}")
        self.name = name

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return str(self.args[0])


class ReadonlyViolationError(BlueprintError, RuntimeError):
    def __init__(self, keys: Sequence[Any]):
        self.keys = list(keys)
        listing = "\n".join(f"  {k.locator}:/{k.key}" for k in self.keys)
        super().__init__(
            f"Attempted construct with readonly=True, but not all caches are built:\n{listing}"
        )


class CacheStoreError(BlueprintError, OSError):
    """The backing store exists but cannot be read or written."""
