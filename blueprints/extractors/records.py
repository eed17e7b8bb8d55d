from __future__ import annotations

import dataclasses
from typing import Any, Sequence, Tuple

from ..registry import DataclassRecord, Extraction, register


class Replace:
    __slots__ = ("template", "names")

    def __init__(self, template: Any, names: Tuple[str, ...]):
        self.template = template
        self.names = names

    def __call__(self, xs: Sequence[Any]) -> Any:
        return dataclasses.replace(self.template, **dict(zip(self.names, xs)))

    def __repr__(self) -> str:
        return type(self.template).__qualname__


@register(DataclassRecord)
def run_dataclass(x: Any) -> Extraction:
    names = tuple(f.name for f in dataclasses.fields(x) if f.init)
    return Extraction([getattr(x, n) for n in names], Replace(x, names))
