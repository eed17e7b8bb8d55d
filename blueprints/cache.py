"""
Durable storage of cached blueprint results.

The engine only needs ``exists/load/save``; the batched variants let it open
each store file once per stage instead of once per node.

``FileCacheStore`` keeps one zip archive per locator. Every group key is an
independent member holding a cloudpickle payload, so entries can be appended
without rewriting the file.
"""
from __future__ import annotations

import logging
import os
import zipfile
from collections import defaultdict
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Protocol, Sequence, Set, Tuple

import cloudpickle

from .errors import CacheStoreError
from .ir import CacheKey

logger = logging.getLogger(__name__)


class CacheStore(Protocol):
    def exists(self, locator: str, key: str) -> bool: ...

    def load(self, locator: str, key: str) -> Any: ...

    def save(self, locator: str, key: str, value: Any) -> None: ...

    def exists_many(self, locator: str, keys: Sequence[str]) -> List[bool]: ...

    def save_many(self, locator: str, items: Mapping[str, Any]) -> None: ...


class FileCacheStore:
    def __init__(self, compress: bool = True):
        self.compress = compress

    @contextmanager
    def _open(self, locator: str, mode: str) -> Iterator[zipfile.ZipFile]:
        path = Path(locator)
        if mode == "a":
            # zipfile would silently append an archive to a foreign file
            if path.exists() and not zipfile.is_zipfile(path):
                raise CacheStoreError(f"Corrupt cache store: {path}")
            path.parent.mkdir(parents=True, exist_ok=True)
        compression = zipfile.ZIP_DEFLATED if self.compress else zipfile.ZIP_STORED
        try:
            archive = zipfile.ZipFile(path, mode, compression=compression)
        except zipfile.BadZipFile as e:
            raise CacheStoreError(f"Corrupt cache store: {path}") from e
        try:
            yield archive
        finally:
            archive.close()

    def exists_many(self, locator: str, keys: Sequence[str]) -> List[bool]:
        if not os.path.isfile(locator):
            return [False] * len(keys)
        with self._open(locator, "r") as archive:
            names = set(archive.namelist())
        return [k in names for k in keys]

    def exists(self, locator: str, key: str) -> bool:
        return self.exists_many(locator, [key])[0]

    def load(self, locator: str, key: str) -> Any:
        with self._open(locator, "r") as archive:
            try:
                payload = archive.read(key)
            except KeyError as e:
                raise CacheStoreError(f"No entry {key!r} in cache store {locator}") from e
            except (zipfile.BadZipFile, OSError) as e:
                raise CacheStoreError(f"Unreadable entry {key!r} in cache store {locator}") from e
        try:
            return cloudpickle.loads(payload)
        except Exception as e:
            raise CacheStoreError(f"Cannot unpickle entry {key!r} in cache store {locator}") from e

    def save_many(self, locator: str, items: Mapping[str, Any]) -> None:
        if not items:
            return
        # a batch is serialized in full before the archive is touched
        payloads: Dict[str, bytes] = {}
        for key, value in items.items():
            try:
                payloads[key] = cloudpickle.dumps(value)
            except Exception as e:
                raise CacheStoreError(f"Cannot pickle entry {key!r} for cache store {locator}") from e

        with self._open(locator, "a") as archive:
            present = set(archive.namelist())
            for key, payload in payloads.items():
                if key in present:
                    continue
                archive.writestr(key, payload)
                present.add(key)
        logger.debug("saved %d entries to %s", len(items), locator)

    def save(self, locator: str, key: str, value: Any) -> None:
        self.save_many(locator, {key: value})


def _group_by_locator(caches: Iterable[Tuple[int, Optional[CacheKey]]]) -> Dict[str, List[Tuple[int, str]]]:
    grouped: Dict[str, List[Tuple[int, str]]] = defaultdict(list)
    for i, cache in caches:
        if cache is not None:
            grouped[cache.locator].append((i, cache.key))
    return grouped


def validate_caches(caches: Sequence[Optional[CacheKey]], store: CacheStore) -> List[bool]:
    """For each node, whether its cache entry already exists. One open per locator."""
    valid = [False] * len(caches)
    for locator, entries in _group_by_locator(enumerate(caches)).items():
        found = store.exists_many(locator, [key for _, key in entries])
        for (i, _), hit in zip(entries, found):
            valid[i] = hit
    return valid


def write_caches(caches: Sequence[Optional[CacheKey]], results: Sequence[Any], store: CacheStore) -> None:
    for locator, entries in _group_by_locator(enumerate(caches)).items():
        store.save_many(locator, {key: results[i] for i, key in entries})


def pending_keys(caches: Sequence[Optional[CacheKey]]) -> List[CacheKey]:
    seen: Set[CacheKey] = set()
    out: List[CacheKey] = []
    for cache in caches:
        if cache is not None and cache not in seen:
            seen.add(cache)
            out.append(cache)
    return out


class CacheLoader:
    """Constructor of a node whose result is already stored."""

    __slots__ = ("store", "cache")

    def __init__(self, store: CacheStore, cache: CacheKey):
        self.store = store
        self.cache = cache

    def __call__(self, _resolved: Sequence[Any] = ()) -> Any:
        return self.store.load(self.cache.locator, self.cache.key)

    def __repr__(self) -> str:
        return f"CacheLoader({self.cache.locator}:/{self.cache.key})"
