import zipfile

import pytest

from blueprints import CacheKey, CacheStoreError, FileCacheStore
from blueprints.cache import pending_keys, validate_caches, write_caches


def test_missing_file_is_a_miss(tmp_path):
    store = FileCacheStore()
    path = str(tmp_path / "absent.zip")

    assert not store.exists(path, "k")
    assert store.exists_many(path, ["a", "b"]) == [False, False]


def test_save_and_load(tmp_path):
    store = FileCacheStore()
    path = str(tmp_path / "sub" / "dir" / "cache.zip")

    store.save(path, "k", {"a": [1, 2.5]})
    assert store.exists(path, "k")
    assert not store.exists(path, "other")
    assert store.load(path, "k") == {"a": [1, 2.5]}


def test_save_is_idempotent(tmp_path):
    store = FileCacheStore()
    path = str(tmp_path / "cache.zip")

    store.save(path, "k", 1)
    store.save(path, "k", 2)

    with zipfile.ZipFile(path) as archive:
        assert archive.namelist() == ["k"]
    assert store.load(path, "k") == 1


def test_save_many_keeps_slots_independent(tmp_path):
    store = FileCacheStore(compress=False)
    path = str(tmp_path / "cache.zip")

    store.save_many(path, {"a": "x", "b": "y"})
    store.save_many(path, {"c": "z"})

    assert store.exists_many(path, ["a", "b", "c", "d"]) == [True, True, True, False]
    assert [store.load(path, k) for k in "abc"] == ["x", "y", "z"]


def test_closures_round_trip(tmp_path):
    store = FileCacheStore()
    path = str(tmp_path / "cache.zip")
    offset = 3

    store.save(path, "f", lambda x: x + offset)
    assert store.load(path, "f")(1) == 4


def test_corrupt_file_raises(tmp_path):
    path = tmp_path / "cache.zip"
    path.write_text("garbage")
    store = FileCacheStore()

    with pytest.raises(CacheStoreError):
        store.exists(str(path), "k")
    with pytest.raises(CacheStoreError):
        store.save(str(path), "k", 1)


class Unpicklable:
    def __reduce__(self):
        raise TypeError("cannot pickle")


def test_unpicklable_batch_writes_nothing(tmp_path):
    store = FileCacheStore()
    path = str(tmp_path / "cache.zip")
    store.save(path, "old", 0)

    with pytest.raises(CacheStoreError):
        store.save_many(path, {"a": 1, "b": Unpicklable(), "c": 3})

    with zipfile.ZipFile(path) as archive:
        assert archive.namelist() == ["old"]
    with pytest.raises(CacheStoreError):
        store.save(str(tmp_path / "fresh.zip"), "k", Unpicklable())
    assert not (tmp_path / "fresh.zip").exists()


def test_load_absent_key_raises(tmp_path):
    store = FileCacheStore()
    path = str(tmp_path / "cache.zip")
    store.save(path, "k", 1)

    with pytest.raises(CacheStoreError):
        store.load(path, "missing")


def test_validate_and_write_batch_per_locator(tmp_path):
    p1 = str(tmp_path / "one.zip")
    p2 = str(tmp_path / "two.zip")
    caches = [CacheKey(p1, "a"), None, CacheKey(p2, "b"), CacheKey(p1, "c")]
    store = FileCacheStore()

    assert validate_caches(caches, store) == [False, False, False, False]

    write_caches(caches, [1, 2, 3, 4], store)
    assert validate_caches(caches, store) == [True, False, True, True]
    assert store.load(p1, "c") == 4
    assert store.load(p2, "b") == 3


def test_pending_keys_unique_in_order():
    a = CacheKey("f", "a")
    b = CacheKey("f", "b")
    assert pending_keys([a, None, b, a]) == [a, b]
