import operator
import weakref
from concurrent.futures import ThreadPoolExecutor

import pytest

from blueprints import (
    B,
    CachedB,
    CacheStoreError,
    MapPolicy,
    PhonyBlueprint,
    ReadonlyViolationError,
    build_graph,
    construct,
    is_cached,
)


# -------------------------------------------------------
# Helpers
# -------------------------------------------------------

class Counted:
    """Wraps a function and counts how often it is called."""

    def __init__(self, func):
        self.func = func
        self.calls = 0
        self.__qualname__ = f"Counted.{func.__name__}"
        self.__module__ = __name__

    def __call__(self, *args, **kwargs):
        self.calls += 1
        return self.func(*args, **kwargs)


def make_matrix(rows, cols):
    return [[r * cols + c + 1 for c in range(cols)] for r in range(rows)]


def multiply(a, b):
    return [
        [sum(a[i][k] * b[k][j] for k in range(len(b))) for j in range(len(b[0]))]
        for i in range(len(a))
    ]


def record_call(*args, **kwargs):
    return args, tuple(sorted(kwargs.items()))


def blueprint_record_call(*args, **kwargs):
    return B(record_call, *args, **kwargs)


def append_one(xs):
    xs.append(1)
    return len(xs)


def fail(*args):
    raise ValueError("constructor failed")


class SpyMap:
    """Order-preserving map that records the size of every stage."""

    def __init__(self):
        self.sizes = []

    def __call__(self, f, items):
        items = list(items)
        self.sizes.append(len(items))
        # compute back to front; results must still line up with inputs
        out = [f(x) for x in reversed(items)]
        return list(reversed(out))


# -------------------------------------------------------
# Basic construction
# -------------------------------------------------------

def test_construct_simple():
    assert construct(B(operator.add, 1, 2)) == 3


def test_construct_plain_values():
    assert construct(5) == 5
    assert construct("abc") == "abc"
    assert construct({"x": B(operator.add, 1, 2), "y": [B(len, "ab")]}) == {"x": 3, "y": [2]}
    assert construct((B(abs, -1), 2)) == (1, 2)


def test_construct_params():
    assert construct(B(sorted, [3, B(abs, -5), 1], reverse=B(bool, 1))) == [5, 3, 1]


def test_construct_nested_structures():
    bps = []
    for f in (record_call, blueprint_record_call):
        bp = f(1, 2, 3, a=9)
        bp2 = f(bp, [bp, bp, 1], 2)
        bp3 = f(c={bp: bp2})
        bps.append(f(bp3, c=bp3))

    assert bps[0] == construct(bps[1])


def test_construct_fill():
    one = B(abs, -1)
    assert construct([[one] * 3 for _ in range(3)]) == [[1] * 3] * 3


def test_construct_accepts_graph():
    graph = build_graph(B(operator.mul, 6, 7))
    assert construct(graph) == 42


def test_phony_blueprint_runs_real_computation():
    phony = PhonyBlueprint(lambda xs: xs[0] * 10, (B(abs, -4),), B(max, "stand-in"))
    assert construct(B(operator.add, phony, 1)) == 41


# -------------------------------------------------------
# Memoization
# -------------------------------------------------------

def test_same_instance_constructed_once():
    f = Counted(abs)
    a = B(f, -3)
    assert construct([a, a, B(operator.add, a, a)]) == [3, 3, 6]
    assert f.calls == 1


def test_equal_instances_constructed_separately():
    mm = Counted(make_matrix)
    result = construct(B(multiply, B(mm, 3, 3), B(mm, 3, 1)))

    assert result == [[14], [32], [50]]
    assert mm.calls == 2

    mm.calls = 0
    construct([B(mm, 3, 3), B(mm, 3, 3)])
    assert mm.calls == 2


def test_copy_protects_shared_inputs():
    shared = B(list, [5, 6])
    assert construct([B(append_one, shared), B(append_one, shared)]) == [3, 3]

    shared = B(list, [5, 6])
    # without copies the second consumer sees the first one's mutation
    result = construct([B(append_one, shared), B(append_one, shared)], copy=False)
    assert sorted(result) == [3, 4]


# -------------------------------------------------------
# Policies
# -------------------------------------------------------

def test_thread_policy():
    mm = Counted(make_matrix)
    with ThreadPoolExecutor(max_workers=4) as ex:
        policy = MapPolicy(ex.map)
        result = construct(B(multiply, B(mm, 3, 3), B(mm, 3, 1)), policy=policy)
    assert result == [[14], [32], [50]]
    assert mm.calls == 2


def test_policy_width_bounds_stages():
    spy = SpyMap()
    leaves = [B(abs, -i) for i in range(10)]
    result = construct(B(sum, leaves), policy=MapPolicy(spy, max_concurrency=3))

    assert result == 45
    assert max(spy.sizes) <= 3
    assert sum(spy.sizes) == len(build_graph(B(sum, leaves)))


def test_policy_map_preserves_order():
    spy = SpyMap()
    assert construct([B(abs, -i) for i in range(6)], policy=MapPolicy(spy)) == list(range(6))


def test_policy_result_count_checked():
    policy = MapPolicy(lambda f, items: [f(x) for x in list(items)[:1]])
    with pytest.raises(RuntimeError):
        construct([B(abs, -1), B(abs, -2)], policy=policy)


def test_policy_validation():
    with pytest.raises(TypeError):
        MapPolicy("map")
    with pytest.raises(ValueError):
        MapPolicy(map, max_concurrency=0)


# -------------------------------------------------------
# Failure and memory
# -------------------------------------------------------

def test_constructor_failure_aborts(tmp_path):
    path = tmp_path / "c.zip"
    bp = CachedB(path, operator.add, B(fail), 1)

    with pytest.raises(ValueError, match="constructor failed"):
        construct(B(abs, bp))
    assert not path.exists()


class Big:
    pass


def test_results_released_after_last_use():
    refs = []

    def make_big():
        big = Big()
        refs.append(weakref.ref(big))
        return big

    def probe(_):
        return refs[0]() is None

    consume = B(id, B(make_big))
    chain = B(operator.pos, B(operator.pos, B(operator.pos, B(bool, consume))))
    assert construct(B(probe, chain)) is True


# -------------------------------------------------------
# Caching
# -------------------------------------------------------

class SavingStore:
    """In-memory CacheStore recording every batched save."""

    def __init__(self):
        self.data = {}
        self.saves = []

    def exists_many(self, locator, keys):
        return [(locator, k) in self.data for k in keys]

    def exists(self, locator, key):
        return self.exists_many(locator, [key])[0]

    def load(self, locator, key):
        return self.data[(locator, key)]

    def save_many(self, locator, items):
        self.saves.append((locator, sorted(items)))
        for k, v in items.items():
            self.data.setdefault((locator, k), v)

    def save(self, locator, key, value):
        self.save_many(locator, {key: value})


def test_saves_batched_per_locator_within_stage():
    store = SavingStore()
    nodes = [
        CachedB(("one", "a"), abs, -1),
        CachedB(("one", "b"), abs, -2),
        CachedB(("two", "c"), abs, -3),
    ]

    assert construct(nodes, store=store) == [1, 2, 3]
    # the three cached nodes share a stage: one save per locator
    assert sorted(store.saves) == [("one", ["a", "b"]), ("two", ["c"])]

    store.saves.clear()
    assert construct(nodes, store=store) == [1, 2, 3]
    assert store.saves == []


def test_saves_follow_stages_when_width_bounded():
    store = SavingStore()
    nodes = [CachedB(("one", k), abs, -i) for i, k in enumerate("abc", start=1)]

    construct(nodes, policy=MapPolicy(max_concurrency=1), store=store)
    assert sorted(store.saves) == [("one", ["a"]), ("one", ["b"]), ("one", ["c"])]


def test_cache_round_trip(tmp_path):
    file1 = tmp_path / "test.zip"
    mm = Counted(make_matrix)

    bp = CachedB(file1, multiply, B(mm, 2, 2), B(mm, 2, 1))
    result1 = construct(bp)
    assert mm.calls == 2
    assert file1.exists()

    result1r = construct(bp)
    assert result1r == result1
    # cached root: its inputs are never rebuilt
    assert mm.calls == 2

    file1.unlink()
    result2 = construct(bp)
    assert result2 == result1
    assert mm.calls == 4


def test_cache_across_instances(tmp_path):
    f = Counted(make_matrix)
    path = tmp_path / "m.zip"

    assert construct(CachedB(path, f, 2, 3)) == make_matrix(2, 3)
    # a new but identical blueprint maps to the same default key
    assert construct(CachedB(path, f, 2, 3)) == make_matrix(2, 3)
    assert f.calls == 1


def test_cached_blueprints_in_graph(tmp_path):
    file1 = str(tmp_path / "test.zip")
    file2 = str(tmp_path / "test2.zip")

    bp = B(record_call, 1, 2, 3)
    bp2 = CachedB(file1, record_call, a=3, b=4, c=5)
    bp3 = CachedB(file1, record_call, a=bp2)
    bp4 = CachedB((file2, "test"), record_call, a=bp2)
    bp5 = CachedB(file2, record_call, bp, bp2, bp3, c=bp4)
    bp6 = B(record_call, bp5)

    assert not is_cached(bp5)
    result1 = construct(bp6)
    assert is_cached(bp5)
    assert construct(bp6) == result1

    (tmp_path / "test.zip").unlink()
    (tmp_path / "test2.zip").unlink()
    assert construct(bp6) == result1


def test_partial_cache_recomputes_missing(tmp_path):
    inner = Counted(make_matrix)
    a = CachedB((tmp_path / "a.zip", "a"), inner, 2, 2)
    b = CachedB((tmp_path / "b.zip", "b"), multiply, a, a)

    construct(b)
    (tmp_path / "b.zip").unlink()
    assert not is_cached(b)

    assert construct(b) == multiply(make_matrix(2, 2), make_matrix(2, 2))
    # a was loaded, not rebuilt
    assert inner.calls == 1


def test_readonly(tmp_path):
    f = Counted(make_matrix)
    bp = CachedB((tmp_path / "r.zip", "mat"), f, 2, 2)

    with pytest.raises(ReadonlyViolationError) as exc:
        construct(B(len, bp), readonly=True)
    assert [k.key for k in exc.value.keys] == ["mat"]
    assert "mat" in str(exc.value)
    assert f.calls == 0

    construct(bp)
    assert construct(B(len, bp), readonly=True) == 2
    assert f.calls == 1


def test_readonly_without_caches():
    assert construct(B(abs, -2), readonly=True) == 2


def test_is_cached_without_cache_entries():
    assert is_cached(B(abs, -2))


def test_corrupt_store_is_an_error(tmp_path):
    path = tmp_path / "broken.zip"
    path.write_bytes(b"not a zip archive")

    with pytest.raises(CacheStoreError):
        construct(CachedB(path, abs, -1))
