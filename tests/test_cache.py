import threading

import pytest

from sqlstore import Cache, Key


def test_get_miss_returns_none():
    assert Cache().get(Key("Author", 1)) is None


def test_put_and_get():
    cache = Cache()
    cache.put(Key("Author", 1), {"id": 1, "name": "Jane"})
    assert cache.get(Key("Author", 1)) == {"id": 1, "name": "Jane"}
    assert Key("Author", 1) in cache
    assert len(cache) == 1


def test_rows_are_read_only_copies():
    cache = Cache()
    row = {"id": 1, "name": "Jane"}
    cache.put(Key("Author", 1), row)
    row["name"] = "changed"
    cached = cache.get(Key("Author", 1))
    assert cached["name"] == "Jane"
    with pytest.raises(TypeError):
        cached["name"] = "other"


def test_put_replaces_whole_row():
    cache = Cache()
    cache.put(Key("Author", 1), {"id": 1, "name": "Jane", "age": 30})
    cache.put(Key("Author", 1), {"id": 1, "name": "Joan"})
    assert dict(cache.get(Key("Author", 1))) == {"id": 1, "name": "Joan"}


def test_put_requires_an_id():
    with pytest.raises(ValueError):
        Cache().put(Key("Author"), {"name": "Jane"})


def test_invalidate_and_clear():
    cache = Cache()
    cache.put(Key("Author", 1), {"id": 1})
    cache.put(Key("Author", 2), {"id": 2})
    cache.invalidate(Key("Author", 1))
    cache.invalidate(Key("Author", 3))
    assert cache.get(Key("Author", 1)) is None
    assert len(cache) == 1
    cache.clear()
    assert len(cache) == 0


def test_unbounded_cache_keeps_everything():
    cache = Cache()
    for i in range(1000):
        cache.put(Key("Book", i), {"id": i})
    assert len(cache) == 1000
    assert cache.capacity is None


def test_lru_eviction():
    cache = Cache(capacity=2)
    cache.put(Key("Book", 1), {"id": 1})
    cache.put(Key("Book", 2), {"id": 2})
    # touch 1 so that 2 becomes least recently used
    assert cache.get(Key("Book", 1)) is not None
    cache.put(Key("Book", 3), {"id": 3})
    assert Key("Book", 1) in cache
    assert Key("Book", 2) not in cache
    assert Key("Book", 3) in cache


def test_invalid_capacity():
    with pytest.raises(ValueError):
        Cache(capacity=0)


def test_concurrent_puts_never_expose_partial_rows():
    cache = Cache(capacity=10)
    key = Key("Book", 1)
    errors = []

    def writer(n):
        for i in range(200):
            cache.put(key, {"id": 1, "a": n * 1000 + i, "b": n * 1000 + i})

    def reader():
        for _ in range(500):
            row = cache.get(key)
            if row is not None and row["a"] != row["b"]:
                errors.append(dict(row))

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    threads += [threading.Thread(target=reader) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert errors == []
