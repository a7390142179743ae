"""Unit tests for the in-memory window counter store."""

import threading

import pytest

from ratewall.adapters.rate_limit.in_memory import InMemoryWindowStore


def test_first_increment_starts_window(local_store, clock) -> None:
    result = local_store.increment_and_get("k", 60)

    assert result.count == 1
    assert result.reset_at == clock() + 60
    assert result.ttl_remaining(clock()) == 60


def test_increments_within_window_keep_reset_at(local_store, clock) -> None:
    first = local_store.increment_and_get("k", 60)
    clock.advance(10)
    second = local_store.increment_and_get("k", 60)

    assert second.count == 2
    assert second.reset_at == first.reset_at
    assert second.ttl_remaining(clock()) == 50


def test_expired_entry_is_reset_not_incremented(local_store, clock) -> None:
    first = local_store.increment_and_get("k", 10)
    local_store.increment_and_get("k", 10)

    clock.advance(10)  # now == reset_at counts as expired
    result = local_store.increment_and_get("k", 10)

    assert result.count == 1
    assert result.reset_at == first.reset_at + 10


def test_exists_rechecks_expiry_without_sweep(local_store, clock) -> None:
    local_store.increment_and_get("k", 5)
    assert local_store.exists("k") is True

    clock.advance(5)

    assert local_store.exists("k") is False
    assert len(local_store) == 0


def test_set_with_ttl_and_delete(local_store, clock) -> None:
    local_store.set_with_ttl("blocked:x", "1", 30)
    assert local_store.exists("blocked:x") is True

    local_store.delete("blocked:x")
    assert local_store.exists("blocked:x") is False

    # Deleting a missing key is a no-op
    local_store.delete("blocked:x")


def test_sweep_removes_only_expired_entries(local_store, clock) -> None:
    local_store.increment_and_get("short", 5)
    local_store.increment_and_get("long", 500)
    local_store.set_with_ttl("blocked:y", "1", 5)

    clock.advance(6)

    assert local_store.sweep() == 2
    assert len(local_store) == 1
    assert local_store.exists("long") is True


def test_keys_are_isolated(local_store) -> None:
    assert local_store.increment_and_get("a", 60).count == 1
    assert local_store.increment_and_get("a", 60).count == 2
    assert local_store.increment_and_get("b", 60).count == 1


def test_concurrent_increments_on_fresh_key_never_lose_updates() -> None:
    store = InMemoryWindowStore()
    barrier = threading.Barrier(2)
    counts: list[int] = []
    lock = threading.Lock()

    def _hit() -> None:
        barrier.wait()
        result = store.increment_and_get("fresh", 60)
        with lock:
            counts.append(result.count)

    threads = [threading.Thread(target=_hit) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(counts) == [1, 2]


def test_many_concurrent_increments_yield_distinct_counts() -> None:
    store = InMemoryWindowStore()
    total = 50
    counts: list[int] = []
    lock = threading.Lock()

    def _hit() -> None:
        result = store.increment_and_get("busy", 60)
        with lock:
            counts.append(result.count)

    threads = [threading.Thread(target=_hit) for _ in range(total)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(counts) == list(range(1, total + 1))


@pytest.mark.parametrize(
    ("key", "window"),
    [
        ("", 60),
        ("k", 0),
    ],
)
def test_invalid_increment_args(key: str, window: int) -> None:
    with pytest.raises(ValueError):
        InMemoryWindowStore().increment_and_get(key, window)


def test_invalid_ttl() -> None:
    with pytest.raises(ValueError):
        InMemoryWindowStore().set_with_ttl("k", "1", 0)
