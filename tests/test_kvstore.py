"""Key-value store tests."""

from datetime import timedelta

from fastapi_printqueue.kvstore import InMemoryKeyValueStore, KeyValueStore


async def test_get_returns_value_until_expiry(clock) -> None:
    kv = InMemoryKeyValueStore(clock)
    await kv.put(
        "oauth-state:abc", {"user_id": "user-1"}, timedelta(minutes=5)
    )

    clock.advance(minutes=4, seconds=59)
    assert await kv.get("oauth-state:abc") == {"user_id": "user-1"}

    clock.advance(seconds=1)
    assert await kv.get("oauth-state:abc") is None


async def test_delete_and_missing_keys(clock) -> None:
    kv = InMemoryKeyValueStore(clock)
    await kv.put("k", "v", timedelta(seconds=10))

    await kv.delete("k")
    await kv.delete("never-set")

    assert await kv.get("k") is None


async def test_put_overwrites_and_resets_ttl(clock) -> None:
    kv = InMemoryKeyValueStore(clock)
    await kv.put("k", 1, timedelta(seconds=10))
    clock.advance(seconds=9)
    await kv.put("k", 2, timedelta(seconds=10))
    clock.advance(seconds=9)

    assert await kv.get("k") == 2


def test_in_memory_store_satisfies_protocol() -> None:
    assert isinstance(InMemoryKeyValueStore(), KeyValueStore)


async def test_put_drops_expired_entries_that_were_never_read(clock) -> None:
    kv = InMemoryKeyValueStore(clock)
    for state in ("a", "b", "c"):
        await kv.put(f"oauth-state:{state}", "user-1", timedelta(minutes=5))

    clock.advance(minutes=5)
    await kv.put("oauth-state:d", "user-2", timedelta(minutes=5))

    assert len(kv) == 1
    assert await kv.get("oauth-state:d") == "user-2"
