import asyncio
import json

from redis_cache.redis_client import ShortTermContextCache, iso_timestamp

KEY = "ws:conv-1:ctx"


async def test_push_then_get_returns_entries_oldest_first(context_cache):
    await context_cache.push("conv-1", "user", "What is GDP?", "2024-01-01T00:00:00.000Z")
    await context_cache.push("conv-1", "assistant", "Gross domestic product.", "2024-01-01T00:00:01.000Z")

    assert await context_cache.get("conv-1") == [
        {"role": "user", "content": "What is GDP?", "timestamp": "2024-01-01T00:00:00.000Z"},
        {"role": "assistant", "content": "Gross domestic product.", "timestamp": "2024-01-01T00:00:01.000Z"},
    ]


async def test_window_keeps_the_last_fifty(context_cache):
    for i in range(51):
        await context_cache.push("conv-1", "user", f"m{i}")

    messages = await context_cache.get("conv-1")

    assert len(messages) == 50
    assert messages[0]["content"] == "m1"
    assert messages[-1]["content"] == "m50"


async def test_push_arms_ttl(context_cache, redis_client):
    await context_cache.push("conv-1", "user", "hello")
    ttl = await redis_client.ttl(KEY)
    assert 0 < ttl <= 1800


async def test_read_refreshes_ttl(context_cache, redis_client):
    await context_cache.push("conv-1", "user", "hello")
    await redis_client.expire(KEY, 5)

    await context_cache.get("conv-1")

    assert await redis_client.ttl(KEY) > 5


async def test_miss_returns_empty_list(context_cache):
    assert await context_cache.get("never-used") == []


async def test_corrupt_payload_reads_as_empty(context_cache, redis_client):
    await redis_client.set(KEY, "{not json")
    assert await context_cache.get("conv-1") == []

    await redis_client.set(KEY, json.dumps({"role": "user"}))
    assert await context_cache.get("conv-1") == []


async def test_corrupt_payload_is_replaced_on_push(context_cache, redis_client):
    await redis_client.set(KEY, "{not json")
    await context_cache.push("conv-1", "user", "fresh")
    assert [m["content"] for m in await context_cache.get("conv-1")] == ["fresh"]


async def test_reset_deletes_the_window(context_cache, redis_client):
    await context_cache.push("conv-1", "user", "hello")
    await context_cache.reset("conv-1")

    assert await redis_client.exists(KEY) == 0
    assert await context_cache.get("conv-1") == []


async def test_concurrent_pushes_are_not_lost(context_cache):
    await asyncio.gather(*(context_cache.push("conv-1", "user", f"m{i}") for i in range(5)))

    contents = {m["content"] for m in await context_cache.get("conv-1")}
    assert contents == {f"m{i}" for i in range(5)}


async def test_key_prefix_is_configurable(redis_client):
    cache = ShortTermContextCache(redis_client, key_prefix="vault")
    await cache.push("v-1", "user", "hi")
    assert await redis_client.exists("vault:v-1:ctx") == 1


def test_iso_timestamp_uses_millis_and_z():
    stamp = iso_timestamp()
    assert stamp.endswith("Z")
    assert len(stamp.split(".")[-1]) == 4
