import asyncio

import pytest

from concierge.schemas.tools import ToolRunResult
from concierge.services.idempotency import IdempotencyCache


class Counter:
    def __init__(self, result: ToolRunResult) -> None:
        self.result = result
        self.calls = 0

    async def __call__(self) -> ToolRunResult:
        self.calls += 1
        return self.result


def test_cache_key_needs_session_and_key():
    assert IdempotencyCache.cache_key("s1", "k1") == "concierge:idem:s1:k1"
    assert IdempotencyCache.cache_key(None, "k1") is None
    assert IdempotencyCache.cache_key("s1", None) is None


@pytest.mark.asyncio
async def test_second_call_replays_cached_result(kv):
    cache = IdempotencyCache(kv)
    compute = Counter(ToolRunResult(ok=True, output=2))

    first, first_replayed = await cache.execute_once("s1", "k1", compute)
    second, second_replayed = await cache.execute_once("s1", "k1", compute)

    assert compute.calls == 1
    assert (first_replayed, second_replayed) == (False, True)
    assert second.body() == first.body() == {"ok": True, "output": 2}


@pytest.mark.asyncio
async def test_entries_expire_after_ttl(kv, clock):
    cache = IdempotencyCache(kv, ttl_seconds=300)
    compute = Counter(ToolRunResult(ok=True, output="x"))

    await cache.execute_once("s1", "k1", compute)
    clock.advance(301)
    _, replayed = await cache.execute_once("s1", "k1", compute)

    assert replayed is False
    assert compute.calls == 2


@pytest.mark.asyncio
async def test_failures_are_not_cached(kv):
    cache = IdempotencyCache(kv)
    compute = Counter(ToolRunResult(ok=False, error="nope", status_code=400))

    await cache.execute_once("s1", "k1", compute)
    _, replayed = await cache.execute_once("s1", "k1", compute)

    assert replayed is False
    assert compute.calls == 2


@pytest.mark.asyncio
async def test_without_key_every_call_executes(kv):
    cache = IdempotencyCache(kv)
    compute = Counter(ToolRunResult(ok=True, output=1))

    await cache.execute_once("s1", None, compute)
    await cache.execute_once(None, "k1", compute)
    assert compute.calls == 2


@pytest.mark.asyncio
async def test_keys_are_scoped_per_session(kv):
    cache = IdempotencyCache(kv)
    compute = Counter(ToolRunResult(ok=True, output=1))

    await cache.execute_once("s1", "k1", compute)
    _, replayed = await cache.execute_once("s2", "k1", compute)
    assert replayed is False
    assert compute.calls == 2


@pytest.mark.asyncio
async def test_concurrent_retry_waits_for_first_call(kv):
    cache = IdempotencyCache(kv)
    release = asyncio.Event()
    calls = 0

    async def slow() -> ToolRunResult:
        nonlocal calls
        calls += 1
        await release.wait()
        return ToolRunResult(ok=True, output="done")

    first = asyncio.create_task(cache.execute_once("s1", "k1", slow))
    second = asyncio.create_task(cache.execute_once("s1", "k1", slow))
    for _ in range(5):
        await asyncio.sleep(0)
    release.set()

    (r1, replayed1), (r2, replayed2) = await asyncio.gather(first, second)
    assert calls == 1
    assert r1.output == r2.output == "done"
    assert sorted([replayed1, replayed2]) == [False, True]
