import pytest

from core_cache import keys as cache_keys
from core_cache.redis_cache import RedisCache
from dig_gateway.exec_cache import ExecutionCache

from tests.helpers.fakes import FakeClock, FakeExecutor, FakeRedis

SOURCE = "(mod (x) (* x 2))"
PATH = "urn:dig:chia:" + "ab" * 32 + ":" + "11" * 32 + "/double.clsp"


@pytest.mark.asyncio
async def test_second_call_within_ttl_is_served_from_memory():
    executor, clock = FakeExecutor(), FakeClock()
    cache = ExecutionCache(executor, clock=clock)
    first = await cache.get_or_compute(PATH, ["21"], SOURCE)
    clock.advance(179)
    second = await cache.get_or_compute(PATH, ["21"], SOURCE)
    assert first == second
    assert len(executor.calls) == 1
    assert cache.backend == "memory"
    assert len(cache) == 1


@pytest.mark.asyncio
async def test_entry_expires_after_ttl():
    executor, clock = FakeExecutor(), FakeClock()
    cache = ExecutionCache(executor, clock=clock)
    await cache.get_or_compute(PATH, ["21"], SOURCE)
    clock.advance(181)
    await cache.get_or_compute(PATH, ["21"], SOURCE)
    assert len(executor.calls) == 2


@pytest.mark.asyncio
async def test_entry_is_stale_exactly_at_ttl():
    executor, clock = FakeExecutor(), FakeClock()
    cache = ExecutionCache(executor, ttl_sec=10, clock=clock)
    await cache.get_or_compute(PATH, [], SOURCE)
    clock.advance(10)
    await cache.get_or_compute(PATH, [], SOURCE)
    assert len(executor.calls) == 2


@pytest.mark.asyncio
async def test_params_and_path_both_key_the_entry():
    executor = FakeExecutor()
    cache = ExecutionCache(executor, clock=FakeClock())
    await cache.get_or_compute(PATH, ["1", "2"], SOURCE)
    await cache.get_or_compute(PATH, ["2", "1"], SOURCE)
    await cache.get_or_compute(PATH + "x", ["1", "2"], SOURCE)
    await cache.get_or_compute(PATH, ["1", "2"], SOURCE)
    assert len(executor.calls) == 3
    assert len(cache) == 3


@pytest.mark.asyncio
async def test_redis_backend_shares_results_with_setex_ttl():
    redis = FakeRedis()
    executor = FakeExecutor()
    a = ExecutionCache(executor, redis=RedisCache(redis))
    b = ExecutionCache(executor, redis=RedisCache(redis))
    first = await a.get_or_compute(PATH, ["3"], SOURCE)
    second = await b.get_or_compute(PATH, ["3"], SOURCE)
    assert first == second
    assert len(executor.calls) == 1
    key = cache_keys.exec_result(PATH, ["3"])
    assert redis.ttls[key] == 180
    assert a.backend == "redis"


@pytest.mark.asyncio
async def test_redis_outage_falls_back_to_executing():
    executor = FakeExecutor()
    cache = ExecutionCache(executor, redis=RedisCache(FakeRedis(fail=True)))
    result = await cache.get_or_compute(PATH, ["3"], SOURCE)
    assert result == f"({len(SOURCE)} 3)"
    assert len(executor.calls) == 1


def test_exec_keys_are_namespaced_and_order_sensitive():
    k1 = cache_keys.exec_result(PATH, ["a", "b"])
    k2 = cache_keys.exec_result(PATH, ["b", "a"])
    assert k1.startswith("dig:exec:v2:")
    assert k1 != k2
    assert cache_keys.exec_result(PATH, ["a", "b"]) == k1


@pytest.mark.parametrize("left,right", [
    (["a|", "b"], ["a", "|b"]),
    (["ab", ""], ["a", "b"]),
    (["1", "x"], ["1x"]),
])
def test_exec_keys_distinguish_params_that_concatenate_alike(left, right):
    assert cache_keys.exec_result(PATH, left) != cache_keys.exec_result(PATH, right)


@pytest.mark.asyncio
async def test_redis_backend_runs_each_distinct_param_list():
    redis = FakeRedis()
    executor = FakeExecutor()
    cache = ExecutionCache(executor, redis=RedisCache(redis))
    first = await cache.get_or_compute(PATH, ["a|", "b"], SOURCE)
    second = await cache.get_or_compute(PATH, ["a", "|b"], SOURCE)
    assert len(executor.calls) == 2
    assert first != second
    assert len(redis.store) == 2
