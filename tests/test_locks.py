from datetime import datetime, timedelta, timezone

import pytest
from fakeredis import aioredis as fakeredis_aioredis

from schedulehub.core.uow import UnitOfWork
from schedulehub.domain.locks import DatabaseLockService, MemoryLockService, RedisLockService, build_lock_service


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.mark.asyncio
async def test_memory_lock_is_exclusive_until_ttl():
    clock = FakeClock()
    locks = MemoryLockService(clock)

    assert await locks.acquire("notify", "worker-x", 60)
    assert not await locks.acquire("notify", "worker-y", 60)
    holder = await locks.get_holder("notify")
    assert holder.locked_by == "worker-x"

    clock.advance(61)
    assert await locks.get_holder("notify") is None
    assert await locks.acquire("notify", "worker-y", 60)


@pytest.mark.asyncio
async def test_memory_lock_reacquire_extends_lease():
    clock = FakeClock()
    locks = MemoryLockService(clock)

    await locks.acquire("sync", "worker-x", 60)
    first = await locks.get_holder("sync")
    clock.advance(30)
    assert await locks.acquire("sync", "worker-x", 60)
    second = await locks.get_holder("sync")

    assert second.locked_at == first.locked_at
    assert second.expires_at == first.expires_at + timedelta(seconds=30)


@pytest.mark.asyncio
async def test_memory_lock_release_rules():
    locks = MemoryLockService(FakeClock())

    assert await locks.release("reconcile", "nobody")
    await locks.acquire("reconcile", "worker-x", 60)
    assert not await locks.release("reconcile", "worker-y")
    assert await locks.is_held("reconcile")
    assert await locks.release("reconcile", "worker-x")
    assert not await locks.is_held("reconcile")


@pytest.mark.asyncio
async def test_database_lock_shared_between_instances(session_factory):
    clock = FakeClock()
    first = DatabaseLockService(session_factory, clock)
    second = DatabaseLockService(session_factory, clock)

    assert await first.acquire("escalation", "worker-x", 120)
    assert not await second.acquire("escalation", "worker-y", 120)
    assert (await second.get_holder("escalation")).locked_by == "worker-x"
    assert not await second.release("escalation", "worker-y")

    clock.advance(121)
    assert await second.acquire("escalation", "worker-y", 120)
    assert (await first.get_holder("escalation")).locked_by == "worker-y"
    assert await second.release("escalation", "worker-y")
    assert await first.get_holder("escalation") is None


@pytest.mark.asyncio
async def test_database_lock_expired_lease_has_one_new_holder(session_factory):
    clock = FakeClock()
    old = DatabaseLockService(session_factory, clock)
    first = DatabaseLockService(session_factory, clock)
    second = DatabaseLockService(session_factory, clock)
    assert await old.acquire("sync", "worker-old", 60)
    clock.advance(61)

    results = [await first.acquire("sync", "worker-x", 60), await second.acquire("sync", "worker-y", 60)]

    assert results == [True, False]
    holder = await second.get_holder("sync")
    assert holder.locked_by == "worker-x"
    assert holder.locked_at == clock.now
    assert not await old.release("sync", "worker-old")


@pytest.mark.asyncio
async def test_database_takeover_checks_expiry_in_the_write(session_factory):
    clock = FakeClock()
    assert await DatabaseLockService(session_factory, clock).acquire("sync", "worker-old", 60)
    clock.advance(61)
    expires_at = clock.now + timedelta(seconds=60)

    # both callers saw the same expired row; only the first write may win
    async with UnitOfWork(session_factory) as uow:
        won = await uow.job_locks.take_over_expired("sync", "worker-x", now=clock.now, expires_at=expires_at)
        await uow.commit()
    async with UnitOfWork(session_factory) as uow:
        lost = await uow.job_locks.take_over_expired("sync", "worker-y", now=clock.now, expires_at=expires_at)
        await uow.commit()

    assert won is True
    assert lost is False
    holder = await DatabaseLockService(session_factory, clock).get_holder("sync")
    assert holder.locked_by == "worker-x"


@pytest.mark.asyncio
async def test_database_lock_reacquire_extends_lease(session_factory):
    clock = FakeClock()
    locks = DatabaseLockService(session_factory, clock)

    await locks.acquire("notify", "worker-x", 60)
    first = await locks.get_holder("notify")
    clock.advance(30)
    assert await locks.acquire("notify", "worker-x", 60)
    second = await locks.get_holder("notify")

    assert second.locked_at == first.locked_at
    assert second.expires_at == first.expires_at + timedelta(seconds=30)


@pytest.mark.asyncio
async def test_redis_lock_roundtrip():
    redis = fakeredis_aioredis.FakeRedis(decode_responses=True)
    locks = RedisLockService(redis, namespace="test:lock")

    assert await locks.acquire("notify", "worker-x", 30)
    assert not await locks.acquire("notify", "worker-y", 30)
    assert await locks.acquire("notify", "worker-x", 30)
    assert await redis.get("test:lock:notify") == "worker-x"

    holder = await locks.get_holder("notify")
    assert holder.locked_by == "worker-x"
    assert holder.expires_at > holder.locked_at

    assert not await locks.release("notify", "worker-y")
    assert await locks.release("notify", "worker-x")
    assert await locks.get_holder("notify") is None
    assert await locks.release("notify", "worker-x")


def test_build_lock_service_defaults_to_memory(settings, session_factory):
    assert isinstance(build_lock_service(settings, session_factory=session_factory), MemoryLockService)
