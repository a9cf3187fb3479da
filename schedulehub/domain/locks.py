"""Lease-based job locks.

A lock is a (job name, holder, expiry) lease. Acquiring succeeds when nobody
holds an unexpired lease or when the caller already holds it (the lease is then
extended). Only the holder may release; releasing an absent lock is a no-op.
Expired leases count as absent and are cleared lazily on the next access.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from redis.asyncio import Redis

from schedulehub.core.settings import Settings
from schedulehub.core.timezone_utils import normalize_to_utc, utc_now
from schedulehub.core.uow import SessionFactory, UnitOfWork
from schedulehub.domain.models import JobLock

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class LockInfo:
    job_name: str
    locked_by: str
    locked_at: datetime
    expires_at: datetime


class LockService(abc.ABC):
    """Mutual exclusion for periodic jobs."""

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock = clock or utc_now
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def _now(self) -> datetime:
        return normalize_to_utc(self._clock())

    @abc.abstractmethod
    async def acquire(self, job_name: str, instance_id: str, ttl_seconds: float) -> bool:
        """Take or extend the lease; ``False`` when another holder owns it."""

    @abc.abstractmethod
    async def release(self, job_name: str, instance_id: str) -> bool:
        """Drop the lease; ``False`` only when someone else holds it."""

    @abc.abstractmethod
    async def get_holder(self, job_name: str) -> Optional[LockInfo]:
        """Current unexpired lease, if any."""

    async def is_held(self, job_name: str) -> bool:
        return await self.get_holder(job_name) is not None

    async def close(self) -> None:  # pragma: no cover - optional override
        return None


class MemoryLockService(LockService):
    """Process-local locks; only safe with a single worker process."""

    def __init__(self, clock: Optional[Clock] = None) -> None:
        super().__init__(clock)
        self._locks: Dict[str, LockInfo] = {}
        self._mutex = asyncio.Lock()

    def _live(self, job_name: str) -> Optional[LockInfo]:
        info = self._locks.get(job_name)
        if info is not None and info.expires_at <= self._now():
            self._locks.pop(job_name, None)
            return None
        return info

    async def acquire(self, job_name: str, instance_id: str, ttl_seconds: float) -> bool:
        async with self._mutex:
            current = self._live(job_name)
            if current is not None and current.locked_by != instance_id:
                return False
            now = self._now()
            self._locks[job_name] = LockInfo(
                job_name=job_name,
                locked_by=instance_id,
                locked_at=current.locked_at if current else now,
                expires_at=now + timedelta(seconds=ttl_seconds),
            )
            return True

    async def release(self, job_name: str, instance_id: str) -> bool:
        async with self._mutex:
            current = self._live(job_name)
            if current is None:
                return True
            if current.locked_by != instance_id:
                return False
            self._locks.pop(job_name, None)
            return True

    async def get_holder(self, job_name: str) -> Optional[LockInfo]:
        async with self._mutex:
            return self._live(job_name)


class DatabaseLockService(LockService):
    """Locks stored in the ``job_locks`` table, shared by every process on the database."""

    def __init__(self, session_factory: SessionFactory, clock: Optional[Clock] = None) -> None:
        super().__init__(clock)
        self._session_factory = session_factory

    async def acquire(self, job_name: str, instance_id: str, ttl_seconds: float) -> bool:
        now = self._now()
        expires_at = now + timedelta(seconds=ttl_seconds)
        async with UnitOfWork(self._session_factory) as uow:
            locks = uow.job_locks
            if await locks.extend_lock(job_name, instance_id, now=now, expires_at=expires_at) or (
                await locks.take_over_expired(job_name, instance_id, now=now, expires_at=expires_at)
            ):
                await uow.commit()
                return True

            if await locks.get_lock(job_name) is not None:
                # Live lease held by someone else.
                await uow.rollback()
                return False

            result = await locks.add(
                JobLock(job_name=job_name, locked_by=instance_id, locked_at=now, expires_at=expires_at)
            )
            if result.is_failure():
                # A concurrent acquirer inserted first.
                await uow.rollback()
                self._logger.debug("locks.acquire.race", extra={"job_name": job_name})
                return False
            await uow.commit()
            return True

    async def release(self, job_name: str, instance_id: str) -> bool:
        async with UnitOfWork(self._session_factory) as uow:
            row = await uow.job_locks.get_lock(job_name)
            if row is None:
                return True
            if row.locked_by != instance_id and row.expires_at > self._now():
                return False
            await uow.job_locks.delete_lock(job_name, locked_by=row.locked_by)
            await uow.commit()
            return True

    async def get_holder(self, job_name: str) -> Optional[LockInfo]:
        async with UnitOfWork(self._session_factory) as uow:
            row = await uow.job_locks.get_lock(job_name)
            if row is None:
                return None
            now = self._now()
            if row.expires_at <= now:
                await uow.job_locks.delete_lock(job_name, locked_by=row.locked_by, expired_before=now)
                await uow.commit()
                return None
            return LockInfo(
                job_name=row.job_name,
                locked_by=row.locked_by,
                locked_at=row.locked_at,
                expires_at=row.expires_at,
            )


_EXTEND_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('pexpire', KEYS[1], ARGV[2])
end
return 0
"""

# 1 = released, 0 = absent, -1 = held by someone else
_RELEASE_SCRIPT = """
local holder = redis.call('get', KEYS[1])
if not holder then
    return 0
end
if holder == ARGV[1] then
    redis.call('del', KEYS[1])
    return 1
end
return -1
"""


class RedisLockService(LockService):
    """Locks as Redis keys with a millisecond TTL; expiry is handled by Redis itself."""

    def __init__(self, redis: Redis, *, namespace: str = "schedulehub:lock") -> None:
        super().__init__()
        self._redis = redis
        self._prefix = f"{namespace.rstrip(':')}:"

    def _key(self, job_name: str) -> str:
        return f"{self._prefix}{job_name}"

    async def acquire(self, job_name: str, instance_id: str, ttl_seconds: float) -> bool:
        key = self._key(job_name)
        ttl_ms = max(1, int(ttl_seconds * 1000))
        if await self._redis.set(key, instance_id, nx=True, px=ttl_ms):
            return True
        extended = await self._redis.eval(_EXTEND_SCRIPT, 1, key, instance_id, ttl_ms)
        return bool(extended)

    async def release(self, job_name: str, instance_id: str) -> bool:
        outcome = await self._redis.eval(_RELEASE_SCRIPT, 1, self._key(job_name), instance_id)
        return int(outcome) >= 0

    async def get_holder(self, job_name: str) -> Optional[LockInfo]:
        key = self._key(job_name)
        holder = await self._redis.get(key)
        if holder is None:
            return None
        ttl_ms = await self._redis.pttl(key)
        now = self._now()
        if isinstance(holder, bytes):
            holder = holder.decode("utf-8")
        return LockInfo(
            job_name=job_name,
            locked_by=holder,
            # Redis keeps no acquisition time.
            locked_at=now,
            expires_at=now + timedelta(milliseconds=max(ttl_ms, 0)),
        )

    async def close(self) -> None:  # pragma: no cover - depends on driver internals
        await self._redis.aclose()


def build_lock_service(
    settings: Settings,
    *,
    session_factory: Optional[SessionFactory] = None,
    redis: Optional[Redis] = None,
) -> LockService:
    """Pick the lock backing named by ``LOCK_BACKEND``."""
    backend = settings.lock_backend
    if backend == "database":
        if session_factory is None:
            raise RuntimeError("LOCK_BACKEND=database requires a database session factory")
        service: LockService = DatabaseLockService(session_factory)
    elif backend == "redis":
        if redis is None:
            if not settings.redis_url:
                raise RuntimeError("LOCK_BACKEND=redis requires REDIS_URL")
            from schedulehub.core.redis_factory import create_redis_client

            redis = create_redis_client(settings.redis_url, component="locks", decode_responses=True)
        service = RedisLockService(redis)
    else:
        service = MemoryLockService()
    logger.info("Job lock backend: %s", backend)
    return service


__all__ = [
    "DatabaseLockService",
    "LockInfo",
    "LockService",
    "MemoryLockService",
    "RedisLockService",
    "build_lock_service",
]
