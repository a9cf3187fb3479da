from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from schedulehub.domain.errors import RetryableCollaboratorError

T = TypeVar("T")


async def call_with_timeout(service: str, awaitable: Awaitable[T], timeout_seconds: float) -> T:
    """Await a collaborator call; a timeout becomes a retryable collaborator error."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError as exc:
        raise RetryableCollaboratorError(service, f"call timed out after {timeout_seconds:g}s") from exc


__all__ = ["call_with_timeout"]
