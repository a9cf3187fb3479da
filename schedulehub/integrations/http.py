"""Shared aiohttp plumbing for collaborator clients."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Mapping, Optional

import aiohttp

from schedulehub.domain.errors import (
    RetryableCollaboratorError,
    collaborator_error_for_status,
)

logger = logging.getLogger(__name__)


class JsonHttpClient:
    """Lazily-created ``aiohttp.ClientSession`` with collaborator error mapping."""

    def __init__(self, service: str, base_url: str, *, timeout: float = 10.0) -> None:
        self.service = service
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Mapping[str, Any]] = None,
        data: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        absolute_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        url = absolute_url or f"{self._base_url}{path}"
        session = self._get_session()
        try:
            async with session.request(method, url, json=json, data=data, headers=headers) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    logger.warning(
                        "%s.http_error",
                        self.service,
                        extra={"status": resp.status, "method": method, "path": path},
                    )
                    raise collaborator_error_for_status(
                        self.service, resp.status, f"HTTP {resp.status}: {text[:300]}"
                    )
                if resp.status == 204:
                    return {}
                try:
                    return await resp.json(content_type=None)
                except ValueError:
                    return {"raw": await resp.text()}
        except asyncio.TimeoutError as exc:
            raise RetryableCollaboratorError(self.service, "request timed out") from exc
        except aiohttp.ClientError as exc:
            raise RetryableCollaboratorError(self.service, str(exc) or exc.__class__.__name__) from exc

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


__all__ = ["JsonHttpClient"]
