from __future__ import annotations

from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from schedulehub.core.repository.base import BaseRepository
from schedulehub.domain.models import AuditLog


class AuditLogRepository(BaseRepository[AuditLog]):
    """Append-only: rows are never updated or deleted."""

    def __init__(self, session: AsyncSession):
        super().__init__(AuditLog, session)

    async def list_for_request(self, request_id: str, *, action: Optional[str] = None) -> Sequence[AuditLog]:
        criteria = [AuditLog.scheduling_request_id == request_id]
        if action is not None:
            criteria.append(AuditLog.action == action)
        return await self.list_where(*criteria, order_by=AuditLog.created_at.asc())

    async def list_by_action(self, action: str) -> Sequence[AuditLog]:
        return await self.list_where(AuditLog.action == action, order_by=AuditLog.created_at.asc())


__all__ = ["AuditLogRepository"]
