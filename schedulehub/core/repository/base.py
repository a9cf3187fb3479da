"""
Generic repository with the CRUD operations every entity needs.

Lookups and writes return ``Result`` values so storage failures are explicit
at the call site; entity-specific finders in ``schedulehub.repositories``
return plain values.
"""

from __future__ import annotations

import logging
from typing import Any, Generic, Sequence, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from schedulehub.core.result import (
    DatabaseError,
    RecordNotFound,
    Result,
    failure,
    success,
)
from schedulehub.domain.base import Base

logger = logging.getLogger(__name__)

T_Model = TypeVar("T_Model", bound=Base)


class BaseRepository(Generic[T_Model]):
    """
    CRUD operations for one SQLAlchemy model bound to a session.

    Example:
        class BookingRepository(BaseRepository[Booking]):
            def __init__(self, session: AsyncSession):
                super().__init__(Booking, session)
    """

    def __init__(self, model: Type[T_Model], session: AsyncSession):
        self.model = model
        self.session = session

    @property
    def model_name(self) -> str:
        return self.model.__name__

    def _primary_key(self):
        return self.model.__mapper__.primary_key[0]

    async def get(self, id: str) -> Result[T_Model, RecordNotFound | DatabaseError]:
        """
        Get entity by primary key.

        Returns:
            Result containing entity or error
        """
        try:
            entity = await self.session.get(self.model, id)
        except SQLAlchemyError as e:
            logger.error("Database error in %s.get(id=%s)", self.model_name, id, exc_info=True)
            return failure(
                DatabaseError(operation=f"{self.model_name}.get", message=str(e), original_exception=e)
            )
        if entity is None:
            return failure(RecordNotFound(entity_type=self.model_name, entity_id=str(id)))
        return success(entity)

    async def list_where(
        self,
        *criteria: Any,
        limit: int | None = None,
        order_by: Any | None = None,
    ) -> Sequence[T_Model]:
        stmt = select(self.model).where(*criteria)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def add(self, entity: T_Model) -> Result[T_Model, DatabaseError]:
        """
        Add new entity and flush so defaults and constraints are applied.

        Returns:
            Result containing the added entity, or an error with
            ``constraint_violation=True`` when a unique/foreign key fails.
        """
        try:
            self.session.add(entity)
            await self.session.flush()
            return success(entity)

        except IntegrityError as e:
            logger.warning("Integrity error in %s.add(): %s", self.model_name, e.orig)
            return failure(
                DatabaseError(
                    operation=f"{self.model_name}.add",
                    message=f"Constraint violation: {e.orig}",
                    constraint_violation=True,
                    original_exception=e,
                )
            )

        except SQLAlchemyError as e:
            logger.error("Database error in %s.add()", self.model_name, exc_info=True)
            return failure(
                DatabaseError(operation=f"{self.model_name}.add", message=str(e), original_exception=e)
            )

    async def delete(self, entity: T_Model) -> None:
        await self.session.delete(entity)
        await self.session.flush()

    async def count(self, *criteria: Any) -> int:
        stmt = select(func.count()).select_from(self.model).where(*criteria)
        result = await self.session.execute(stmt)
        return int(result.scalar() or 0)


__all__ = ["BaseRepository"]
