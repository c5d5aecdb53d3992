"""
Generic async repository (Data Access Layer).

The ledger services depend on these store objects, never on the session or
on concrete tables, so the in-memory SQLite ledger and a PostgreSQL-backed
one are interchangeable.

Two write styles are offered:

- ``add()`` **stages** an entity (add + flush) inside the current
  transaction.  Ledger operations that touch several tables (invoice status,
  investment row, participant totals) stage everything and then call
  ``commit()`` once, so no intermediate state is ever visible.
- ``create()`` / ``update()`` stage **and** commit, for single-entity writes.

``IntegrityError`` is not caught here; each service maps it to its own
domain error.  ``OperationalError`` triggers a rollback before re-raising.
"""

import logging
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import func
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlmodel import SQLModel

from invoice_ledger.core.resilience import db_circuit_breaker

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType", bound=SQLModel)


class BaseRepository(Generic[ModelType]):
    """
    Generic CRUD repository for SQLModel entities.

    Parameters
    ----------
    model : Type[ModelType]
        The SQLModel class this repository manages.
    db : AsyncSession
        The unit of work shared by every repository of one ledger operation.

    Every database call is routed through the global ``db_circuit_breaker``.
    """

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        self.model = model
        self.db = db

    # ── Internal helpers ──

    async def _execute_with_circuit_breaker(
        self, func: Any, *args: Any, **kwargs: Any
    ) -> Any:
        return await db_circuit_breaker.call(func, *args, **kwargs)

    def _default_order(self) -> List[Any]:
        """Columns used by ``get_all``; primary key unless overridden."""
        return list(self.model.__table__.primary_key.columns)

    # ── Reads ──

    async def get(self, id: Any) -> Optional[ModelType]:
        """Fetch a single entity by primary key.  Returns ``None`` if not found."""

        async def _get() -> Optional[ModelType]:
            return await self.db.get(self.model, id)

        return await self._execute_with_circuit_breaker(_get)

    async def get_all(self, skip: int = 0, limit: Optional[int] = None) -> List[ModelType]:
        """Return entities in a deterministic order, optionally paginated."""

        async def _get_all() -> List[ModelType]:
            stmt = select(self.model).order_by(*self._default_order()).offset(skip)
            if limit is not None:
                stmt = stmt.limit(limit)
            result = await self.db.execute(stmt)
            return list(result.scalars().all())

        return await self._execute_with_circuit_breaker(_get_all)

    async def count(self) -> int:
        async def _count() -> int:
            stmt = select(func.count()).select_from(self.model)
            result = await self.db.execute(stmt)
            return result.scalar_one()

        return await self._execute_with_circuit_breaker(_count)

    async def _scalars(self, stmt: Any) -> List[ModelType]:
        """Run a SELECT through the breaker and return the entity list."""

        async def _run() -> List[ModelType]:
            result = await self.db.execute(stmt)
            return list(result.scalars().all())

        return await self._execute_with_circuit_breaker(_run)

    # ── Writes ──

    async def add(self, obj_in: ModelType) -> ModelType:
        """Stage an entity in the current transaction without committing."""

        async def _add() -> ModelType:
            self.db.add(obj_in)
            await self.db.flush()
            return obj_in

        return await self._execute_with_circuit_breaker(_add)

    async def create(self, obj_in: ModelType) -> ModelType:
        """Insert a new entity, commit, and return the refreshed instance."""

        async def _create() -> ModelType:
            self.db.add(obj_in)
            try:
                await self.db.commit()
            except OperationalError:
                await self.db.rollback()
                logger.error("OperationalError during create for %s", self.model.__name__)
                raise
            await self.db.refresh(obj_in)
            return obj_in

        return await self._execute_with_circuit_breaker(_create)

    async def update(self, entity: ModelType) -> ModelType:
        """Merge an already-mutated entity, commit, and refresh it."""

        async def _update() -> ModelType:
            merged = await self.db.merge(entity)
            try:
                await self.db.commit()
            except OperationalError:
                await self.db.rollback()
                logger.error("OperationalError during update for %s", self.model.__name__)
                raise
            await self.db.refresh(merged)
            return merged

        return await self._execute_with_circuit_breaker(_update)

    # ── Unit of work ──

    async def commit(self) -> None:
        """Commit everything staged on the shared session."""

        async def _commit() -> None:
            try:
                await self.db.commit()
            except OperationalError:
                await self.db.rollback()
                logger.error("OperationalError during commit (%s)", self.model.__name__)
                raise

        await self._execute_with_circuit_breaker(_commit)

    async def rollback(self) -> None:
        await self.db.rollback()
