"""Generic read/create service over one SQLAlchemy model.

The log queries build on this; definitions are seeded through
``create``.
"""

from typing import Any, Generic, Optional, Sequence, Type, TypeVar
from uuid import uuid4

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.base import BaseModel

ModelType = TypeVar("ModelType", bound=BaseModel)


class BaseService(Generic[ModelType]):
    """Generic service for any SQLAlchemy model.

    Usage:
        class WorkflowLogService(BaseService[WorkflowExecutionLog]):
            def __init__(self, db: AsyncSession):
                super().__init__(WorkflowExecutionLog, db)
    """

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        self.model = model
        self.db = db

    def _where(
        self,
        query: Select,
        filters: Optional[dict[str, Any]] = None,
        conditions: Optional[list] = None,
    ) -> Select:
        """Apply equality filters (a list value means IN) and raw clauses.

        Unknown column names are ignored.
        """
        for name, value in (filters or {}).items():
            column = getattr(self.model, name, None)
            if column is None:
                continue
            query = query.where(column.in_(value) if isinstance(value, list) else column == value)
        for clause in conditions or []:
            query = query.where(clause)
        return query

    # ─── Read ──────────────────────────────────────────────

    async def get_by_id(self, id: str) -> Optional[ModelType]:
        """Get a single record by ID."""
        return await self.db.get(self.model, id)

    async def list(
        self,
        offset: int = 0,
        limit: int = 50,
        order_by: str = "created_at",
        order_desc: bool = True,
        filters: Optional[dict[str, Any]] = None,
        conditions: Optional[list] = None,
    ) -> tuple[Sequence[ModelType], int]:
        """Filtered, sorted page of records.

        Args:
            filters: Equality filters by column name
            conditions: Extra SQLAlchemy boolean clauses, e.g. date ranges

        Returns:
            Tuple of (items, total_count)
        """
        query = self._where(select(self.model), filters, conditions)

        sort_column = getattr(self.model, order_by, None)
        if sort_column is not None:
            query = query.order_by(sort_column.desc() if order_desc else sort_column.asc())

        result = await self.db.execute(query.offset(offset).limit(limit))
        items = result.scalars().all()
        total = await self.count(filters, conditions)
        return items, total

    async def count(
        self,
        filters: Optional[dict[str, Any]] = None,
        conditions: Optional[list] = None,
    ) -> int:
        """Number of records matching the same filters ``list`` accepts."""
        query = self._where(select(func.count()).select_from(self.model), filters, conditions)
        result = await self.db.execute(query)
        return result.scalar() or 0

    # ─── Create ────────────────────────────────────────────

    async def create(self, data: dict[str, Any]) -> ModelType:
        """Insert a record and return it refreshed from the database."""
        values = dict(data)
        values.setdefault("id", str(uuid4()))
        instance = self.model(**values)
        self.db.add(instance)
        await self.db.flush()
        await self.db.refresh(instance)
        return instance
