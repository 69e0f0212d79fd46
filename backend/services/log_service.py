"""Workflow execution log queries."""

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import LogStatus
from core.exceptions import NotFoundError
from db.models.execution_log import LogEntry, WorkflowExecutionLog
from services.base import BaseService


class WorkflowLogService(BaseService[WorkflowExecutionLog]):
    """Read side of the durable audit trail."""

    def __init__(self, db: AsyncSession):
        super().__init__(WorkflowExecutionLog, db)

    async def list_logs(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[Sequence[WorkflowExecutionLog], int]:
        """Execution logs, newest first.

        ``start_date``/``end_date`` bound the log's start time (inclusive).
        """
        filters = {}
        if workflow_id:
            filters["workflow_id"] = workflow_id
        if status:
            filters["status"] = status

        conditions = []
        if start_date is not None:
            conditions.append(WorkflowExecutionLog.start_time >= start_date)
        if end_date is not None:
            conditions.append(WorkflowExecutionLog.start_time <= end_date)

        return await self.list(
            offset=offset,
            limit=limit,
            order_by="start_time",
            order_desc=True,
            filters=filters or None,
            conditions=conditions,
        )

    async def get_by_execution_id(self, execution_id: str) -> WorkflowExecutionLog:
        result = await self.db.execute(
            select(WorkflowExecutionLog).where(WorkflowExecutionLog.execution_id == execution_id)
        )
        execution_log = result.scalar_one_or_none()
        if execution_log is None:
            raise NotFoundError(f"WorkflowExecutionLog with executionId {execution_id} not found")
        return execution_log

    async def get_log_entries(self, execution_id: str) -> list[LogEntry]:
        """Entries of one execution in write order."""
        execution_log = await self.get_by_execution_id(execution_id)
        result = await self.db.execute(
            select(LogEntry)
            .where(LogEntry.execution_log_id == execution_log.id)
            .order_by(LogEntry.timestamp.asc(), LogEntry.sequence.asc())
        )
        return list(result.scalars().all())

    async def get_log_stats(self, recent: int = 5) -> dict:
        """Counts per status plus the most recent logs."""
        total = await self.count()
        running = await self.count({"status": LogStatus.RUNNING.value})
        completed = await self.count({"status": LogStatus.COMPLETED.value})
        failed = await self.count({"status": LogStatus.FAILED.value})
        recent_logs, _ = await self.list(limit=recent, order_by="start_time", order_desc=True)
        return {
            "total_count": total,
            "running_count": running,
            "completed_count": completed,
            "failed_count": failed,
            "recent_logs": list(recent_logs),
        }
