"""Durable execution state.

Every method opens its own session from the session factory, so
concurrently running branches of one execution never share a session.
Node states live in their own rows keyed by ``(execution_id, node_id)``
and are merged one row at a time.

Writes that arrive for an execution that already reached a terminal
state (typically a branch finishing after a cancel) are logged and
ignored. Log entries are still appended so the audit trail shows what
happened after the cancel.
"""

import asyncio
import itertools
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Iterable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import (
    SYSTEM_NODE_ID,
    ExecutionState,
    LogLevel,
    LogStatus,
    NodeState,
)
from core.exceptions import ExecutionStateError, NotFoundError
from db.base import utcnow
from db.models.agent import AgentDefinition
from db.models.execution import NodeExecutionStateRecord, WorkflowExecution
from db.models.execution_log import LogEntry, WorkflowExecutionLog
from db.models.workflow import WorkflowDefinition
from services.execution_results import ExecutionDetail, ExecutionLogDetail
from workflow.context import NodeExecutionState

logger = structlog.get_logger(__name__)

# Tie-breaker for log entries written within the same clock tick
_log_sequence = itertools.count(1)

_TERMINAL_STATES = {
    ExecutionState.COMPLETED.value,
    ExecutionState.FAILED.value,
    ExecutionState.CANCELED.value,
}


def _json_safe(value: Any) -> Any:
    """Convert datetimes nested in ``value`` so it fits a JSON column."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


class ExecutionStore:
    """Persistence boundary of the engine."""

    def __init__(self, session_factory):
        self._session_factory = session_factory
        bind = getattr(session_factory, "kw", {}).get("bind")
        dialect = getattr(getattr(bind, "dialect", None), "name", "")
        # SQLite allows a single writer; queue writers instead of failing with "database is locked"
        self._write_lock: Optional[asyncio.Lock] = asyncio.Lock() if dialect == "sqlite" else None

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            yield session

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        if self._write_lock is None:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
            return
        async with self._write_lock:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session

    # ─── Definitions ───────────────────────────────────────

    async def load_workflow(self, workflow_id: str) -> WorkflowDefinition:
        async with self._session() as session:
            workflow = await session.get(WorkflowDefinition, workflow_id)
        if workflow is None:
            raise NotFoundError(f"Workflow with ID {workflow_id} not found")
        return workflow

    async def load_agent(self, agent_id: str) -> AgentDefinition:
        async with self._session() as session:
            agent = await session.get(AgentDefinition, agent_id)
        if agent is None:
            raise NotFoundError(f"Agent with ID {agent_id} not found")
        return agent

    # ─── Executions ────────────────────────────────────────

    async def create_execution(
        self,
        execution_id: str,
        workflow_id: str,
        started_by: Optional[str],
    ) -> tuple[WorkflowExecution, WorkflowExecutionLog]:
        """Insert a Pending execution and its Running audit log together."""
        now = utcnow()
        async with self._transaction() as session:
            execution = WorkflowExecution(
                id=execution_id,
                workflow_id=workflow_id,
                state=ExecutionState.PENDING.value,
                started_at=now,
                started_by=started_by,
                variables={},
                logs=[],
            )
            session.add(execution)
            await session.flush()
            execution_log = WorkflowExecutionLog(
                workflow_id=workflow_id,
                execution_id=execution_id,
                status=LogStatus.RUNNING.value,
                start_time=now,
            )
            session.add(execution_log)
        return execution, execution_log

    async def get_execution(self, execution_id: str) -> WorkflowExecution:
        async with self._session() as session:
            execution = await session.get(WorkflowExecution, execution_id)
        if execution is None:
            raise NotFoundError(f"Execution with ID {execution_id} not found")
        return execution

    async def get_execution_log(self, execution_id: str) -> WorkflowExecutionLog:
        async with self._session() as session:
            result = await session.execute(
                select(WorkflowExecutionLog).where(
                    WorkflowExecutionLog.execution_id == execution_id
                )
            )
            execution_log = result.scalar_one_or_none()
        if execution_log is None:
            raise NotFoundError(
                f"WorkflowExecutionLog with executionId {execution_id} not found"
            )
        return execution_log

    async def mark_running(self, execution_id: str) -> bool:
        """Pending -> Running. Returns False if the execution is no longer Pending."""
        async with self._transaction() as session:
            execution = await session.get(WorkflowExecution, execution_id)
            if execution is None:
                raise NotFoundError(f"Execution with ID {execution_id} not found")
            if execution.state != ExecutionState.PENDING.value:
                logger.warning(
                    "Execution is not pending, not starting it",
                    execution_id=execution_id,
                    state=execution.state,
                )
                return False
            execution.state = ExecutionState.RUNNING.value
        return True

    async def finalize_execution(
        self,
        execution_id: str,
        state: ExecutionState,
        variables: Optional[dict] = None,
        logs: Optional[list] = None,
        output: Any = None,
        error: Optional[str] = None,
        node_states: Optional[Iterable[NodeExecutionState]] = None,
    ) -> bool:
        """Move the execution to Completed or Failed and close its log.

        Returns False without writing anything when the execution is
        already terminal, so a cancel is never overwritten.
        """
        now = utcnow()
        async with self._transaction() as session:
            execution = await session.get(WorkflowExecution, execution_id)
            if execution is None:
                raise NotFoundError(f"Execution with ID {execution_id} not found")
            if execution.state in _TERMINAL_STATES:
                logger.info(
                    "Execution already terminal, keeping its state",
                    execution_id=execution_id,
                    state=execution.state,
                    attempted_state=state.value,
                )
                return False

            execution.state = state.value
            execution.completed_at = now
            if variables is not None:
                execution.variables = _json_safe(variables)
            if logs is not None:
                execution.logs = _json_safe(logs)
            if output is not None:
                execution.output = _json_safe(output)
            if error is not None:
                execution.error = error

            for node_state in node_states or ():
                await self._merge_node_state(session, execution_id, node_state)

            await self._set_log_status(
                session,
                execution_id,
                LogStatus.COMPLETED if state == ExecutionState.COMPLETED else LogStatus.FAILED,
                now,
            )
        return True

    async def cancel_execution(self, execution_id: str) -> WorkflowExecution:
        """Pending/Running -> Canceled, close the log as Failed and record why.

        Raises:
            NotFoundError: Unknown execution
            ExecutionStateError: The execution already finished
        """
        now = utcnow()
        async with self._transaction() as session:
            execution = await session.get(WorkflowExecution, execution_id)
            if execution is None:
                raise NotFoundError(f"Execution with ID {execution_id} not found")
            if execution.state in _TERMINAL_STATES:
                raise ExecutionStateError(f"Execution is already in state {execution.state}")

            execution.state = ExecutionState.CANCELED.value
            execution.completed_at = now
            execution_log = await self._set_log_status(session, execution_id, LogStatus.FAILED, now)
            if execution_log is not None:
                session.add(
                    self._new_entry(
                        execution_log.id,
                        node_id=SYSTEM_NODE_ID,
                        node_type=SYSTEM_NODE_ID,
                        level=LogLevel.WARN,
                        message="Workflow execution was canceled",
                        data={"reason": "User canceled the execution"},
                    )
                )
        return execution

    # ─── Node states ───────────────────────────────────────

    async def init_node_states(self, execution_id: str, node_ids: Iterable[str]) -> None:
        """Create a Pending row per node."""
        async with self._transaction() as session:
            for node_id in node_ids:
                session.add(
                    NodeExecutionStateRecord(
                        execution_id=execution_id,
                        node_id=node_id,
                        state=NodeState.PENDING.value,
                    )
                )

    async def upsert_node_state(self, execution_id: str, state: NodeExecutionState) -> bool:
        """Merge one node's state. Ignored once the execution is terminal."""
        async with self._transaction() as session:
            execution = await session.get(WorkflowExecution, execution_id)
            if execution is None:
                raise NotFoundError(f"Execution with ID {execution_id} not found")
            if execution.state in _TERMINAL_STATES:
                logger.warning(
                    "Ignoring stale node state write",
                    execution_id=execution_id,
                    node_id=state.node_id,
                    node_state=state.state.value,
                    execution_state=execution.state,
                )
                return False
            await self._merge_node_state(session, execution_id, state)
        return True

    async def _merge_node_state(
        self,
        session: AsyncSession,
        execution_id: str,
        state: NodeExecutionState,
    ) -> None:
        result = await session.execute(
            select(NodeExecutionStateRecord).where(
                NodeExecutionStateRecord.execution_id == execution_id,
                NodeExecutionStateRecord.node_id == state.node_id,
            )
        )
        record = result.scalar_one_or_none()
        if record is None:
            record = NodeExecutionStateRecord(execution_id=execution_id, node_id=state.node_id)
            session.add(record)
        record.state = state.state.value
        record.started_at = state.started_at
        record.completed_at = state.completed_at
        record.error = state.error
        record.output = _json_safe(state.output)

    async def get_node_states(self, execution_id: str) -> list[NodeExecutionStateRecord]:
        async with self._session() as session:
            result = await session.execute(
                select(NodeExecutionStateRecord)
                .where(NodeExecutionStateRecord.execution_id == execution_id)
                .order_by(NodeExecutionStateRecord.created_at.asc())
            )
            return list(result.scalars().all())

    # ─── Audit log ─────────────────────────────────────────

    @staticmethod
    def _new_entry(
        execution_log_id: str,
        node_id: str,
        node_type: str,
        level: LogLevel,
        message: str,
        data: Optional[dict] = None,
    ) -> LogEntry:
        return LogEntry(
            execution_log_id=execution_log_id,
            node_id=node_id,
            node_type=node_type,
            level=level.value,
            message=message,
            data=_json_safe(data) if data is not None else None,
            timestamp=utcnow(),
            sequence=next(_log_sequence),
        )

    async def append_log_entry(
        self,
        execution_log_id: str,
        node_id: str,
        node_type: str,
        level: LogLevel,
        message: str,
        data: Optional[dict] = None,
    ) -> None:
        entry = self._new_entry(execution_log_id, node_id, node_type, level, message, data)
        async with self._transaction() as session:
            session.add(entry)

    async def _set_log_status(
        self,
        session: AsyncSession,
        execution_id: str,
        status: LogStatus,
        when: datetime,
    ) -> Optional[WorkflowExecutionLog]:
        result = await session.execute(
            select(WorkflowExecutionLog).where(WorkflowExecutionLog.execution_id == execution_id)
        )
        execution_log = result.scalar_one_or_none()
        if execution_log is None:
            logger.error("Execution log missing", execution_id=execution_id)
            return None
        execution_log.status = status.value
        if status in (LogStatus.COMPLETED, LogStatus.FAILED):
            execution_log.end_time = when
        return execution_log

    async def update_log_status(self, execution_id: str, status: LogStatus) -> None:
        async with self._transaction() as session:
            await self._set_log_status(session, execution_id, status, utcnow())

    async def get_log_entries(self, execution_log_id: str) -> list[LogEntry]:
        async with self._session() as session:
            result = await session.execute(
                select(LogEntry)
                .where(LogEntry.execution_log_id == execution_log_id)
                .order_by(LogEntry.timestamp.asc(), LogEntry.sequence.asc())
            )
            return list(result.scalars().all())

    # ─── Read model ────────────────────────────────────────

    async def get_execution_status(self, execution_id: str) -> ExecutionDetail:
        """Execution joined with its node states, log and ordered entries."""
        execution = await self.get_execution(execution_id)
        records = await self.get_node_states(execution_id)

        execution_log = None
        try:
            log_row = await self.get_execution_log(execution_id)
        except NotFoundError:
            log_row = None
        if log_row is not None:
            entries = await self.get_log_entries(log_row.id)
            execution_log = ExecutionLogDetail(
                id=log_row.id,
                status=log_row.status,
                start_time=log_row.start_time,
                end_time=log_row.end_time,
                entries=entries,
            )

        return ExecutionDetail(
            id=execution.id,
            workflow_id=execution.workflow_id,
            state=execution.state,
            started_at=execution.started_at,
            completed_at=execution.completed_at,
            started_by=execution.started_by,
            variables=execution.variables or {},
            logs=execution.logs or [],
            output=execution.output,
            error=execution.error,
            node_states={record.node_id: record for record in records},
            execution_log=execution_log,
        )
