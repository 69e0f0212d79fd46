"""Workflow execution and per-node state models."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import ExecutionState, NodeState
from db.base import BaseModel


class WorkflowExecution(BaseModel):
    """One run of a workflow definition.

    Attributes:
        id: Execution id (UUID string)
        workflow_id: Workflow that is being run
        state: Pending, Running, Completed, Failed or Canceled
        started_at: When the run was requested
        completed_at: When the run reached a terminal state
        started_by: Acting user/principal
        variables: Variable bag at the end of the run
        logs: Lightweight in-memory log lines, persisted on finalization
        output: Payload set by a Stop node
        error: Terminal error message if Failed
    """

    __tablename__ = "workflow_executions"

    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("workflow_definitions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    state: Mapped[str] = mapped_column(
        default=ExecutionState.PENDING.value, index=True
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    started_by: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    variables: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    logs: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    output: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    node_states: Mapped[list["NodeExecutionStateRecord"]] = relationship(
        "NodeExecutionStateRecord",
        back_populates="execution",
        cascade="all, delete-orphan",
        lazy="noload",
    )


class NodeExecutionStateRecord(BaseModel):
    """State of one node inside one execution.

    One row per ``(execution_id, node_id)``; sibling branches update
    their own rows so they never overwrite each other.
    """

    __tablename__ = "node_execution_states"
    __table_args__ = (
        UniqueConstraint("execution_id", "node_id", name="uq_node_state_execution_node"),
    )

    execution_id: Mapped[str] = mapped_column(
        ForeignKey("workflow_executions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    node_id: Mapped[str] = mapped_column(nullable=False)
    state: Mapped[str] = mapped_column(default=NodeState.PENDING.value)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    output: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)

    execution: Mapped["WorkflowExecution"] = relationship(
        "WorkflowExecution", back_populates="node_states", lazy="select"
    )
