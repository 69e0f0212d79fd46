"""Durable execution audit trail models."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import LogLevel, LogStatus
from db.base import BaseModel


class WorkflowExecutionLog(BaseModel):
    """Audit log header, one per execution.

    Attributes:
        id: Unique identifier (UUID string)
        workflow_id: Workflow that was run
        execution_id: The execution this log belongs to
        status: Running, Completed or Failed (cancellation is recorded as Failed)
        start_time: When the execution was requested
        end_time: Set when status becomes Completed or Failed
    """

    __tablename__ = "workflow_execution_logs"

    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("workflow_definitions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    execution_id: Mapped[str] = mapped_column(
        ForeignKey("workflow_executions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    status: Mapped[str] = mapped_column(default=LogStatus.RUNNING.value, index=True)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    entries: Mapped[list["LogEntry"]] = relationship(
        "LogEntry",
        back_populates="execution_log",
        cascade="all, delete-orphan",
        lazy="noload",
    )


class LogEntry(BaseModel):
    """A single audit line.

    ``sequence`` is a process-wide increasing counter that breaks ties
    between entries written within the same timestamp tick.
    """

    __tablename__ = "log_entries"

    execution_log_id: Mapped[str] = mapped_column(
        ForeignKey("workflow_execution_logs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    node_id: Mapped[str] = mapped_column(nullable=False)
    node_type: Mapped[str] = mapped_column(nullable=False)
    level: Mapped[str] = mapped_column(default=LogLevel.INFO.value, index=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    sequence: Mapped[int] = mapped_column(default=0)

    execution_log: Mapped["WorkflowExecutionLog"] = relationship(
        "WorkflowExecutionLog", back_populates="entries", lazy="select"
    )
