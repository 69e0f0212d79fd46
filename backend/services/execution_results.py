"""Plain results returned by the execution store and orchestrator.

The API layer turns these into its response schemas.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from db.models.execution import NodeExecutionStateRecord
from db.models.execution_log import LogEntry


@dataclass
class ExecutionLogDetail:
    id: str
    status: str
    start_time: datetime
    end_time: Optional[datetime] = None
    entries: list[LogEntry] = field(default_factory=list)


@dataclass
class ExecutionDetail:
    """A workflow execution joined with its node state rows and audit log."""

    id: str
    workflow_id: str
    state: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    started_by: Optional[str] = None
    variables: dict[str, Any] = field(default_factory=dict)
    logs: list[dict[str, Any]] = field(default_factory=list)
    output: Any = None
    error: Optional[str] = None
    node_states: dict[str, NodeExecutionStateRecord] = field(default_factory=dict)
    execution_log: Optional[ExecutionLogDetail] = None


@dataclass
class OperationResult:
    """Outcome of an orchestrator call.

    ``status_code`` tells the HTTP layer how to report a failure.
    """

    success: bool
    error: Optional[str] = None
    status_code: int = 200


@dataclass
class ExecuteWorkflowResult(OperationResult):
    execution_id: Optional[str] = None


@dataclass
class ExecutionStatusResult(OperationResult):
    data: Optional[ExecutionDetail] = None


@dataclass
class CancelExecutionResult(OperationResult):
    message: Optional[str] = None
