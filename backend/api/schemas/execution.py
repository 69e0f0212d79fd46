"""Execution request/response schemas."""

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Any, Dict, List, Optional


class ExecuteWorkflowRequest(BaseModel):
    """Request to run a workflow."""

    variables: Dict[str, Any] = Field(
        default_factory=dict, description="Initial variables seeded before the walk"
    )


class NodeStateResponse(BaseModel):
    """State of one node within an execution."""

    model_config = ConfigDict(from_attributes=True)

    state: str = Field(description="Pending, Running, Completed, Failed or Skipped")
    started_at: Optional[datetime] = Field(default=None, description="First attempt start")
    completed_at: Optional[datetime] = Field(default=None, description="When the node settled")
    error: Optional[str] = Field(default=None, description="Error message if Failed")
    output: Optional[Any] = Field(default=None, description="Executor result")


class LogEntryResponse(BaseModel):
    """Durable log entry."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Log entry ID")
    node_id: str = Field(description="Node that wrote the entry, or 'system'")
    node_type: str = Field(description="Type of that node")
    level: str = Field(description="Info, Warn or Error")
    message: str = Field(description="Log message")
    data: Optional[dict] = Field(default=None, description="Additional context data")
    timestamp: datetime = Field(description="Log timestamp")


class ExecutionLogDetail(BaseModel):
    """Audit log of an execution with its ordered entries."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Execution log ID")
    status: str = Field(description="Running, Completed or Failed")
    start_time: datetime = Field(description="When the execution was requested")
    end_time: Optional[datetime] = Field(default=None, description="When the log was closed")
    entries: List[LogEntryResponse] = Field(default_factory=list, description="Ordered entries")


class ExecutionDetail(BaseModel):
    """A workflow execution with node states and audit log."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Execution ID")
    workflow_id: str = Field(description="Workflow ID")
    state: str = Field(description="Pending, Running, Completed, Failed or Canceled")
    started_at: Optional[datetime] = Field(default=None, description="Execution start timestamp")
    completed_at: Optional[datetime] = Field(default=None, description="Execution end timestamp")
    started_by: Optional[str] = Field(default=None, description="Acting user")
    variables: Dict[str, Any] = Field(default_factory=dict, description="Variable bag")
    logs: List[Dict[str, Any]] = Field(default_factory=list, description="Lightweight log lines")
    output: Optional[Any] = Field(default=None, description="Output set by a Stop node")
    error: Optional[str] = Field(default=None, description="Error message if Failed")
    node_states: Dict[str, NodeStateResponse] = Field(
        default_factory=dict, description="Per-node states keyed by node ID"
    )
    execution_log: Optional[ExecutionLogDetail] = Field(default=None, description="Audit log")


class OperationResponse(BaseModel):
    """Outcome of an orchestrator call."""

    model_config = ConfigDict(from_attributes=True)

    success: bool
    error: Optional[str] = None


class ExecuteWorkflowResponse(OperationResponse):
    execution_id: Optional[str] = None


class ExecutionStatusResponse(OperationResponse):
    data: Optional[ExecutionDetail] = None


class CancelExecutionResponse(OperationResponse):
    message: Optional[str] = None
