"""Workflow execution log schemas."""

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import List, Optional


class WorkflowLogResponse(BaseModel):
    """One execution's audit log header."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Execution log ID")
    workflow_id: str = Field(description="Workflow ID")
    execution_id: str = Field(description="Execution ID")
    status: str = Field(description="Running, Completed or Failed")
    start_time: datetime = Field(description="When the execution was requested")
    end_time: Optional[datetime] = Field(default=None, description="When the log was closed")


class WorkflowLogListResponse(BaseModel):
    """Paginated list of execution logs."""

    logs: List[WorkflowLogResponse] = Field(description="Logs, newest first")
    total: int = Field(description="Total number of matching logs")


class WorkflowLogStats(BaseModel):
    """Execution log counts by status."""

    total_count: int
    running_count: int
    completed_count: int
    failed_count: int
    recent_logs: List[WorkflowLogResponse] = Field(default_factory=list)
