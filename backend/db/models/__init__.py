"""Database models for the workflow execution engine.

This module imports all models to ensure they are registered
with SQLAlchemy's declarative base.
"""

from db.models.workflow import WorkflowDefinition
from db.models.agent import AgentDefinition
from db.models.execution import WorkflowExecution, NodeExecutionStateRecord
from db.models.execution_log import WorkflowExecutionLog, LogEntry

__all__ = [
    "WorkflowDefinition",
    "AgentDefinition",
    "WorkflowExecution",
    "NodeExecutionStateRecord",
    "WorkflowExecutionLog",
    "LogEntry",
]
