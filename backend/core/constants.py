"""Constants and enums for the workflow execution engine."""

from enum import Enum
from typing import Optional


class ExecutionState(str, Enum):
    """Workflow execution state."""

    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELED = "Canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ExecutionState.COMPLETED,
            ExecutionState.FAILED,
            ExecutionState.CANCELED,
        )


class NodeState(str, Enum):
    """Per-node execution state."""

    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    SKIPPED = "Skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (NodeState.COMPLETED, NodeState.FAILED, NodeState.SKIPPED)


class LogStatus(str, Enum):
    """Status of the durable execution log."""

    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"


class LogLevel(str, Enum):
    """Level of a durable log entry."""

    INFO = "Info"
    WARN = "Warn"
    ERROR = "Error"

    @classmethod
    def from_node_level(cls, level: Optional[str]) -> "LogLevel":
        """Map a LogMessage node's ``level`` (info/warn/error) to a LogLevel."""
        value = (level or "info").strip().lower()
        if value == "info":
            return cls.INFO
        if value in ("warn", "warning"):
            return cls.WARN
        return cls.ERROR


class NodeType(str, Enum):
    """Node kinds understood by the engine. Anything else is a passthrough."""

    START = "start"
    STOP = "stop"
    LOG_MESSAGE = "logMessage"
    CONDITION = "condition"
    AGENT_TASK = "agentTask"
    TASK = "task"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["NodeType"]:
        """Match a node type case-insensitively (``Start``, ``start``, ``LogMessage``)."""
        if not value:
            return None
        lowered = value.lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        return None


class AgentProvider(str, Enum):
    """External agent service flavours."""

    SUPERAGI = "SuperAGI"
    AUTOGEN = "AutoGen"
    OPENAI_ASSISTANT = "OpenAI_Assistant"
    CUSTOM = "Custom"


SYSTEM_NODE_ID = "system"

# Edge handles used by Condition nodes
TRUE_HANDLE = "true"
FALSE_HANDLE = "false"
