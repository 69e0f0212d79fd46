"""Custom exceptions for the workflow execution engine."""

from typing import Optional


class EngineException(Exception):
    """Base exception for the workflow execution engine."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code.

        Args:
            message: Exception message
            status_code: HTTP status code
        """
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(EngineException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize NotFoundError with 404 status code."""
        super().__init__(message, 404)


class ValidationError(EngineException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation failed"):
        """Initialize ValidationError with 422 status code."""
        super().__init__(message, 422)


class ExecutionStateError(EngineException):
    """Operation not allowed in the execution's current state."""

    def __init__(self, message: str = "Invalid execution state"):
        """Initialize ExecutionStateError with 409 status code."""
        super().__init__(message, 409)


class WorkflowDefinitionError(ValidationError):
    """The workflow definition itself is broken.

    Raised for a missing Start node, a Condition without an expression,
    an AgentTask without agentId/taskPrompt, dangling edges and cycles.
    Never retried and never swallowed by continueOnFailure.
    """


class ExpressionError(EngineException):
    """A condition expression could not be parsed or evaluated."""

    def __init__(self, message: str):
        super().__init__(message, 422)


class AgentError(EngineException):
    """Calling an external agent failed."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message, status_code)


class AgentTimeoutError(AgentError):
    """The agent did not answer within the node's timeout."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Agent task timed out after {_format_seconds(timeout)} seconds", 504)


class AgentRequestError(AgentError):
    """The agent endpoint answered with an error or could not be reached."""


class ExecutionCanceledError(EngineException):
    """The execution was canceled while the walk was still running."""

    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        super().__init__(f"Execution {execution_id} was canceled", 409)


class NodeExecutionError(EngineException):
    """A node failed after its retries were exhausted."""

    def __init__(self, node_id: str, cause: Optional[BaseException] = None):
        self.node_id = node_id
        self.cause = cause
        message = str(cause) if cause is not None else f"Node {node_id} failed"
        super().__init__(message, 500)


def _format_seconds(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)
