"""Execution context and state management.

``ExecutionContext`` is the mutable bag one run carries around:
variables, per-node states, lightweight log lines and the final output.
``ExecutionContextManager`` wraps it together with the durable store and
is the only thing node executors and the graph walker touch, so every
state transition is mirrored to the database as it happens.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

import structlog

from core.constants import LogLevel, NodeState
from core.exceptions import ExecutionCanceledError, ExecutionStateError
from db.base import utcnow
from workflow.conditions import check_condition

logger = structlog.get_logger(__name__)


# ─── Node State ───────────────────────────────────────────────

_ALLOWED_TRANSITIONS: dict[NodeState, set[NodeState]] = {
    NodeState.PENDING: {NodeState.RUNNING, NodeState.SKIPPED},
    # Running -> Running is a retry attempt
    NodeState.RUNNING: {NodeState.RUNNING, NodeState.COMPLETED, NodeState.FAILED},
    NodeState.COMPLETED: set(),
    NodeState.FAILED: set(),
    NodeState.SKIPPED: set(),
}


@dataclass
class NodeExecutionState:
    """State of a single node within one execution. Never regresses."""

    node_id: str
    state: NodeState = NodeState.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    output: Any = None
    attempts: int = 0

    def _move(self, target: NodeState) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.state]:
            raise ExecutionStateError(
                f"Node {self.node_id} cannot move from {self.state.value} to {target.value}"
            )
        self.state = target

    def start(self) -> None:
        self._move(NodeState.RUNNING)
        self.attempts += 1
        if self.started_at is None:
            self.started_at = utcnow()

    def complete(self, output: Any = None) -> None:
        self._move(NodeState.COMPLETED)
        self.output = output
        self.error = None
        self.completed_at = utcnow()

    def fail(self, error: str) -> None:
        self._move(NodeState.FAILED)
        self.error = error
        self.completed_at = utcnow()

    def skip(self) -> None:
        self._move(NodeState.SKIPPED)
        self.completed_at = utcnow()

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
            "output": self.output,
        }


# ─── Execution Context ────────────────────────────────────────

@dataclass
class ExecutionContext:
    """Shared state of one workflow run.

    Sibling branches run as separate asyncio tasks on the same loop and
    all mutate this object. Node states are only ever written by the
    branch that claimed the node; variables are last-write-wins.
    """

    execution_id: str
    workflow_id: str
    execution_log_id: Optional[str] = None
    variables: dict[str, Any] = field(default_factory=dict)
    node_states: dict[str, NodeExecutionState] = field(default_factory=dict)
    logs: list[dict[str, Any]] = field(default_factory=list)
    output: Any = None
    cancelled: bool = False
    claimed: set[str] = field(default_factory=set)
    variable_writers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def for_nodes(
        cls,
        execution_id: str,
        workflow_id: str,
        node_ids: list[str],
        execution_log_id: Optional[str] = None,
        variables: Optional[dict] = None,
    ) -> "ExecutionContext":
        """Fresh context with every node Pending."""
        return cls(
            execution_id=execution_id,
            workflow_id=workflow_id,
            execution_log_id=execution_log_id,
            variables=dict(variables or {}),
            node_states={node_id: NodeExecutionState(node_id) for node_id in node_ids},
        )

    def node_states_dict(self) -> dict[str, dict]:
        return {node_id: state.to_dict() for node_id, state in self.node_states.items()}


class ExecutionContextManager:
    """Mediates every change to an ExecutionContext.

    Durable writes are best-effort: a failing store is logged and the
    node carries on.
    """

    def __init__(self, context: ExecutionContext, store=None):
        self.context = context
        self._store = store

    @property
    def execution_id(self) -> str:
        return self.context.execution_id

    @property
    def workflow_id(self) -> str:
        return self.context.workflow_id

    @property
    def variables(self) -> dict[str, Any]:
        return self.context.variables

    # ─── Walk bookkeeping ──────────────────────────────────

    def claim(self, node_id: str) -> bool:
        """Reserve a node for execution. Only the first caller wins."""
        if node_id in self.context.claimed:
            return False
        self.context.claimed.add(node_id)
        return True

    def ensure_not_cancelled(self) -> None:
        if self.context.cancelled:
            raise ExecutionCanceledError(self.context.execution_id)

    def node_state(self, node_id: str) -> NodeExecutionState:
        state = self.context.node_states.get(node_id)
        if state is None:
            state = NodeExecutionState(node_id)
            self.context.node_states[node_id] = state
        return state

    # ─── Node transitions ──────────────────────────────────

    async def start_node(self, node_id: str) -> NodeExecutionState:
        state = self.node_state(node_id)
        state.start()
        await self._persist_node(state)
        return state

    async def complete_node(self, node_id: str, output: Any = None) -> NodeExecutionState:
        state = self.node_state(node_id)
        state.complete(output)
        await self._persist_node(state)
        return state

    async def fail_node(self, node_id: str, error: str) -> NodeExecutionState:
        state = self.node_state(node_id)
        state.fail(error)
        await self._persist_node(state)
        return state

    async def skip_node(self, node_id: str) -> bool:
        """Mark a node Skipped if nothing has started it yet.

        A skipped node is also claimed so a later edge cannot run it.
        """
        state = self.node_state(node_id)
        if state.state != NodeState.PENDING or node_id in self.context.claimed:
            return False
        self.context.claimed.add(node_id)
        state.skip()
        await self._persist_node(state)
        return True

    async def _persist_node(self, state: NodeExecutionState) -> None:
        if self._store is None:
            return
        try:
            await self._store.upsert_node_state(self.context.execution_id, state)
        except Exception as e:
            logger.error(
                "Failed to persist node state",
                error=str(e),
                execution_id=self.context.execution_id,
                node_id=state.node_id,
            )

    # ─── Logging ───────────────────────────────────────────

    def note(self, node_id: str, message: str, level: LogLevel = LogLevel.INFO) -> dict:
        """Append a line to the in-memory log only."""
        line = {
            "nodeId": node_id,
            "message": message,
            "level": level.value.lower(),
            "timestamp": utcnow().isoformat(),
        }
        self.context.logs.append(line)
        return line

    async def log(
        self,
        node_id: str,
        node_type: str,
        level: LogLevel,
        message: str,
        data: Optional[dict] = None,
    ) -> None:
        """Append to the in-memory log and the durable audit trail."""
        line = self.note(node_id, message, level)
        if self._store is None or not self.context.execution_log_id:
            return
        try:
            await self._store.append_log_entry(
                self.context.execution_log_id,
                node_id=node_id,
                node_type=node_type,
                level=level,
                message=message,
                data=data,
            )
        except Exception as e:
            logger.error(
                "Failed to write log entry",
                error=str(e),
                execution_id=self.context.execution_id,
                node_id=node_id,
                log_message=line["message"],
            )

    # ─── Variables & conditions ────────────────────────────

    def set_variable(self, key: str, value: Any, node_id: Optional[str] = None) -> None:
        """Write a variable. Overwrites by another node are allowed but logged."""
        previous_writer = self.context.variable_writers.get(key)
        if previous_writer is not None and node_id is not None and previous_writer != node_id:
            logger.warning(
                "Variable overwritten by another node",
                variable=key,
                previous_node_id=previous_writer,
                node_id=node_id,
                execution_id=self.context.execution_id,
            )
        if node_id is not None:
            self.context.variable_writers[key] = node_id
        self.context.variables[key] = value

    def get_variable(self, key: str, default: Any = None) -> Any:
        return self.context.variables.get(key, default)

    def set_output(self, output: Any) -> None:
        self.context.output = output

    async def evaluate(self, expression: Any, node_id: str, node_type: str) -> bool:
        """Evaluate a condition against current variables.

        Errors never escape: they are recorded as Error log entries and
        the condition counts as False.
        """
        result, error = check_condition(expression, self.context.variables)
        if error is not None:
            logger.error(
                "Error evaluating condition",
                condition=expression,
                error=error,
                execution_id=self.context.execution_id,
                node_id=node_id,
            )
            await self.log(
                node_id,
                node_type,
                LogLevel.ERROR,
                f"Error evaluating condition: {error}",
                {"condition": expression, "error": error},
            )
        return result
