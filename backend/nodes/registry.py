"""
Node executor registry: maps node types to their executors.

Lookup is case-insensitive (``Start``/``start``, ``AgentTask``/``agentTask``).
Types without an executor fall back to a passthrough that always
succeeds, so unknown nodes never abort a workflow.
"""

from typing import Optional

import httpx

from app.config import Settings, get_settings
from core.constants import NodeType
from nodes.base_node import BaseNodeExecutor
from nodes.implementations.agent_task import AgentLoader, AgentTaskNodeExecutor
from nodes.implementations.condition import ConditionNodeExecutor
from nodes.implementations.control import (
    PassthroughNodeExecutor,
    StartNodeExecutor,
    StopNodeExecutor,
)
from nodes.implementations.log_message import LogMessageNodeExecutor
from nodes.implementations.task import TaskHook, TaskNodeExecutor


class NodeExecutorRegistry:
    """Central registry of node executor instances."""

    def __init__(self, default: Optional[BaseNodeExecutor] = None):
        self._executors: dict[str, BaseNodeExecutor] = {}
        self._default = default or PassthroughNodeExecutor()

    @staticmethod
    def _key(node_type: Optional[str]) -> str:
        return (node_type or "").lower()

    def register(self, node_type: str, executor: BaseNodeExecutor) -> None:
        """Register (or replace) the executor for a node type."""
        self._executors[self._key(node_type)] = executor

    def get(self, node_type: Optional[str]) -> BaseNodeExecutor:
        """Executor for ``node_type``, or the passthrough default."""
        return self._executors.get(self._key(node_type), self._default)

    def list_all(self) -> list:
        """List all registered node types with metadata."""
        return [
            {
                "node_type": executor.node_type,
                "display_name": executor.display_name,
                "description": executor.description,
            }
            for executor in self._executors.values()
        ]

    @property
    def available_types(self) -> list:
        return [executor.node_type for executor in self._executors.values()]


def create_node_registry(
    agent_loader: AgentLoader,
    http_client: httpx.AsyncClient,
    settings: Optional[Settings] = None,
    task_hook: Optional[TaskHook] = None,
) -> NodeExecutorRegistry:
    """Registry with all built-in node executors wired to their dependencies."""
    settings = settings or get_settings()
    registry = NodeExecutorRegistry()
    registry.register(NodeType.START.value, StartNodeExecutor())
    registry.register(NodeType.STOP.value, StopNodeExecutor())
    registry.register(NodeType.LOG_MESSAGE.value, LogMessageNodeExecutor())
    registry.register(NodeType.CONDITION.value, ConditionNodeExecutor())
    registry.register(
        NodeType.AGENT_TASK.value,
        AgentTaskNodeExecutor(
            agent_loader,
            http_client,
            default_timeout=settings.AGENT_DEFAULT_TIMEOUT,
            model=settings.AGENT_DEFAULT_MODEL,
        ),
    )
    registry.register(
        NodeType.TASK.value,
        TaskNodeExecutor(delay=settings.TASK_SIMULATED_DELAY, hook=task_hook),
    )
    return registry
