"""Generic Task node."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog

from core.constants import NodeType
from db.base import utcnow
from nodes.base_node import BaseNodeExecutor
from workflow.context import ExecutionContextManager
from workflow.schema import Node

logger = structlog.get_logger(__name__)

TaskHook = Callable[[Node, ExecutionContextManager], Awaitable[Any]]


class TaskNodeExecutor(BaseNodeExecutor):
    """Run a unit of work and record that it completed.

    Without a hook the work is simulated with a fixed delay. A hook is an
    ``async (node, manager) -> Any`` callable; whatever it returns is
    reported as ``result``.
    """

    node_type = NodeType.TASK.value
    display_name = "Task"
    description = "Generic unit of work"

    def __init__(self, delay: float = 1.0, hook: Optional[TaskHook] = None):
        self._delay = delay
        self._hook = hook

    async def execute(self, node: Node, manager: ExecutionContextManager) -> Dict[str, Any]:
        task_name = node.data.get("taskName")
        label = task_name or "Unnamed task"

        logger.info(
            f"Executing task: {label}",
            node_id=node.id,
            priority=node.data.get("priority", "medium"),
            execution_id=manager.execution_id,
        )
        manager.note(node.id, f"Executing task: {label}")

        hook_result = None
        if self._hook is not None:
            hook_result = await self._hook(node, manager)
        elif self._delay > 0:
            await asyncio.sleep(self._delay)

        variable = node.data.get("var")
        if variable:
            manager.set_variable(
                variable,
                {
                    "taskName": task_name,
                    "status": "completed",
                    "timestamp": utcnow().isoformat(),
                },
                node.id,
            )

        result: Dict[str, Any] = {"success": True, "taskName": task_name, "status": "completed"}
        if hook_result is not None:
            result["result"] = hook_result
        return result

