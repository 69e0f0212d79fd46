"""Control-flow node executors: start, stop and the passthrough default."""

from typing import Any, Dict

from core.constants import NodeType
from nodes.base_node import BaseNodeExecutor
from workflow.context import ExecutionContextManager
from workflow.schema import Node

DEFAULT_STOP_OUTPUT = "Workflow completed"


class StartNodeExecutor(BaseNodeExecutor):
    """Entry point of every workflow. Does nothing."""

    node_type = NodeType.START.value
    display_name = "Start"
    description = "Entry point of the workflow"

    async def execute(self, node: Node, manager: ExecutionContextManager) -> Dict[str, Any]:
        return {"success": True}


class StopNodeExecutor(BaseNodeExecutor):
    """Ends a branch and sets the execution output."""

    node_type = NodeType.STOP.value
    display_name = "Stop"
    description = "Ends the branch and records the workflow output"

    async def execute(self, node: Node, manager: ExecutionContextManager) -> Dict[str, Any]:
        output = node.data.get("output") or DEFAULT_STOP_OUTPUT
        manager.set_output(output)
        return {"success": True, "message": "Workflow execution completed"}


class PassthroughNodeExecutor(BaseNodeExecutor):
    """Used for any node type without a dedicated executor."""

    node_type = "default"
    display_name = "Passthrough"
    description = "Unknown node types succeed without doing anything"

    async def execute(self, node: Node, manager: ExecutionContextManager) -> Dict[str, Any]:
        return {"success": True}

