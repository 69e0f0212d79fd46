"""Condition node: evaluates an expression to pick the true/false branch."""

from typing import Any, Dict

from core.constants import NodeType
from core.exceptions import WorkflowDefinitionError
from nodes.base_node import BaseNodeExecutor
from workflow.context import ExecutionContextManager
from workflow.schema import Node


class ConditionNodeExecutor(BaseNodeExecutor):
    """Evaluate ``data.condition``.

    The walker reads ``conditionResult`` and follows the outgoing edges
    whose ``sourceHandle`` is "true" or "false" accordingly. Evaluation
    errors count as False.
    """

    node_type = NodeType.CONDITION.value
    display_name = "Condition"
    description = "Branch on a boolean expression"

    async def execute(self, node: Node, manager: ExecutionContextManager) -> Dict[str, Any]:
        expression = node.data.get("condition")
        if expression is None or expression == "":
            raise WorkflowDefinitionError("Condition node requires a condition expression")

        result = await manager.evaluate(expression, node.id, node.type)
        manager.note(
            node.id,
            f"Condition '{expression}' evaluated to: {'true' if result else 'false'}",
        )
        return {"success": True, "conditionResult": result}

