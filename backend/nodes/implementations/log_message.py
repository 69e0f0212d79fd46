"""LogMessage node: writes an interpolated line to the execution log."""

from typing import Any, Dict

import structlog

from core.constants import LogLevel, NodeType
from nodes.base_node import BaseNodeExecutor
from workflow.context import ExecutionContextManager
from workflow.interpolation import interpolate
from workflow.schema import Node

logger = structlog.get_logger(__name__)

LOG_MESSAGE_ENTRY_TYPE = "LOG_MESSAGE"


class LogMessageNodeExecutor(BaseNodeExecutor):
    """Emit ``data.message`` at ``data.level`` (info, warn or error).

    Placeholders like ``${order.id}`` are resolved against the current
    variables before the line is written.
    """

    node_type = NodeType.LOG_MESSAGE.value
    display_name = "Log Message"
    description = "Write a message to the execution log"

    async def execute(self, node: Node, manager: ExecutionContextManager) -> Dict[str, Any]:
        original = node.data.get("message")
        if original is not None and not isinstance(original, str):
            original = str(original)
        message = interpolate(original, manager.variables)
        level = LogLevel.from_node_level(node.data.get("level"))

        logger.info(
            message or "Log message node executed",
            node_id=node.id,
            entry_level=level.value,
            execution_id=manager.execution_id,
            workflow_id=manager.workflow_id,
        )
        await manager.log(
            node.id,
            LOG_MESSAGE_ENTRY_TYPE,
            level,
            message or "",
            {"originalMessage": original},
        )
        return {"success": True, "message": message}

