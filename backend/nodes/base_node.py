"""
Base interface for node executors.

Every node kind (start, stop, log message, condition, agent task, ...)
has one executor that inherits from BaseNodeExecutor and implements
execute(). Executors raise on failure; retries and failure routing are
the graph walker's job.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Dict

import structlog

from workflow.context import ExecutionContextManager
from workflow.schema import Node

logger = structlog.get_logger(__name__)


class BaseNodeExecutor(ABC):
    """
    Abstract base class for all node executors.

    Subclasses must implement:
    - execute(node, manager) -> dict
    - node_type (class property)
    - display_name (class property)
    """

    node_type: str = "base"
    display_name: str = "Base Node"
    description: str = "Abstract base node"

    @abstractmethod
    async def execute(self, node: Node, manager: ExecutionContextManager) -> Dict[str, Any]:
        """
        Execute the node.

        Args:
            node: Node definition (id, type, data)
            manager: Context manager of the running execution

        Returns:
            Result dict, at least ``{"success": True}``
        """
        pass

    async def run(self, node: Node, manager: ExecutionContextManager) -> Dict[str, Any]:
        """
        Run the executor with timing.

        This is the entry point called by the graph walker. Errors are
        logged and re-raised.
        """
        start = time.monotonic()
        try:
            result = await self.execute(node, manager)
        except Exception as e:
            logger.warning(
                "Node executor failed",
                node_id=node.id,
                node_type=node.type,
                error=str(e),
                duration_ms=round((time.monotonic() - start) * 1000, 2),
                execution_id=manager.execution_id,
            )
            raise

        logger.debug(
            "Node executor finished",
            node_id=node.id,
            node_type=node.type,
            duration_ms=round((time.monotonic() - start) * 1000, 2),
            execution_id=manager.execution_id,
        )
        return result
