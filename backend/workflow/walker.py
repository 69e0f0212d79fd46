"""Graph walker: recursive, concurrent interpreter for workflow graphs.

Starting from the Start node, each node is run through its executor
and then the walk continues along the node's outgoing edges:

- Edges guarded by ``data.condition`` are followed only when the guard
  is true; otherwise the target is marked Skipped.
- Condition nodes follow only the edges whose ``sourceHandle`` matches
  the result ("true"/"false"); edges without a handle always match.
  ``data.condition`` guards are not consulted on these edges.
- Several eligible edges fan out concurrently and the parent waits for
  every child branch to settle before returning (wait-all).
- A failing node is retried ``data.retries`` times with a fixed
  ``data.backoffSeconds`` pause. Once retries are exhausted the node is
  Failed; with ``data.continueOnFailure`` its children still run,
  otherwise the error unwinds the walk.
- Stop nodes end their branch.
- Each node runs at most once per execution, even when several edges
  lead to it.
"""

import asyncio
from typing import Any, Optional

import structlog

from app.config import Settings, get_settings
from core.constants import FALSE_HANDLE, TRUE_HANDLE, LogLevel, NodeType
from core.exceptions import (
    ExecutionCanceledError,
    NodeExecutionError,
    WorkflowDefinitionError,
)
from nodes.registry import NodeExecutorRegistry
from workflow.context import ExecutionContextManager
from workflow.schema import Edge, Node, WorkflowGraph

logger = structlog.get_logger(__name__)


class GraphWalker:
    """Drives one execution's graph from a start node to every leaf."""

    def __init__(self, registry: NodeExecutorRegistry, settings: Optional[Settings] = None):
        self._registry = registry
        self._settings = settings or get_settings()

    @property
    def registry(self) -> NodeExecutorRegistry:
        return self._registry

    async def walk(
        self,
        graph: WorkflowGraph,
        start: Node,
        manager: ExecutionContextManager,
    ) -> dict[str, Any]:
        """Run the whole graph reachable from ``start``."""
        manager.claim(start.id)
        return await self.execute_node(start, graph, manager)

    # ─── Single node ───────────────────────────────────────

    def _backoff_seconds(self, node: Node) -> float:
        value = node.data.get("backoffSeconds")
        if value is None:
            return self._settings.DEFAULT_BACKOFF_SECONDS
        return max(float(value), 0.0)

    async def execute_node(
        self,
        node: Node,
        graph: WorkflowGraph,
        manager: ExecutionContextManager,
    ) -> dict[str, Any]:
        """Execute ``node`` with retries, then walk its children.

        Returns:
            The executor's result, or ``{"success": False, "error": ...}``
            when the node failed but ``continueOnFailure`` is set

        Raises:
            NodeExecutionError: The node failed after all retries
            WorkflowDefinitionError: The node is misconfigured (never retried)
            ExecutionCanceledError: The execution was canceled
        """
        executor = self._registry.get(node.type)
        max_retries = node.retries
        retry_count = 0

        while True:
            manager.ensure_not_cancelled()
            await manager.start_node(node.id)
            await manager.log(
                node.id,
                node.type,
                LogLevel.INFO,
                f"Executing node: {node.id} ({node.type})",
                {"nodeData": node.data},
            )

            try:
                result = await executor.run(node, manager)
                break
            except (WorkflowDefinitionError, ExecutionCanceledError) as e:
                await self._record_error(node, manager, e)
                await manager.fail_node(node.id, str(e))
                raise
            except Exception as e:
                await self._record_error(node, manager, e)

                if retry_count < max_retries:
                    retry_count += 1
                    await manager.log(
                        node.id,
                        node.type,
                        LogLevel.INFO,
                        f"Retrying node: attempt {retry_count} of {max_retries}",
                        {"retryCount": retry_count, "maxRetries": max_retries},
                    )
                    await asyncio.sleep(self._backoff_seconds(node))
                    continue

                error = str(e)
                await manager.fail_node(node.id, error)

                if node.continue_on_failure:
                    logger.warning(
                        "Node failed, continuing with its children",
                        node_id=node.id,
                        error=error,
                        execution_id=manager.execution_id,
                    )
                    await self._follow_edges(node, graph.outgoing_edges(node.id), graph, manager)
                    return {"success": False, "error": error}

                raise NodeExecutionError(node.id, e) from e

        await manager.complete_node(node.id, result)

        kind = node.kind
        if kind == NodeType.STOP:
            if graph.outgoing_edges(node.id):
                logger.warning(
                    "Ignoring edges leaving a stop node",
                    node_id=node.id,
                    execution_id=manager.execution_id,
                )
            return result

        if kind == NodeType.CONDITION:
            await self._follow_condition(node, bool(result.get("conditionResult")), graph, manager)
        else:
            await self._follow_edges(node, graph.outgoing_edges(node.id), graph, manager)
        return result

    async def _record_error(
        self,
        node: Node,
        manager: ExecutionContextManager,
        error: Exception,
    ) -> None:
        logger.error(
            "Error executing node",
            node_id=node.id,
            node_type=node.type,
            error=str(error),
            execution_id=manager.execution_id,
        )
        await manager.log(
            node.id,
            node.type,
            LogLevel.ERROR,
            f"Error executing node: {error}",
            {"error": str(error)},
        )

    # ─── Edges ─────────────────────────────────────────────

    async def _follow_condition(
        self,
        node: Node,
        condition_result: bool,
        graph: WorkflowGraph,
        manager: ExecutionContextManager,
    ) -> None:
        """Follow the edges of the branch a Condition node selected.

        Targets behind the other handle are marked Skipped once the selected
        branch has settled, and only if that branch never reached them.
        """
        handle = TRUE_HANDLE if condition_result else FALSE_HANDLE
        selected: list[Edge] = []
        unselected: list[str] = []
        for edge in graph.outgoing_edges(node.id):
            edge_handle = edge.source_handle
            if edge_handle is None or str(edge_handle).lower() == handle:
                selected.append(edge)
            else:
                unselected.append(edge.target)

        await self._follow_edges(node, selected, graph, manager, apply_guards=False)

        for target_id in unselected:
            await manager.skip_node(target_id)

    async def _follow_edges(
        self,
        node: Node,
        edges: list[Edge],
        graph: WorkflowGraph,
        manager: ExecutionContextManager,
        apply_guards: bool = True,
    ) -> None:
        targets: list[Node] = []
        for edge in edges:
            target = graph.get_node(edge.target)
            if target is None:
                raise WorkflowDefinitionError(f"Next node with ID {edge.target} not found")

            guard = edge.condition if apply_guards else None
            if guard is not None:
                allowed = await manager.evaluate(guard, node.id, node.type)
                if not allowed:
                    if await manager.skip_node(target.id):
                        logger.info(
                            "Edge condition false, skipping node",
                            edge_id=edge.id,
                            node_id=target.id,
                            execution_id=manager.execution_id,
                        )
                    continue

            if manager.claim(target.id):
                targets.append(target)

        await self._fan_out(targets, graph, manager)

    async def _fan_out(
        self,
        targets: list[Node],
        graph: WorkflowGraph,
        manager: ExecutionContextManager,
    ) -> None:
        """Run child branches concurrently and wait for all of them."""
        if not targets:
            return
        if len(targets) == 1:
            await self.execute_node(targets[0], graph, manager)
            return

        results = await asyncio.gather(
            *[self.execute_node(target, graph, manager) for target in targets],
            return_exceptions=True,
        )
        for outcome in results:
            if isinstance(outcome, BaseException):
                raise outcome
