"""Execution orchestrator: entry point for running workflows.

``execute_workflow`` records the execution synchronously and then runs
the graph walk as a background asyncio task; callers follow progress
through ``get_execution_status``. ``start_execution`` is the single
place where an error escaping the walk becomes the execution's terminal
Failed state.
"""

import asyncio
from typing import Any, Optional
from uuid import uuid4

import httpx
import structlog

from app.config import Settings, get_settings
from core.constants import ExecutionState
from core.exceptions import EngineException, ExecutionCanceledError
from core.logging_config import bind_execution, unbind_execution
from nodes.implementations.task import TaskHook
from nodes.registry import create_node_registry
from services.execution_results import (
    CancelExecutionResult,
    ExecuteWorkflowResult,
    ExecutionStatusResult,
)
from services.execution_store import ExecutionStore
from workflow.context import ExecutionContext, ExecutionContextManager
from workflow.schema import WorkflowGraph
from workflow.walker import GraphWalker

logger = structlog.get_logger(__name__)


class ExecutionService:
    """Creates, runs, cancels and reports workflow executions."""

    def __init__(
        self,
        store: ExecutionStore,
        walker: GraphWalker,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.walker = walker
        self.settings = settings or get_settings()
        self._running: dict[str, ExecutionContext] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    # ─── Run ───────────────────────────────────────────────

    async def execute_workflow(
        self,
        workflow_id: str,
        user_id: Optional[str],
        variables: Optional[dict[str, Any]] = None,
    ) -> ExecuteWorkflowResult:
        """Record a new execution and start walking it in the background.

        Only failing to create the execution records is reported here;
        everything after that surfaces through the execution's state.
        """
        execution_id = str(uuid4())
        try:
            await self.store.load_workflow(workflow_id)
            await self.store.create_execution(execution_id, workflow_id, user_id)
        except EngineException as e:
            logger.error("Failed to create execution", workflow_id=workflow_id, error=e.message)
            return ExecuteWorkflowResult(success=False, error=e.message, status_code=e.status_code)
        except Exception as e:
            logger.error("Failed to create execution", workflow_id=workflow_id, error=str(e))
            return ExecuteWorkflowResult(success=False, error=str(e), status_code=500)

        logger.info(
            "Workflow execution created",
            execution_id=execution_id,
            workflow_id=workflow_id,
            started_by=user_id,
        )
        task = asyncio.create_task(
            self._run_in_background(execution_id, workflow_id, variables),
            name=f"workflow-execution-{execution_id}",
        )
        self._tasks[execution_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(execution_id, None))
        return ExecuteWorkflowResult(success=True, execution_id=execution_id, status_code=202)

    async def _run_in_background(
        self,
        execution_id: str,
        workflow_id: str,
        variables: Optional[dict[str, Any]],
    ) -> None:
        try:
            await self.start_execution(execution_id, workflow_id, variables)
        except ExecutionCanceledError:
            logger.info("Workflow execution canceled", execution_id=execution_id)
        except Exception as e:
            logger.error("Workflow execution failed", execution_id=execution_id, error=str(e))
            # start_execution normally finalizes; this covers failures of the finalization itself
            try:
                await self.store.finalize_execution(execution_id, ExecutionState.FAILED, error=str(e))
            except Exception as final_error:
                logger.error(
                    "Failed to mark execution as failed",
                    execution_id=execution_id,
                    error=str(final_error),
                )

    async def start_execution(
        self,
        execution_id: str,
        workflow_id: str,
        variables: Optional[dict[str, Any]] = None,
    ) -> Optional[ExecutionContext]:
        """Walk the workflow and persist the terminal state.

        Returns the final context, or None if the execution was canceled
        before it started. Errors are re-raised after the execution has
        been marked Failed.
        """
        bind_execution(execution_id, workflow_id)
        context: Optional[ExecutionContext] = None
        try:
            if not await self.store.mark_running(execution_id):
                return None

            try:
                workflow = await self.store.load_workflow(workflow_id)
                execution_log = await self.store.get_execution_log(execution_id)
                graph = WorkflowGraph.parse(workflow.definition)

                context = ExecutionContext.for_nodes(
                    execution_id,
                    workflow_id,
                    [node.id for node in graph.nodes],
                    execution_log_id=execution_log.id,
                    variables=variables,
                )
                self._running[execution_id] = context
                await self.store.init_node_states(execution_id, list(context.node_states))

                start = graph.validate_graph()
                logger.info("Walking workflow", start_node_id=start.id, nodes=len(graph.nodes))
                await self.walker.walk(graph, start, ExecutionContextManager(context, self.store))
            except Exception as e:
                await self._finalize(execution_id, ExecutionState.FAILED, context, error=str(e))
                raise

            await self._finalize(execution_id, ExecutionState.COMPLETED, context)
            logger.info("Workflow execution completed")
            return context
        finally:
            self._running.pop(execution_id, None)
            unbind_execution()

    async def _finalize(
        self,
        execution_id: str,
        state: ExecutionState,
        context: Optional[ExecutionContext],
        error: Optional[str] = None,
    ) -> None:
        if context is None:
            await self.store.finalize_execution(execution_id, state, error=error)
            return
        await self.store.finalize_execution(
            execution_id,
            state,
            variables=context.variables,
            logs=context.logs,
            output=context.output,
            error=error,
            node_states=list(context.node_states.values()),
        )

    # ─── Control ───────────────────────────────────────────

    async def cancel_execution(self, execution_id: str) -> CancelExecutionResult:
        """Cancel a Pending or Running execution.

        In-flight node executors are not interrupted; the walk stops
        before starting its next node.
        """
        try:
            await self.store.cancel_execution(execution_id)
        except EngineException as e:
            return CancelExecutionResult(success=False, error=e.message, status_code=e.status_code)
        except Exception as e:
            logger.error("Failed to cancel execution", execution_id=execution_id, error=str(e))
            return CancelExecutionResult(success=False, error=str(e), status_code=500)

        context = self._running.get(execution_id)
        if context is not None:
            context.cancelled = True
        logger.info("Execution canceled", execution_id=execution_id)
        return CancelExecutionResult(success=True, message=f"Execution {execution_id} canceled")

    async def get_execution_status(self, execution_id: str) -> ExecutionStatusResult:
        try:
            data = await self.store.get_execution_status(execution_id)
        except EngineException as e:
            return ExecutionStatusResult(success=False, error=e.message, status_code=e.status_code)
        except Exception as e:
            logger.error("Failed to load execution", execution_id=execution_id, error=str(e))
            return ExecutionStatusResult(success=False, error=str(e), status_code=500)
        return ExecutionStatusResult(success=True, data=data)

    # ─── Background tasks ──────────────────────────────────

    def is_running(self, execution_id: str) -> bool:
        return execution_id in self._tasks

    async def wait_for_execution(self, execution_id: str, timeout: Optional[float] = None) -> None:
        """Wait until the background walk of ``execution_id`` has finished."""
        task = self._tasks.get(execution_id)
        if task is None:
            return
        await asyncio.wait_for(asyncio.gather(task, return_exceptions=True), timeout)

    async def shutdown(self) -> None:
        """Wait for every background execution to settle."""
        tasks = list(self._tasks.values())
        if tasks:
            logger.info("Waiting for running executions", count=len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)


def build_execution_service(
    session_factory,
    http_client: httpx.AsyncClient,
    settings: Optional[Settings] = None,
    task_hook: Optional[TaskHook] = None,
) -> ExecutionService:
    """Wire store, node executors and walker into an ExecutionService."""
    settings = settings or get_settings()
    store = ExecutionStore(session_factory)
    registry = create_node_registry(store.load_agent, http_client, settings, task_hook=task_hook)
    walker = GraphWalker(registry, settings)
    return ExecutionService(store, walker, settings)
