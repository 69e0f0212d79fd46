"""Workflow execution endpoints."""

from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status as http_status

from api.schemas.execution import (
    CancelExecutionResponse,
    ExecuteWorkflowRequest,
    ExecuteWorkflowResponse,
    ExecutionStatusResponse,
)
from app.dependencies import get_current_user_id, get_execution_service
from services.execution_results import OperationResult
from services.execution_service import ExecutionService

router = APIRouter(tags=["executions"])


def _raise_for_failure(result: OperationResult) -> None:
    if not result.success:
        code = result.status_code if result.status_code >= 400 else http_status.HTTP_400_BAD_REQUEST
        raise HTTPException(status_code=code, detail=result.error)


@router.post(
    "/workflows/{workflow_id}/execute",
    response_model=ExecuteWorkflowResponse,
    status_code=http_status.HTTP_202_ACCEPTED,
)
async def execute_workflow(
    workflow_id: str,
    request: Optional[ExecuteWorkflowRequest] = Body(default=None),
    user_id: str = Depends(get_current_user_id),
    service: ExecutionService = Depends(get_execution_service),
) -> ExecuteWorkflowResponse:
    """
    Start a workflow run. The walk continues in the background;
    poll GET /executions/{execution_id} for progress.
    """
    variables = request.variables if request else None
    result = await service.execute_workflow(workflow_id, user_id, variables)
    _raise_for_failure(result)
    return ExecuteWorkflowResponse.model_validate(result)


@router.get("/executions/{execution_id}", response_model=ExecutionStatusResponse)
async def get_execution_status(
    execution_id: str,
    service: ExecutionService = Depends(get_execution_service),
) -> ExecutionStatusResponse:
    """
    Execution state, per-node states and the ordered audit log.
    """
    result = await service.get_execution_status(execution_id)
    _raise_for_failure(result)
    return ExecutionStatusResponse.model_validate(result)


@router.delete("/executions/{execution_id}", response_model=CancelExecutionResponse)
async def cancel_execution(
    execution_id: str,
    service: ExecutionService = Depends(get_execution_service),
) -> CancelExecutionResponse:
    """
    Cancel a pending or running execution.
    """
    result = await service.cancel_execution(execution_id)
    _raise_for_failure(result)
    return CancelExecutionResponse.model_validate(result)
