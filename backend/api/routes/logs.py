"""Workflow execution log endpoints."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status as http_status
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.execution import LogEntryResponse
from api.schemas.logs import WorkflowLogListResponse, WorkflowLogResponse, WorkflowLogStats
from app.dependencies import get_db
from core.exceptions import NotFoundError
from services.log_service import WorkflowLogService

router = APIRouter(tags=["workflow-logs"])


@router.get("/", response_model=WorkflowLogListResponse)
async def list_logs(
    workflow_id: Optional[str] = Query(None, description="Filter by workflow ID"),
    log_status: Optional[str] = Query(None, alias="status", description="Filter by log status"),
    start_date: Optional[datetime] = Query(None, description="Logs started at or after"),
    end_date: Optional[datetime] = Query(None, description="Logs started at or before"),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
) -> WorkflowLogListResponse:
    """
    List execution logs, newest first.
    """
    svc = WorkflowLogService(db)
    logs, total = await svc.list_logs(
        workflow_id=workflow_id,
        status=log_status,
        start_date=start_date,
        end_date=end_date,
        offset=offset,
        limit=limit,
    )
    return WorkflowLogListResponse(
        logs=[WorkflowLogResponse.model_validate(log) for log in logs],
        total=total,
    )


@router.get("/stats", response_model=WorkflowLogStats)
async def get_log_stats(db: AsyncSession = Depends(get_db)) -> WorkflowLogStats:
    """
    Execution counts by log status plus the five most recent logs.
    """
    stats = await WorkflowLogService(db).get_log_stats()
    return WorkflowLogStats(
        total_count=stats["total_count"],
        running_count=stats["running_count"],
        completed_count=stats["completed_count"],
        failed_count=stats["failed_count"],
        recent_logs=[WorkflowLogResponse.model_validate(log) for log in stats["recent_logs"]],
    )


@router.get("/{log_id}", response_model=WorkflowLogResponse)
async def get_log(log_id: str, db: AsyncSession = Depends(get_db)) -> WorkflowLogResponse:
    """
    Get one execution log by its ID.
    """
    log = await WorkflowLogService(db).get_by_id(log_id)
    if log is None:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail="Workflow log not found",
        )
    return WorkflowLogResponse.model_validate(log)


@router.get("/executions/{execution_id}/entries", response_model=List[LogEntryResponse])
async def get_log_entries(
    execution_id: str,
    db: AsyncSession = Depends(get_db),
) -> List[LogEntryResponse]:
    """
    Log entries of one execution in write order.
    """
    try:
        entries = await WorkflowLogService(db).get_log_entries(execution_id)
    except NotFoundError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return [LogEntryResponse.model_validate(entry) for entry in entries]
