"""FastAPI dependency injection functions."""

from typing import AsyncGenerator, Optional

import structlog
from fastapi import Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from services.execution_service import ExecutionService

logger = structlog.get_logger(__name__)


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Provide a database session for API endpoints.

    Yields an async SQLAlchemy session that is automatically
    committed on success or rolled back on error.
    """
    async with request.app.state.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error("Database error", error=str(e))
            await session.rollback()
            raise


def get_execution_service(request: Request) -> ExecutionService:
    """The process-wide orchestrator created at startup."""
    service: Optional[ExecutionService] = getattr(request.app.state, "execution_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Execution service is not ready",
        )
    return service


async def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> str:
    """
    Acting principal for the request.

    Authentication happens in front of this service; the authenticated
    user id is forwarded in the X-User-Id header.
    """
    return x_user_id or "anonymous"
