"""API v1 aggregated router.

All v1 endpoints are registered here and mounted under /api/v1 in main.py.
"""

from fastapi import APIRouter

from api.routes import executions, health, logs

api_v1_router = APIRouter()

# Health
api_v1_router.include_router(
    health.router,
    tags=["Health"],
)

# Workflow executions
api_v1_router.include_router(
    executions.router,
    tags=["Executions"],
)

# Execution audit logs
api_v1_router.include_router(
    logs.router,
    prefix="/workflow-logs",
    tags=["Workflow Logs"],
)
