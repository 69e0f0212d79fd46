"""Shared pytest fixtures for the workflow engine test suite.

Provides:
- A file-backed async SQLite database per test (concurrent branches open
  their own sessions, which an in-memory database cannot share)
- ExecutionStore / ExecutionService wired to that database
- A mock agent endpoint (httpx.MockTransport)
- Seeding helpers for workflows and agents
- FastAPI test client (httpx.AsyncClient)
"""

import json
import os
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Override settings BEFORE any app imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("TASK_SIMULATED_DELAY", "0")
os.environ.setdefault("DEFAULT_BACKOFF_SECONDS", "0")

from sqlalchemy.ext.asyncio import create_async_engine  # noqa: E402

from app.config import get_settings  # noqa: E402
from db.base import Base  # noqa: E402
from db.database import create_session_factory  # noqa: E402


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Fresh SQLite database file for one test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}", echo=False)
    # Import all models so Base.metadata knows about them
    import db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """A session for direct reads and writes inside a test."""
    async with session_factory() as session:
        yield session
        await session.commit()


@pytest.fixture
def store(session_factory):
    from services.execution_store import ExecutionStore

    return ExecutionStore(session_factory)


# ---------------------------------------------------------------------------
# Agent endpoint
# ---------------------------------------------------------------------------

class AgentEndpoint:
    """Records agent requests and answers them with a canned response."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.response_body = {"answer": "42"}

    def payloads(self) -> list[dict]:
        return [json.loads(request.content) for request in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.response_body)


@pytest.fixture
def agent_endpoint() -> AgentEndpoint:
    return AgentEndpoint()


@pytest_asyncio.fixture
async def http_client(agent_endpoint) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(agent_endpoint.handler)) as client:
        yield client


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

@pytest.fixture
def settings():
    return get_settings()


@pytest_asyncio.fixture
async def service(session_factory, http_client, settings):
    from services.execution_service import build_execution_service

    svc = build_execution_service(session_factory, http_client, settings)
    yield svc
    await svc.shutdown()


# ---------------------------------------------------------------------------
# Test data fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def make_workflow(session_factory):
    """Insert a workflow definition and return its id."""
    from db.models.workflow import WorkflowDefinition
    from services.base import BaseService

    async def _make(nodes: list, edges: list, name: str = "Test Workflow") -> str:
        async with session_factory() as session:
            workflow = await BaseService(WorkflowDefinition, session).create(
                {
                    "name": name,
                    "definition": {
                        "nodes": nodes,
                        "edges": edges,
                        "viewport": {"x": 0, "y": 0, "zoom": 1},
                    },
                    "version": 1,
                    "created_by": "tester",
                }
            )
            await session.commit()
            return workflow.id

    return _make


@pytest.fixture
def make_agent(session_factory):
    """Insert an agent definition and return its id."""
    from db.models.agent import AgentDefinition
    from services.base import BaseService

    async def _make(
        provider: str = "Custom",
        endpoint: str = "http://agents.test/run",
        api_key: str = "secret-key",
        name: str = "Test Agent",
    ) -> str:
        config = {"apiKey": api_key}
        if endpoint:
            config["apiEndpoint"] = endpoint
        async with session_factory() as session:
            agent = await BaseService(AgentDefinition, session).create(
                {"name": name, "provider": provider, "config": config}
            )
            await session.commit()
            return agent.id

    return _make


# ---------------------------------------------------------------------------
# App / HTTP client fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def app(session_factory, service):
    """FastAPI app wired to the test database.

    ASGITransport does not run the lifespan, so state is attached here.
    """
    from app.main import create_app

    test_app = create_app()
    test_app.state.session_factory = session_factory
    test_app.state.execution_service = service
    yield test_app


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        yield ac
