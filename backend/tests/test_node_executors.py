"""Tests for node executors and the executor registry."""

import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest

from core.constants import LogLevel, NodeType
from core.exceptions import (
    AgentRequestError,
    AgentTimeoutError,
    NotFoundError,
    WorkflowDefinitionError,
)
from nodes.implementations.agent_task import AgentTaskNodeExecutor, build_agent_payload
from nodes.implementations.condition import ConditionNodeExecutor
from nodes.implementations.control import (
    PassthroughNodeExecutor,
    StartNodeExecutor,
    StopNodeExecutor,
)
from nodes.implementations.log_message import LogMessageNodeExecutor
from nodes.implementations.task import TaskNodeExecutor
from nodes.registry import NodeExecutorRegistry, create_node_registry
from workflow.context import ExecutionContext, ExecutionContextManager
from workflow.schema import Node

AGENTS = {
    "agent-1": SimpleNamespace(
        name="Helper",
        provider="Custom",
        config={"apiEndpoint": "http://agents.test/run", "apiKey": "k-123"},
    ),
    "agent-no-endpoint": SimpleNamespace(name="Offline", provider="Custom", config={"apiKey": "k"}),
}


async def load_agent(agent_id):
    try:
        return AGENTS[agent_id]
    except KeyError:
        raise NotFoundError(f"Agent with ID {agent_id} not found")


class RecordingStore:
    def __init__(self):
        self.entries = []

    async def upsert_node_state(self, execution_id, state):
        return True

    async def append_log_entry(self, execution_log_id, **kwargs):
        self.entries.append(kwargs)


def _manager(variables=None, store=None) -> ExecutionContextManager:
    context = ExecutionContext.for_nodes(
        "ex-1", "wf-1", ["n1"], execution_log_id="log-1", variables=variables
    )
    return ExecutionContextManager(context, store)


def _node(node_type: str, **data) -> Node:
    return Node(id="n1", type=node_type, data=data)


# ─── Agent payloads ───

@pytest.mark.unit
class TestBuildAgentPayload:
    def test_openai_assistant(self):
        payload = build_agent_payload(
            "OpenAI_Assistant", "Summarize", "json", "ex-1", "wf-1", {"a": 1}
        )
        assert payload == {
            "messages": [{"role": "user", "content": "Summarize"}],
            "model": "gpt-4",
            "response_format": {"type": "json_object"},
            "workflow_execution_id": "ex-1",
            "workflow_id": "wf-1",
        }

    def test_openai_assistant_text(self):
        payload = build_agent_payload("OpenAI_Assistant", "p", "text", "ex-1", "wf-1", {})
        assert payload["response_format"] == {"type": "text"}

    def test_superagi(self):
        payload = build_agent_payload("SuperAGI", "p", "text", "ex-1", "wf-1", {"a": 1})
        assert payload == {
            "input": "p",
            "output_type": "text",
            "workflow_execution_id": "ex-1",
            "workflow_id": "wf-1",
            "context_variables": {"a": 1},
        }

    def test_autogen(self):
        payload = build_agent_payload("AutoGen", "p", "json", "ex-1", "wf-1", {"a": 1})
        assert payload == {
            "prompt": "p",
            "output_format": "json",
            "context_variables": {"a": 1},
            "workflow_execution_id": "ex-1",
            "workflow_id": "wf-1",
        }

    def test_custom_and_unknown(self):
        expected = {
            "prompt": "p",
            "format": "text",
            "context": {"a": 1},
            "workflow_execution_id": "ex-1",
            "workflow_id": "wf-1",
        }
        assert build_agent_payload("Custom", "p", "text", "ex-1", "wf-1", {"a": 1}) == expected
        assert build_agent_payload("Whatever", "p", "text", "ex-1", "wf-1", {"a": 1}) == expected


# ─── AgentTask ───

@pytest.mark.unit
class TestAgentTaskNodeExecutor:
    async def test_success_stores_result(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"summary": "done"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            executor = AgentTaskNodeExecutor(load_agent, client)
            manager = _manager({"topic": "weather"})
            result = await executor.execute(
                _node("agentTask", agentId="agent-1", taskPrompt="Tell me about ${topic}"),
                manager,
            )

        assert result == {"success": True, "result": {"summary": "done"}}
        assert manager.variables["agent_n1_result"] == {"summary": "done"}
        request = requests[0]
        assert str(request.url) == "http://agents.test/run"
        assert request.headers["Authorization"] == "Bearer k-123"
        body = json.loads(request.content)
        assert body["prompt"] == "Tell me about weather"
        assert body["workflow_execution_id"] == "ex-1"

    async def test_custom_variable_and_text_response(self):
        def handler(request):
            return httpx.Response(200, text="plain answer")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            executor = AgentTaskNodeExecutor(load_agent, client)
            manager = _manager()
            await executor.execute(
                _node("agentTask", agentId="agent-1", taskPrompt="hi", var="answer"), manager
            )

        assert manager.variables == {"answer": "plain answer"}

    async def test_http_error_status(self):
        def handler(request):
            return httpx.Response(500, text="upstream broke")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            executor = AgentTaskNodeExecutor(load_agent, client)
            with pytest.raises(AgentRequestError, match="returned HTTP 500"):
                await executor.execute(_node("agentTask", agentId="agent-1", taskPrompt="hi"), _manager())

    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            executor = AgentTaskNodeExecutor(load_agent, client)
            with pytest.raises(AgentRequestError, match="request failed"):
                await executor.execute(_node("agentTask", agentId="agent-1", taskPrompt="hi"), _manager())

    async def test_timeout(self):
        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json={})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            executor = AgentTaskNodeExecutor(load_agent, client)
            with pytest.raises(AgentTimeoutError) as exc_info:
                await executor.execute(
                    _node("agentTask", agentId="agent-1", taskPrompt="hi", timeout=0.05),
                    _manager(),
                )
        assert exc_info.value.message == "Agent task timed out after 0.05 seconds"

    async def test_missing_endpoint(self):
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))) as client:
            executor = AgentTaskNodeExecutor(load_agent, client)
            with pytest.raises(AgentRequestError, match="does not have an API endpoint configured"):
                await executor.execute(
                    _node("agentTask", agentId="agent-no-endpoint", taskPrompt="hi"), _manager()
                )

    async def test_unknown_agent(self):
        async with httpx.AsyncClient() as client:
            executor = AgentTaskNodeExecutor(load_agent, client)
            with pytest.raises(NotFoundError):
                await executor.execute(_node("agentTask", agentId="ghost", taskPrompt="hi"), _manager())

    async def test_missing_configuration_is_fatal(self):
        async with httpx.AsyncClient() as client:
            executor = AgentTaskNodeExecutor(load_agent, client)
            with pytest.raises(WorkflowDefinitionError, match="agent ID"):
                await executor.execute(_node("agentTask", taskPrompt="hi"), _manager())
            with pytest.raises(WorkflowDefinitionError, match="task prompt"):
                await executor.execute(_node("agentTask", agentId="agent-1"), _manager())


# ─── Other executors ───

@pytest.mark.unit
class TestControlExecutors:
    async def test_start(self):
        assert await StartNodeExecutor().execute(_node("start"), _manager()) == {"success": True}

    async def test_stop_default_output(self):
        manager = _manager()
        result = await StopNodeExecutor().execute(_node("stop"), manager)
        assert result["message"] == "Workflow execution completed"
        assert manager.context.output == "Workflow completed"

    async def test_stop_custom_output(self):
        manager = _manager()
        await StopNodeExecutor().execute(_node("stop", output={"total": 3}), manager)
        assert manager.context.output == {"total": 3}

    async def test_passthrough(self):
        result = await PassthroughNodeExecutor().execute(_node("mystery"), _manager())
        assert result == {"success": True}


@pytest.mark.unit
class TestLogMessageNodeExecutor:
    async def test_interpolates_and_writes_entry(self):
        store = RecordingStore()
        manager = _manager({"order": {"id": 42}}, store)
        result = await LogMessageNodeExecutor().execute(
            _node("logMessage", message="Order ${order.id} received", level="warn"), manager
        )
        assert result == {"success": True, "message": "Order 42 received"}
        assert store.entries == [
            {
                "node_id": "n1",
                "node_type": "LOG_MESSAGE",
                "level": LogLevel.WARN,
                "message": "Order 42 received",
                "data": {"originalMessage": "Order ${order.id} received"},
            }
        ]
        assert manager.context.logs[-1]["level"] == "warn"

    @pytest.mark.parametrize(
        "level,expected",
        [(None, LogLevel.INFO), ("info", LogLevel.INFO), ("warning", LogLevel.WARN), ("error", LogLevel.ERROR)],
    )
    async def test_levels(self, level, expected):
        store = RecordingStore()
        data = {"message": "hi"}
        if level is not None:
            data["level"] = level
        await LogMessageNodeExecutor().execute(_node("logMessage", **data), _manager(store=store))
        assert store.entries[0]["level"] == expected

    async def test_non_string_message(self):
        store = RecordingStore()
        result = await LogMessageNodeExecutor().execute(
            _node("logMessage", message=12), _manager(store=store)
        )
        assert result["message"] == "12"


@pytest.mark.unit
class TestConditionNodeExecutor:
    async def test_result(self):
        manager = _manager({"x": 5})
        result = await ConditionNodeExecutor().execute(_node("condition", condition="x > 0"), manager)
        assert result == {"success": True, "conditionResult": True}
        assert manager.context.logs[-1]["message"] == "Condition 'x > 0' evaluated to: true"

    async def test_error_is_false(self):
        manager = _manager({})
        result = await ConditionNodeExecutor().execute(_node("condition", condition="x > 0"), manager)
        assert result["conditionResult"] is False

    async def test_missing_condition(self):
        with pytest.raises(WorkflowDefinitionError, match="requires a condition expression"):
            await ConditionNodeExecutor().execute(_node("condition"), _manager())


@pytest.mark.unit
class TestTaskNodeExecutor:
    async def test_records_variable(self):
        manager = _manager()
        result = await TaskNodeExecutor(delay=0).execute(
            _node("task", taskName="Send invoice", var="invoice"), manager
        )
        assert result == {"success": True, "taskName": "Send invoice", "status": "completed"}
        assert manager.variables["invoice"]["taskName"] == "Send invoice"
        assert manager.variables["invoice"]["status"] == "completed"
        assert manager.context.logs[0]["message"] == "Executing task: Send invoice"

    async def test_unnamed(self):
        manager = _manager()
        await TaskNodeExecutor(delay=0).execute(_node("task"), manager)
        assert manager.context.logs[0]["message"] == "Executing task: Unnamed task"
        assert manager.variables == {}

    async def test_hook_result(self):
        async def hook(node, manager):
            return {"rows": 3}

        result = await TaskNodeExecutor(hook=hook).execute(_node("task", taskName="t"), _manager())
        assert result["result"] == {"rows": 3}

    async def test_hook_error_propagates(self):
        async def hook(node, manager):
            raise RuntimeError("task broke")

        with pytest.raises(RuntimeError, match="task broke"):
            await TaskNodeExecutor(hook=hook).run(_node("task"), _manager())


# ─── Registry ───

@pytest.mark.unit
class TestNodeExecutorRegistry:
    async def test_builtin_types(self):
        async with httpx.AsyncClient() as client:
            registry = create_node_registry(load_agent, client)
        assert set(registry.available_types) == {member.value for member in NodeType}
        assert len(registry.list_all()) == len(NodeType)

    async def test_case_insensitive_lookup(self):
        async with httpx.AsyncClient() as client:
            registry = create_node_registry(load_agent, client)
        assert isinstance(registry.get("Start"), StartNodeExecutor)
        assert isinstance(registry.get("LOGMESSAGE"), LogMessageNodeExecutor)
        assert isinstance(registry.get("agenttask"), AgentTaskNodeExecutor)

    def test_unknown_type_falls_back(self):
        registry = NodeExecutorRegistry()
        assert isinstance(registry.get("customThing"), PassthroughNodeExecutor)
        assert isinstance(registry.get(None), PassthroughNodeExecutor)

    def test_register_replaces(self):
        registry = NodeExecutorRegistry()
        first, second = TaskNodeExecutor(delay=0), TaskNodeExecutor(delay=0)
        registry.register("task", first)
        registry.register("Task", second)
        assert registry.get("task") is second
        assert registry.available_types == ["task"]
