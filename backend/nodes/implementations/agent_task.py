"""AgentTask node: delegates a prompt to an external AI agent over HTTP.

Supported providers and their request bodies:

- OpenAI_Assistant: chat-style ``messages`` plus ``response_format``
- SuperAGI: ``input`` / ``output_type`` / ``context_variables``
- AutoGen: ``prompt`` / ``output_format`` / ``context_variables``
- Custom (and anything unknown): ``prompt`` / ``format`` / ``context``

Every payload also carries ``workflow_execution_id`` and ``workflow_id``.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
import structlog

from core.constants import AgentProvider, NodeType
from core.exceptions import AgentRequestError, AgentTimeoutError, WorkflowDefinitionError
from nodes.base_node import BaseNodeExecutor
from workflow.context import ExecutionContextManager
from workflow.interpolation import interpolate
from workflow.schema import Node

logger = structlog.get_logger(__name__)

AgentLoader = Callable[[str], Awaitable[Any]]

DEFAULT_OUTPUT_FORMAT = "text"
DEFAULT_AGENT_TIMEOUT = 60.0
DEFAULT_AGENT_MODEL = "gpt-4"


def build_agent_payload(
    provider: Optional[str],
    prompt: str,
    output_format: str,
    execution_id: str,
    workflow_id: str,
    variables: Dict[str, Any],
    model: str = DEFAULT_AGENT_MODEL,
) -> Dict[str, Any]:
    """Shape the request body for the agent's provider."""
    if provider == AgentProvider.OPENAI_ASSISTANT.value:
        return {
            "messages": [{"role": "user", "content": prompt}],
            "model": model,
            "response_format": {"type": "json_object" if output_format == "json" else "text"},
            "workflow_execution_id": execution_id,
            "workflow_id": workflow_id,
        }
    if provider == AgentProvider.SUPERAGI.value:
        return {
            "input": prompt,
            "output_type": output_format,
            "workflow_execution_id": execution_id,
            "workflow_id": workflow_id,
            "context_variables": variables,
        }
    if provider == AgentProvider.AUTOGEN.value:
        return {
            "prompt": prompt,
            "output_format": output_format,
            "context_variables": variables,
            "workflow_execution_id": execution_id,
            "workflow_id": workflow_id,
        }
    return {
        "prompt": prompt,
        "format": output_format,
        "context": variables,
        "workflow_execution_id": execution_id,
        "workflow_id": workflow_id,
    }


class AgentTaskNodeExecutor(BaseNodeExecutor):
    """Call an external agent and store its answer in a variable.

    Node data:
        agentId: Agent definition to call (required)
        taskPrompt: Prompt, may contain ``${...}`` placeholders (required)
        outputFormat: "text" or "json" (default: text)
        timeout: Seconds before the call is abandoned (default: 60)
        var: Variable that receives the response (default: agent_<nodeId>_result)
    """

    node_type = NodeType.AGENT_TASK.value
    display_name = "Agent Task"
    description = "Send a prompt to an external AI agent"

    def __init__(
        self,
        agent_loader: AgentLoader,
        http_client: httpx.AsyncClient,
        default_timeout: float = DEFAULT_AGENT_TIMEOUT,
        model: str = DEFAULT_AGENT_MODEL,
    ):
        self._load_agent = agent_loader
        self._client = http_client
        self._default_timeout = default_timeout
        self._model = model

    async def execute(self, node: Node, manager: ExecutionContextManager) -> Dict[str, Any]:
        agent_id = node.data.get("agentId")
        task_prompt = node.data.get("taskPrompt")
        if not agent_id:
            raise WorkflowDefinitionError("Agent task node requires an agent ID")
        if not task_prompt:
            raise WorkflowDefinitionError("Agent task node requires a task prompt")

        output_format = node.data.get("outputFormat") or DEFAULT_OUTPUT_FORMAT
        timeout = float(node.data.get("timeout") or self._default_timeout)

        agent = await self._load_agent(agent_id)
        prompt = interpolate(task_prompt, manager.variables)

        logger.info(
            "Executing agent task",
            node_id=node.id,
            agent_id=agent_id,
            agent_name=agent.name,
            provider=agent.provider,
            execution_id=manager.execution_id,
        )
        manager.note(node.id, f"Executing agent task with {agent.name}")

        config = agent.config or {}
        endpoint = config.get("apiEndpoint")
        if not endpoint:
            raise AgentRequestError(
                f"Agent {agent.name} does not have an API endpoint configured"
            )

        payload = build_agent_payload(
            agent.provider,
            prompt,
            output_format,
            manager.execution_id,
            manager.workflow_id,
            manager.variables,
            model=self._model,
        )
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {config.get('apiKey') or ''}",
        }

        try:
            response = await asyncio.wait_for(
                self._client.post(endpoint, json=payload, headers=headers, timeout=timeout),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise AgentTimeoutError(timeout)
        except httpx.HTTPError as e:
            raise AgentRequestError(f"Agent {agent.name} request failed: {e}") from e

        if response.status_code >= 400:
            raise AgentRequestError(
                f"Agent {agent.name} returned HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            result = response.json()
        except ValueError:
            result = response.text

        variable = node.data.get("var") or f"agent_{node.id}_result"
        manager.set_variable(variable, result, node.id)

        logger.info(
            "Agent task completed successfully",
            node_id=node.id,
            agent_id=agent_id,
            response_status=response.status_code,
            execution_id=manager.execution_id,
        )
        manager.note(node.id, "Agent task completed successfully")
        return {"success": True, "result": result}

