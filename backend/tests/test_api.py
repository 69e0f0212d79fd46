"""API integration tests for the execution and log endpoints."""

import pytest

START_LOG_STOP = (
    [
        {"id": "s", "type": "start", "data": {}},
        {"id": "log", "type": "logMessage", "data": {"message": "Hello ${name}"}},
        {"id": "end", "type": "stop", "data": {}},
    ],
    [
        {"id": "e1", "source": "s", "target": "log"},
        {"id": "e2", "source": "log", "target": "end"},
    ],
)


@pytest.mark.integration
class TestHealth:
    async def test_health(self, client):
        response = await client.get("/api/v1/health/")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["checks"] == {"database": "ok", "execution_service": "ok"}


@pytest.mark.integration
class TestExecutionEndpoints:
    async def test_execute_and_poll(self, client, service, make_workflow):
        workflow_id = await make_workflow(*START_LOG_STOP)

        response = await client.post(
            f"/api/v1/workflows/{workflow_id}/execute",
            json={"variables": {"name": "Ada"}},
            headers={"X-User-Id": "user-42"},
        )
        assert response.status_code == 202
        body = response.json()
        assert body["success"] is True
        execution_id = body["execution_id"]

        await service.wait_for_execution(execution_id, timeout=10)

        response = await client.get(f"/api/v1/executions/{execution_id}")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["state"] == "Completed"
        assert data["started_by"] == "user-42"
        assert data["output"] == "Workflow completed"
        assert data["node_states"]["log"]["state"] == "Completed"
        assert "Hello Ada" in [e["message"] for e in data["execution_log"]["entries"]]

    async def test_execute_without_body(self, client, service, make_workflow):
        workflow_id = await make_workflow(*START_LOG_STOP)
        response = await client.post(f"/api/v1/workflows/{workflow_id}/execute")
        assert response.status_code == 202
        execution_id = response.json()["execution_id"]
        await service.wait_for_execution(execution_id, timeout=10)

        data = (await client.get(f"/api/v1/executions/{execution_id}")).json()["data"]
        assert data["started_by"] == "anonymous"
        # Unresolved placeholders stay in the message
        assert "Hello ${name}" in [e["message"] for e in data["execution_log"]["entries"]]

    async def test_execute_unknown_workflow(self, client):
        response = await client.post("/api/v1/workflows/nope/execute")
        assert response.status_code == 404
        assert response.json()["detail"] == "Workflow with ID nope not found"

    async def test_unknown_execution(self, client):
        response = await client.get("/api/v1/executions/nope")
        assert response.status_code == 404

    async def test_cancel_finished_execution(self, client, service, make_workflow):
        workflow_id = await make_workflow(*START_LOG_STOP)
        execution_id = (
            await client.post(f"/api/v1/workflows/{workflow_id}/execute")
        ).json()["execution_id"]
        await service.wait_for_execution(execution_id, timeout=10)

        response = await client.delete(f"/api/v1/executions/{execution_id}")
        assert response.status_code == 409
        assert response.json()["detail"] == "Execution is already in state Completed"

    async def test_cancel_unknown_execution(self, client):
        response = await client.delete("/api/v1/executions/nope")
        assert response.status_code == 404

    async def test_service_not_ready(self, app, client):
        app.state.execution_service = None
        response = await client.get("/api/v1/executions/anything")
        assert response.status_code == 503


@pytest.mark.integration
class TestLogEndpoints:
    async def _run(self, client, service, workflow_id):
        execution_id = (
            await client.post(f"/api/v1/workflows/{workflow_id}/execute")
        ).json()["execution_id"]
        await service.wait_for_execution(execution_id, timeout=10)
        return execution_id

    async def test_list_and_get(self, client, service, make_workflow):
        workflow_id = await make_workflow(*START_LOG_STOP)
        execution_id = await self._run(client, service, workflow_id)

        response = await client.get("/api/v1/workflow-logs/", params={"workflow_id": workflow_id})
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        log = body["logs"][0]
        assert log["execution_id"] == execution_id
        assert log["status"] == "Completed"

        response = await client.get(f"/api/v1/workflow-logs/{log['id']}")
        assert response.status_code == 200
        assert response.json()["execution_id"] == execution_id

    async def test_filter_by_status(self, client, service, make_workflow):
        workflow_id = await make_workflow(*START_LOG_STOP)
        await self._run(client, service, workflow_id)

        response = await client.get("/api/v1/workflow-logs/", params={"status": "Failed"})
        assert response.json()["total"] == 0
        response = await client.get("/api/v1/workflow-logs/", params={"status": "Completed"})
        assert response.json()["total"] == 1

    async def test_stats(self, client, service, make_workflow):
        workflow_id = await make_workflow(*START_LOG_STOP)
        await self._run(client, service, workflow_id)
        await self._run(client, service, workflow_id)

        response = await client.get("/api/v1/workflow-logs/stats")
        assert response.status_code == 200
        stats = response.json()
        assert stats["total_count"] == 2
        assert stats["completed_count"] == 2
        assert len(stats["recent_logs"]) == 2

    async def test_entries(self, client, service, make_workflow):
        workflow_id = await make_workflow(*START_LOG_STOP)
        execution_id = await self._run(client, service, workflow_id)

        response = await client.get(f"/api/v1/workflow-logs/executions/{execution_id}/entries")
        assert response.status_code == 200
        messages = [entry["message"] for entry in response.json()]
        assert messages[0] == "Executing node: s (start)"
        assert "Hello ${name}" in messages

    async def test_missing_log(self, client):
        response = await client.get("/api/v1/workflow-logs/nope")
        assert response.status_code == 404
        response = await client.get("/api/v1/workflow-logs/executions/nope/entries")
        assert response.status_code == 404
