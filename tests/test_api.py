# =============================================================================
# Integration Tests — HTTP API and Celery Task
# =============================================================================
#
# Routes run through FastAPI's TestClient with every collaborator replaced
# via app.dependency_overrides. Database loaders are patched where the
# route module imported them, so no Postgres, Redis or vector store is
# needed.
# =============================================================================

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from agentmesh.agents.orchestrator import NO_AGENTS_ERROR, QUERY_FAILED_ERROR
from agentmesh.agents.types import Agent, JoinKeySuggestion, MultiAgent
from agentmesh.api.deps import get_join_key_detector, get_orchestrator
from agentmesh.db.engine import get_async_session
from agentmesh.main import app
from agentmesh.workers.tasks import UnknownAgentError, detect_join_keys


async def _fake_session():
    yield MagicMock()


ORDERS = Agent(1, "Orders", "orders")
CUSTOMERS = Agent(2, "Customers", "customers")
SUGGESTION = JoinKeySuggestion(
    join_key="customer_id",
    target_key="customer_id",
    confidence=0.93,
    description="Suggested join key for Orders (customer_id) to Customers (customer_id)",
)


@pytest.fixture
def orchestrator():
    return MagicMock(execute_query=AsyncMock())


@pytest.fixture
def detector():
    return MagicMock(detect_and_store=AsyncMock(return_value=SUGGESTION))


@pytest.fixture
def client(orchestrator, detector):
    app.dependency_overrides[get_async_session] = _fake_session
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_join_key_detector] = lambda: detector
    yield TestClient(app)
    app.dependency_overrides.clear()


def _load_agent(session, agent_id):
    return {1: ORDERS, 2: CUSTOMERS}.get(agent_id)


# ---------------------------------------------------------------------------
# Test: health
# ---------------------------------------------------------------------------


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


# ---------------------------------------------------------------------------
# Test: POST /multi-agents/{id}/query
# ---------------------------------------------------------------------------


class TestQueryEndpoint:

    MULTI_AGENT = MultiAgent(id=11, name="Ops Desk", agents=[ORDERS, CUSTOMERS])

    @patch("agentmesh.api.query.load_multi_agent", new_callable=AsyncMock)
    def test_success(self, mock_load, client, orchestrator):
        mock_load.return_value = self.MULTI_AGENT
        orchestrator.execute_query.return_value = {
            "synthesized_response": "- **Orders**: 12 open orders",
            "individual_responses": [
                {"agent_id": 1, "agent_name": "Orders", "response": "12 open orders",
                 "raw_details": {"confidence": 0.8}},
                {"agent_id": 2, "agent_name": "Customers",
                 "error": "Failed to get response from this agent.",
                 "raw_details": {"message": "timeout"}},
            ],
            "strategy": "direct",
        }

        response = client.post(
            "/multi-agents/11/query",
            json={"prompt": "How many open orders?", "session_id": "abc"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["strategy"] == "direct"
        assert len(body["individual_responses"]) == 2
        assert body["individual_responses"][1]["error"].startswith("Failed")

        orchestrator.execute_query.assert_awaited_once_with(
            self.MULTI_AGENT, "How many open orders?", session_id="abc", strategy="auto",
        )

    @patch("agentmesh.api.query.load_multi_agent", new_callable=AsyncMock)
    def test_strategy_hint_forwarded(self, mock_load, client, orchestrator):
        mock_load.return_value = self.MULTI_AGENT
        orchestrator.execute_query.return_value = {
            "synthesized_response": "x", "individual_responses": [], "strategy": "chained",
        }
        client.post("/multi-agents/11/query", json={"prompt": "q", "strategy": "chained"})
        assert orchestrator.execute_query.call_args.kwargs["strategy"] == "chained"

    @patch("agentmesh.api.query.load_multi_agent", new_callable=AsyncMock)
    def test_unknown_multi_agent_404(self, mock_load, client, orchestrator):
        mock_load.return_value = None
        response = client.post("/multi-agents/99/query", json={"prompt": "q"})
        assert response.status_code == 404
        orchestrator.execute_query.assert_not_awaited()

    @patch("agentmesh.api.query.load_multi_agent", new_callable=AsyncMock)
    def test_no_agents_422(self, mock_load, client, orchestrator):
        mock_load.return_value = MultiAgent(id=11, name="Empty")
        orchestrator.execute_query.return_value = {
            "error": NO_AGENTS_ERROR, "message": "Multi-agent 11 has no agents to query.",
        }
        response = client.post("/multi-agents/11/query", json={"prompt": "q"})
        assert response.status_code == 422
        assert response.json()["detail"]["error"] == NO_AGENTS_ERROR

    @patch("agentmesh.api.query.load_multi_agent", new_callable=AsyncMock)
    def test_pipeline_failure_500(self, mock_load, client, orchestrator):
        mock_load.return_value = self.MULTI_AGENT
        orchestrator.execute_query.return_value = {
            "error": QUERY_FAILED_ERROR, "message": "boom",
        }
        response = client.post("/multi-agents/11/query", json={"prompt": "q"})
        assert response.status_code == 500
        assert response.json()["detail"]["message"] == "boom"

    def test_validation(self, client):
        assert client.post("/multi-agents/11/query", json={"prompt": ""}).status_code == 422
        assert client.post(
            "/multi-agents/11/query", json={"prompt": "q", "strategy": "round_robin"},
        ).status_code == 422


# ---------------------------------------------------------------------------
# Test: POST /agents/{s}/relations/{t}/detect
# ---------------------------------------------------------------------------


class TestDetectEndpoint:

    @patch("agentmesh.api.relations.load_agent", new_callable=AsyncMock)
    def test_sync_detection(self, mock_load, client, detector):
        mock_load.side_effect = _load_agent
        response = client.post("/agents/1/relations/2/detect")

        assert response.status_code == 200
        body = response.json()
        assert body["suggestion"]["join_key"] == "customer_id"
        assert body["suggestion"]["confidence"] == 0.93
        assert body["task_id"] is None
        detector.detect_and_store.assert_awaited_once_with(ORDERS, CUSTOMERS, None)

    @patch("agentmesh.api.relations.load_agent", new_callable=AsyncMock)
    def test_multi_agent_id_forwarded(self, mock_load, client, detector):
        mock_load.side_effect = _load_agent
        client.post("/agents/1/relations/2/detect", json={"multi_agent_id": 11})
        detector.detect_and_store.assert_awaited_once_with(ORDERS, CUSTOMERS, 11)

    @patch("agentmesh.api.relations.load_agent", new_callable=AsyncMock)
    def test_no_suggestion_is_null(self, mock_load, client, detector):
        mock_load.side_effect = _load_agent
        detector.detect_and_store.return_value = None
        response = client.post("/agents/1/relations/2/detect")
        assert response.status_code == 200
        assert response.json()["suggestion"] is None

    @patch("agentmesh.api.relations.load_agent", new_callable=AsyncMock)
    def test_unknown_agent_404(self, mock_load, client, detector):
        mock_load.side_effect = _load_agent
        response = client.post("/agents/1/relations/42/detect")
        assert response.status_code == 404
        detector.detect_and_store.assert_not_awaited()

    @patch("agentmesh.api.relations.detect_join_keys")
    @patch("agentmesh.api.relations.load_agent", new_callable=AsyncMock)
    def test_async_enqueues_task(self, mock_load, mock_task, client, detector):
        mock_load.side_effect = _load_agent
        mock_task.delay.return_value = SimpleNamespace(id="task-123")

        response = client.post("/agents/1/relations/2/detect?async=true")

        assert response.status_code == 200
        assert response.json() == {"suggestion": None, "task_id": "task-123"}
        mock_task.delay.assert_called_once_with(1, 2, None)
        detector.detect_and_store.assert_not_awaited()


# ---------------------------------------------------------------------------
# Test: Celery task body
# ---------------------------------------------------------------------------


class TestDetectJoinKeysTask:

    @patch("agentmesh.workers.tasks._detect", new_callable=AsyncMock)
    def test_returns_suggestion(self, mock_detect):
        mock_detect.return_value = SUGGESTION.to_dict()
        result = detect_join_keys.run(1, 2, 11)

        mock_detect.assert_awaited_once_with(1, 2, 11)
        assert result == {
            "source_agent_id": 1,
            "target_agent_id": 2,
            "suggestion": SUGGESTION.to_dict(),
        }

    @patch("agentmesh.workers.tasks._detect", new_callable=AsyncMock)
    def test_unknown_agent_not_retried(self, mock_detect):
        mock_detect.side_effect = UnknownAgentError("Agent 9 not found")
        with patch.object(detect_join_keys.__class__, "retry") as mock_retry:
            with pytest.raises(UnknownAgentError):
                detect_join_keys.run(9, 2)
        mock_retry.assert_not_called()

    @patch("agentmesh.workers.tasks._detect", new_callable=AsyncMock)
    def test_transient_failure_retried_with_backoff(self, mock_detect):
        error = ConnectionError("qdrant down")
        mock_detect.side_effect = error
        with patch.object(
            detect_join_keys.__class__, "retry", side_effect=RuntimeError("retrying"),
        ) as mock_retry:
            with pytest.raises(RuntimeError, match="retrying"):
                detect_join_keys.run(1, 2)
        mock_retry.assert_called_once_with(exc=error, countdown=30)
