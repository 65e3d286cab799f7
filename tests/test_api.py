"""Tests for the HTTP surface."""

import json

import pytest
from fastapi.testclient import TestClient

from hydra_router.api.app import create_app
from hydra_router.models.enums import ErrorKind

from conftest import make_config


@pytest.fixture
def http(engine):
    with TestClient(create_app(engine=engine)) as test_client:
        yield test_client


def _execute_body(content="hello", **profile):
    return {
        "client_id": "api-test",
        "profile": profile or {"kind": "simple"},
        "messages": [{"role": "user", "content": content}],
    }


class TestExecuteEndpoints:
    def test_execute_success(self, http) -> None:
        response = http.post("/llm/execute", json=_execute_body())
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["state"] == "succeeded"
        assert data["provider_used"] == "p1"
        assert data["model_used"] == "m1"
        assert data["usage"]["total_tokens"] == 15
        assert len(data["attempts"]) == 1

    def test_execute_failure_is_reported_not_raised(self, http, client) -> None:
        client.handler = lambda provider, request: ErrorKind.AUTH_FAILED
        response = http.post("/llm/execute", json=_execute_body())
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["failure_reason"] == "all_candidates_exhausted"
        assert len(data["attempts"]) == 5

    def test_execute_rejects_empty_messages(self, http) -> None:
        body = _execute_body()
        body["messages"] = []
        assert http.post("/llm/execute", json=body).status_code == 422

    def test_batch(self, http) -> None:
        body = {
            "max_concurrency": 2,
            "requests": [_execute_body(f"item {i}") for i in range(3)],
        }
        response = http.post("/llm/batch", json=body)
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["succeeded"] == 3
        assert len(data["results"]) == 3


class TestStatusEndpoints:
    def test_health(self, http) -> None:
        data = http.get("/health").json()
        assert data["status"] == "healthy"

    def test_usage_reflects_ledger(self, http) -> None:
        http.post("/llm/execute", json=_execute_body())
        data = http.get("/usage").json()
        assert data["rate_limits"]["p1/m1"]["available"] is True
        assert data["records"]["p1__m1"]["requests_this_window"] == 1

    def test_providers_never_expose_secrets(self, http) -> None:
        response = http.get("/providers")
        providers = response.json()["providers"]
        assert [p["id"] for p in providers] == ["p1", "p2"]
        assert providers[0]["credential_available"] is True
        assert "secret-1" not in response.text


class TestConfigReload:
    def test_reload_missing_file_is_rejected(self, http) -> None:
        response = http.post("/config/reload")
        assert response.status_code == 422
        assert response.json()["reloaded"] is False

    def test_reload_from_file(self, http, engine) -> None:
        config_file = engine.config_manager.config_file
        config_file.parent.mkdir(parents=True, exist_ok=True)
        document = make_config()
        document["providerOrder"] = ["p2", "p1"]
        config_file.write_text(json.dumps(document))

        response = http.post("/config/reload")

        assert response.status_code == 200
        assert response.json()["providers"] == ["p2", "p1"]
