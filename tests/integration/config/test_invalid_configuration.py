"""
Integration tests for a gateway started with invalid configuration.

The app must still start; every request that needs settings answers
with the usual error body instead.
"""

from typing import Generator

import pytest
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from src.remotedb.config import get_settings
from src.remotedb.main import create_app
from tests.conftest import query_params

ENDPOINT = "/api/remotedb"


@pytest.fixture
def invalid_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("REMOTEDB_LOGGING_LOG_LEVEL", "VERBOSE")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def broken_client(invalid_env: None) -> Generator[TestClient, None, None]:
    # Clear Prometheus registry to avoid duplicates
    REGISTRY._collector_to_names.clear()
    REGISTRY._names_to_collectors.clear()

    with TestClient(create_app()) as client:
        yield client


class TestInvalidConfiguration:
    """Test request handling when settings fail validation."""

    def test_query_answers_configuration_error(self, broken_client: TestClient) -> None:
        response = broken_client.get(ENDPOINT, params=query_params())

        assert response.status_code == 500
        assert response.json() == {
            "query_status": "ERROR",
            "response": "Server configuration is invalid.",
        }

    def test_post_answers_configuration_error(self, broken_client: TestClient) -> None:
        response = broken_client.post(ENDPOINT, data=query_params())

        assert response.status_code == 500
        assert response.json()["query_status"] == "ERROR"

    def test_liveness_still_served(self, broken_client: TestClient) -> None:
        response = broken_client.get("/healthz")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_recovers_once_fixed(self, broken_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        assert broken_client.get(ENDPOINT, params=query_params()).status_code == 500

        monkeypatch.setenv("REMOTEDB_LOGGING_LOG_LEVEL", "ALL")
        monkeypatch.setenv("REMOTEDB_SECURITY_API_KEY", "")
        response = broken_client.get(ENDPOINT, params=query_params())

        # Settings now load; the missing API key is the next failure
        assert response.status_code == 500
        assert response.json()["response"] == "API key not configured. Please update config.yaml."
