"""
Integration tests for per-client rate limiting on the query endpoint.
"""

from pathlib import Path

from fastapi.testclient import TestClient

from src.remotedb.config import Settings
from tests.conftest import ADMIN_KEY, query_params, read_log

ENDPOINT = "/api/remotedb"


class TestRateLimiting:
    """Test the hourly request ceiling over HTTP."""

    def test_ceiling_enforced(self, test_client: TestClient, test_settings: Settings, log_dir: Path) -> None:
        test_settings.security.max_requests_per_hour = 3

        statuses = [test_client.get(ENDPOINT, params=query_params()).status_code for _ in range(4)]

        assert statuses == [200, 200, 200, 429]

    def test_rate_limited_response(self, test_client: TestClient, test_settings: Settings, fake_db, log_dir: Path) -> None:
        test_settings.security.max_requests_per_hour = 1
        test_client.get(ENDPOINT, params=query_params())

        response = test_client.get(ENDPOINT, params=query_params())

        assert response.status_code == 429
        assert response.json() == {
            "query_status": "ERROR",
            "response": "Rate limit exceeded. Try again later.",
        }
        assert 0 < int(response.headers["Retry-After"]) <= 3600
        assert len(fake_db.connections) == 1
        assert read_log(log_dir, "api")[-1].endswith("Rate limit exceeded for IP: testclient")

    def test_unauthenticated_requests_not_counted(self, test_client: TestClient, test_settings: Settings) -> None:
        test_settings.security.max_requests_per_hour = 1

        for _ in range(3):
            assert test_client.get(ENDPOINT, params=query_params(apikey="wrong")).status_code == 401

        assert test_client.get(ENDPOINT, params=query_params()).status_code == 200

    def test_invalid_requests_are_counted(self, test_client: TestClient, test_settings: Settings) -> None:
        test_settings.security.max_requests_per_hour = 2

        assert test_client.get(ENDPOINT, params=query_params(query=None)).status_code == 400
        assert test_client.get(ENDPOINT, params=query_params(query="SELECT 1 -- x")).status_code == 400
        assert test_client.get(ENDPOINT, params=query_params()).status_code == 429

    def test_privileged_key_shares_client_allowance(self, test_client: TestClient, test_settings: Settings) -> None:
        test_settings.security.max_requests_per_hour = 1

        assert test_client.get(ENDPOINT, params=query_params()).status_code == 200
        assert test_client.get(ENDPOINT, params=query_params(apikey=ADMIN_KEY)).status_code == 429

    def test_record_persisted(self, test_client: TestClient, test_settings: Settings) -> None:
        test_client.get(ENDPOINT, params=query_params())

        records = list(test_settings.security.rate_limit_dir.glob("*.txt"))
        assert len(records) == 1
        assert len(records[0].read_text().split("\n")) == 1
