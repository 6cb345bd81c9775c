"""
Pytest configuration and shared fixtures.

Contains common test fixtures and setup for all test modules, including
an in-memory stand-in for the MySQL driver.
"""

import tempfile
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional
from unittest.mock import patch

import mysql.connector
import pytest
from fastapi.testclient import TestClient

from src.remotedb.config import (
    DatabaseSettings,
    LoggingSettings,
    SecuritySettings,
    Settings,
    get_settings,
)
from src.remotedb.main import app

USER_KEY = "test_user_key_0123456789abcdef0123"
ADMIN_KEY = "test_admin_key_0123456789abcdef012"


class FakeCursor:
    """Minimal cursor with the attributes the executor relies on."""

    def __init__(self, db: "FakeDatabase") -> None:
        self.db = db
        self.with_rows = False
        self.rowcount = -1
        self._rows: List[Dict[str, Any]] = []
        self.closed = False

    def execute(self, query: str) -> None:
        self.db.executed.append(query)
        if self.db.fail_on and self.db.fail_on in query:
            raise mysql.connector.ProgrammingError(msg="You have an error in your SQL syntax near 'secret_table'")

        if query.strip().lower().startswith(("select", "show", "describe", "desc", "explain", "with")):
            self._rows = [dict(row) for row in self.db.rows]
            self.with_rows = True
            self.rowcount = len(self._rows)
        else:
            self._rows = []
            self.with_rows = False
            self.rowcount = self.db.affected_rows

    def fetchall(self) -> List[Dict[str, Any]]:
        rows, self._rows = self._rows, []
        return rows

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    def __init__(self, db: "FakeDatabase", params: Dict[str, Any], connection_id: int) -> None:
        self.db = db
        self.params = params
        self.connection_id = connection_id
        self.closed = False
        self.committed = False
        self.rolled_back = False
        self.cursors: List[FakeCursor] = []

    def cursor(self, dictionary: bool = False) -> FakeCursor:
        cursor = FakeCursor(self.db)
        self.cursors.append(cursor)
        return cursor

    def commit(self) -> None:
        self.committed = True

    def rollback(self) -> None:
        self.rolled_back = True

    def close(self) -> None:
        self.closed = True


class FakeDatabase:
    """Records connections and statements; behaviour is set per test."""

    def __init__(self) -> None:
        self.rows: List[Dict[str, Any]] = [
            {"id": 1, "player": "alice", "score": 1200},
            {"id": 2, "player": "bob", "score": 950},
        ]
        self.affected_rows = 1
        self.fail_on: Optional[str] = None
        self.unknown_keyspaces = {"missing_db"}
        self.reachable = True
        self.connections: List[FakeConnection] = []
        self.executed: List[str] = []

    def connect(self, **params: Any) -> FakeConnection:
        if not self.reachable:
            raise mysql.connector.InterfaceError(msg="Can't connect to MySQL server on 'db.test:3306' (111)")
        if params.get("database") in self.unknown_keyspaces:
            raise mysql.connector.ProgrammingError(msg=f"1049 (42000): Unknown database '{params['database']}'")
        connection = FakeConnection(self, params, connection_id=len(self.connections) + 1)
        self.connections.append(connection)
        return connection


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Temporary directory for logs and rate limit records."""
    with tempfile.TemporaryDirectory() as temp:
        yield Path(temp)


@pytest.fixture
def log_dir(temp_dir: Path) -> Path:
    return temp_dir / "logs"


@pytest.fixture
def test_settings(temp_dir: Path, log_dir: Path) -> Settings:
    """Settings pointing every file at the temporary directory."""
    return Settings(
        log_level="DEBUG",
        database=DatabaseSettings(
            host="db.test",
            port=3306,
            user="gateway",
            password="gateway_secret",
            connect_timeout_seconds=2,
            query_timeout_seconds=5,
        ),
        security=SecuritySettings(
            api_key=USER_KEY,
            admin_api_key=ADMIN_KEY,
            max_requests_per_hour=100,
            max_query_length=64,
            rate_limit_dir=temp_dir / "rate_limit",
        ),
        logging=LoggingSettings(
            enable_logging=True,
            log_level="ALL",
            api_log_file=str(log_dir / "api_{date}.log"),
            error_log_file=str(log_dir / "errors_{date}.log"),
            keep_logs_for_days=30,
            auto_cleanup_logs=True,
            cleanup_probability=0.0,
        ),
    )


@pytest.fixture
def fake_db() -> Generator[FakeDatabase, None, None]:
    """Replace mysql.connector.connect with an in-memory database."""
    db = FakeDatabase()
    with patch("mysql.connector.connect", side_effect=db.connect):
        yield db


@pytest.fixture
def test_client(test_settings: Settings, fake_db: FakeDatabase) -> Generator[TestClient, None, None]:
    """FastAPI test client with test configuration."""
    # Clear Prometheus registry to avoid duplicates
    from prometheus_client import REGISTRY
    REGISTRY._collector_to_names.clear()
    REGISTRY._names_to_collectors.clear()

    app.dependency_overrides[get_settings] = lambda: test_settings
    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.dependency_overrides.clear()


def read_log(log_dir: Path, prefix: str) -> List[str]:
    """All lines of the log files starting with ``prefix``."""
    lines: List[str] = []
    for path in sorted(log_dir.glob(f"{prefix}_*.log")):
        lines.extend(path.read_text(encoding="utf-8").splitlines())
    return lines


def query_params(
    apikey: Optional[str] = USER_KEY,
    keyspace: Optional[str] = "game_db",
    query: Optional[str] = "SELECT * FROM scores",
) -> Dict[str, str]:
    """Request parameters, leaving out any set to None."""
    params = {"apikey": apikey, "keyspace": keyspace, "query": query}
    return {key: value for key, value in params.items() if value is not None}
