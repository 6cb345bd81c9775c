"""
Query execution against a keyspace.

Opens one MySQL connection per call (no pooling), runs the statement and
normalizes the result. Blocking; callers on the event loop should run it
in a worker thread.

Statements run with autocommit off and are committed only if the caller
has not abandoned them. The driver's read/write timeouts bound every
socket operation so a worker never blocks forever on a dead server.
"""

import math
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import mysql.connector
import structlog

from ..config import DatabaseSettings
from .exceptions import DatabaseConnectionError, QueryExecutionError

logger = structlog.get_logger(__name__)

READ_KEYWORDS = frozenset({"select", "show", "describe", "desc", "explain", "with"})

_LEADING_KEYWORD = re.compile(r"^\s*\(*\s*([A-Za-z]+)")


def is_read_statement(query: str) -> bool:
    """Classify a statement by its leading keyword."""
    match = _LEADING_KEYWORD.match(query)
    return bool(match) and match.group(1).lower() in READ_KEYWORDS


class CancelToken:
    """
    Shared between the event loop and the worker running one statement.

    Exactly one of ``cancel`` and ``begin_commit`` wins; the loser
    returns False.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = "running"
        self.connection_id: Optional[int] = None

    def cancel(self) -> bool:
        with self._lock:
            if self._state == "committing":
                return False
            self._state = "cancelled"
            return True

    def begin_commit(self) -> bool:
        with self._lock:
            if self._state == "cancelled":
                return False
            self._state = "committing"
            return True

    @property
    def cancelled(self) -> bool:
        return self._state == "cancelled"


@dataclass
class QueryOutcome:
    """Normalized result of one statement."""
    is_read: bool
    rows: List[Dict[str, Any]] = field(default_factory=list)
    affected_rows: int = 0

    @property
    def payload(self) -> Any:
        """Value returned to the client: rows for reads, ``True`` for writes."""
        if self.is_read:
            return self.rows
        return True


class QueryExecutor:
    """
    Runs raw SQL on the database named by a keyspace.

    No sandboxing: the validator is the only gate for standard callers.
    """

    def __init__(self, settings: DatabaseSettings) -> None:
        self.settings = settings

    def _connect(self, database: Optional[str] = None) -> Any:
        io_timeout = max(1, math.ceil(self.settings.query_timeout_seconds))
        params: Dict[str, Any] = {
            "host": self.settings.host,
            "port": self.settings.port,
            "user": self.settings.user,
            "password": self.settings.password,
            "connection_timeout": self.settings.connect_timeout_seconds,
            "read_timeout": io_timeout,
            "write_timeout": io_timeout,
            "autocommit": False,
        }
        if database is not None:
            params["database"] = database
        return mysql.connector.connect(**params)

    def connect(self, keyspace: str) -> Any:
        """
        Open a connection scoped to ``keyspace``.

        Raises DatabaseConnectionError; the driver message only goes to
        the exception details for server-side logging.
        """
        try:
            return self._connect(database=keyspace)
        except mysql.connector.Error as e:
            logger.error(
                "Database connection failed",
                keyspace=keyspace,
                host=self.settings.host,
                port=self.settings.port,
                error=str(e),
            )
            raise DatabaseConnectionError(details={"keyspace": keyspace, "driver_error": str(e)}) from e

    def run(self, connection: Any, query: str, token: Optional[CancelToken] = None) -> QueryOutcome:
        """
        Execute ``query`` on an open connection and commit it.

        If ``token`` was cancelled while the statement ran, the work is
        rolled back and QueryExecutionError raised instead.
        """
        read = is_read_statement(query)
        cursor = None
        try:
            cursor = connection.cursor(dictionary=True)
            cursor.execute(query)
            if read:
                rows = [dict(row) for row in cursor.fetchall()] if cursor.with_rows else []
                outcome = QueryOutcome(is_read=True, rows=rows, affected_rows=len(rows))
            else:
                if cursor.with_rows:
                    # Drain unexpected result sets so the connection closes cleanly
                    cursor.fetchall()
                outcome = QueryOutcome(is_read=False, affected_rows=max(cursor.rowcount, 0))

            if token is not None and not token.begin_commit():
                connection.rollback()
                logger.warning("Abandoned statement rolled back", statement_type="read" if read else "write")
                raise QueryExecutionError(details={"driver_error": "cancelled"})

            connection.commit()
            return outcome
        except mysql.connector.Error as e:
            logger.error("Database error", error=str(e), statement_type="read" if read else "write")
            raise QueryExecutionError(details={"driver_error": str(e)}) from e
        finally:
            if cursor is not None:
                try:
                    cursor.close()
                except mysql.connector.Error:
                    logger.debug("Cursor close failed", exc_info=True)

    def execute(self, keyspace: str, query: str, token: Optional[CancelToken] = None) -> QueryOutcome:
        """Connect to ``keyspace``, run ``query`` and close the connection."""
        connection = self.connect(keyspace)
        if token is not None:
            token.connection_id = getattr(connection, "connection_id", None)
        try:
            outcome = self.run(connection, query, token)
        finally:
            try:
                connection.close()
            except mysql.connector.Error:
                logger.debug("Connection close failed", keyspace=keyspace, exc_info=True)

        logger.debug(
            "Query executed",
            keyspace=keyspace,
            is_read=outcome.is_read,
            affected_rows=outcome.affected_rows,
        )
        return outcome

    def kill(self, connection_id: int) -> None:
        """
        Abort the statement running on another session.

        Best effort: failures are logged, the caller has already given up
        on the statement.
        """
        try:
            connection = self._connect()
        except mysql.connector.Error as e:
            logger.warning("Could not connect to kill query", connection_id=connection_id, error=str(e))
            return

        try:
            cursor = connection.cursor()
            cursor.execute(f"KILL QUERY {int(connection_id)}")
            cursor.close()
            logger.info("Killed running query", connection_id=connection_id)
        except mysql.connector.Error as e:
            logger.warning("Kill query failed", connection_id=connection_id, error=str(e))
        finally:
            connection.close()

    def ping(self) -> None:
        """Open and close a server connection without selecting a database."""
        try:
            connection = self._connect()
        except mysql.connector.Error as e:
            raise DatabaseConnectionError(details={"driver_error": str(e)}) from e
        connection.close()
