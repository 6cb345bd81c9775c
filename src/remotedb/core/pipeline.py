"""
Request processing pipeline.

Orchestrates one query request from parameters to response:
1. Configuration check
2. Authentication
3. Rate limiting
4. Parameter parsing
5. Query validation (standard tier only)
6. Execution
7. Query log + response shaping

Every failure is raised as a RemoteDbException and ends the request.
"""

import asyncio
import json
import random
import time
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Set

import structlog
from fastapi.encoders import jsonable_encoder

from ..config import Settings
from ..models.query import AccessTier, QueryRequest, QueryResponse
from .auth import authenticate_api_key, mask_key
from .exceptions import (
    AuthenticationError,
    BadRequestError,
    ConfigurationError,
    DatabaseConnectionError,
    QueryExecutionError,
    RateLimitError,
)
from .executor import CancelToken, QueryExecutor, QueryOutcome
from .metrics import MetricsCollector
from .query_log import QueryLog, truncate_query
from .rate_limit import SlidingWindowRateLimiter, get_rate_limiter
from .validation import find_violation

logger = structlog.get_logger(__name__)

# Strong references to in-flight retention sweeps
_background_tasks: Set["asyncio.Task[Any]"] = set()


def encode_payload(payload: Any) -> Any:
    """Make driver values (Decimal, datetime, bytes...) JSON-compatible."""
    return jsonable_encoder(
        payload,
        custom_encoder={bytes: lambda b: b.decode("utf-8", errors="replace")},
    )


def _consume_result(task: "asyncio.Future[Any]") -> None:
    """Retrieve the outcome of a worker nobody awaits any more."""
    if not task.cancelled():
        task.exception()


def payload_length(payload: Any) -> int:
    """Byte length of the compact JSON encoding of ``payload``."""
    return len(json.dumps(payload, separators=(",", ":")).encode("utf-8"))


class QueryPipeline:
    """
    Main processing pipeline for remote queries.

    Holds no per-request state; one instance may serve many requests.
    """

    def __init__(
        self,
        settings: Settings,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        query_log: Optional[QueryLog] = None,
        executor: Optional[QueryExecutor] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.settings = settings
        self.rate_limiter = rate_limiter or get_rate_limiter(settings.security)
        self.query_log = query_log or QueryLog(settings.logging)
        self.executor = executor or QueryExecutor(settings.database)
        self.metrics = metrics

    def _reject(self, reason: str, tier: Optional[AccessTier] = None) -> None:
        if self.metrics:
            self.metrics.record_rejection(reason, tier.value if tier else None)

    def ensure_configured(self) -> None:
        """Refuse to serve without a standard API key."""
        if not self.settings.security.api_key:
            logger.error("API key not configured")
            self._reject("configuration")
            raise ConfigurationError("API key not configured. Please update config.yaml.")

    def authenticate(self, params: Mapping[str, Any], client_ip: str) -> AccessTier:
        presented = params.get("apikey")
        security = self.settings.security
        try:
            return authenticate_api_key(presented, security.api_key, security.admin_api_key)
        except AuthenticationError as e:
            logger.warning(
                "Authentication failed",
                client_ip=client_ip,
                reason=str(e),
                apikey=mask_key(presented),
            )
            self._reject("unauthorized")
            raise

    async def check_rate_limit(self, client_ip: str) -> None:
        try:
            await self.rate_limiter.check_rate_limit(client_ip)
        except RateLimitError:
            await self.query_log.warning(f"Rate limit exceeded for IP: {client_ip}")
            self._reject("rate_limited")
            raise

    def parse_request(
        self,
        params: Mapping[str, Any],
        tier: AccessTier,
        client_ip: str,
        received_at: datetime,
    ) -> QueryRequest:
        """Extract keyspace and query; both are required and non-empty."""
        keyspace = params.get("keyspace")
        if not keyspace:
            self._reject("missing_keyspace", tier)
            raise BadRequestError("You must set a keyspace (database name)!")

        query = params.get("query")
        if not query:
            self._reject("missing_query", tier)
            raise BadRequestError("You must set a query!")

        return QueryRequest(
            keyspace=str(keyspace),
            query=str(query),
            tier=tier,
            client_ip=client_ip,
            received_at=received_at,
        )

    async def validate(self, request: QueryRequest) -> None:
        """Apply the denylist to standard-tier requests."""
        if request.tier is AccessTier.PRIVILEGED:
            return

        violation = find_violation(request.query, self.settings.security.max_query_length)
        if violation is None:
            return

        logger.warning(
            "Invalid query attempt",
            client_ip=request.client_ip,
            keyspace=request.keyspace,
            rule=violation,
        )
        await self.query_log.warning(
            f"Invalid query attempt from {request.client_ip}: {truncate_query(request.query)}"
        )
        self._reject(violation, request.tier)
        raise BadRequestError("Invalid or unsafe query.", details={"rule": violation})

    async def _run_with_deadline(self, request: QueryRequest) -> QueryOutcome:
        """
        Run the statement in a worker thread, bounded by the query timeout.

        On expiry the statement is cancelled: rolled back by the worker and
        killed on the server. A statement already committing is left to
        finish and its real outcome returned.
        """
        token = CancelToken()
        worker = asyncio.ensure_future(
            asyncio.to_thread(self.executor.execute, request.keyspace, request.query, token)
        )
        worker.add_done_callback(_consume_result)

        try:
            return await asyncio.wait_for(
                asyncio.shield(worker),
                timeout=self.settings.database.query_timeout_seconds,
            )
        except asyncio.TimeoutError:
            if not token.cancel():
                return await worker
            if token.connection_id is not None:
                await asyncio.to_thread(self.executor.kill, token.connection_id)
            raise

    async def execute(self, request: QueryRequest) -> QueryOutcome:
        """Run the statement, writing failures to the query log."""
        try:
            return await self._run_with_deadline(request)
        except DatabaseConnectionError as e:
            await self.query_log.error(
                f"Database connection failed for keyspace '{request.keyspace}': "
                f"{e.details.get('driver_error', '')}"
            )
            self._reject("connection_failed", request.tier)
            raise
        except QueryExecutionError as e:
            await self.query_log.error(f"Database error: {e.details.get('driver_error', '')}")
            await self._log_execution_failure(request)
            raise
        except asyncio.TimeoutError as e:
            logger.error(
                "Query timed out",
                keyspace=request.keyspace,
                timeout=self.settings.database.query_timeout_seconds,
            )
            await self.query_log.error(
                f"Database error: query timed out after {self.settings.database.query_timeout_seconds}s"
            )
            await self._log_execution_failure(request)
            raise QueryExecutionError(details={"driver_error": "timeout"}) from e

    async def _log_execution_failure(self, request: QueryRequest) -> None:
        await self.query_log.error(
            f"Query execution failed from {request.client_ip} on '{request.keyspace}': "
            f"{truncate_query(request.query)}"
        )
        self._reject("execution_failed", request.tier)

    async def handle(self, params: Mapping[str, Any], client_ip: str) -> QueryResponse:
        """
        Process one request through the complete pipeline.

        ``params`` is the merged request parameter mapping.
        """
        started = time.perf_counter()
        received_at = datetime.now(timezone.utc)

        self.ensure_configured()
        tier = self.authenticate(params, client_ip)
        await self.check_rate_limit(client_ip)

        request = self.parse_request(params, tier, client_ip, received_at)
        await self.validate(request)

        outcome = await self.execute(request)

        payload = encode_payload(outcome.payload)
        response_length = payload_length(payload)
        query_time = time.perf_counter() - started

        await self.query_log.info(
            f"{client_ip} ({tier.value}) executed query on '{request.keyspace}': "
            f"{truncate_query(request.query)}"
        )
        logger.info(
            "Query executed",
            client_ip=client_ip,
            tier=tier.value,
            keyspace=request.keyspace,
            is_read=outcome.is_read,
            affected_rows=outcome.affected_rows,
            query_time=query_time,
            response_length=response_length,
        )

        if self.metrics:
            self.metrics.record_query(tier.value, query_time, response_length)

        return QueryResponse(
            query_time=query_time,
            response_length=response_length,
            response=payload,
        )

    def maybe_schedule_cleanup(self) -> Optional["asyncio.Task[Any]"]:
        """
        Occasionally start the log retention sweep in the background.

        The sweep never blocks or fails the request that triggered it.
        """
        logging_settings = self.settings.logging
        if not logging_settings.auto_cleanup_logs:
            return None
        if random.random() >= logging_settings.cleanup_probability:
            return None

        task = asyncio.create_task(self.query_log.cleanup_old_logs())
        _background_tasks.add(task)
        task.add_done_callback(self._cleanup_done)
        return task

    def _cleanup_done(self, task: "asyncio.Task[Any]") -> None:
        _background_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Log retention sweep failed", error=str(error), error_type=type(error).__name__)
            return
        if self.metrics:
            self.metrics.record_log_cleanup(len(task.result()))
