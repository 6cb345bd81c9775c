"""
Readiness checks for the gateway's collaborators.

Each probe is blocking and runs in a worker thread:
- configuration: a standard API key is set
- query_log: the log directory exists or can be created, and is writable
- rate_limit_store: same for the rate limit directory
- database: the MySQL server accepts a connection
"""

import asyncio
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import structlog

from ..config import Settings
from .executor import QueryExecutor

logger = structlog.get_logger(__name__)

HEALTHY = "healthy"
UNHEALTHY = "unhealthy"


@dataclass
class HealthCheck:
    """Outcome of one probe."""
    name: str
    status: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    last_check: float = field(default_factory=time.time)

    @property
    def ok(self) -> bool:
        return self.status == HEALTHY


@dataclass
class HealthStatus:
    """Aggregate of every probe; healthy only if all probes are."""
    checks: Dict[str, HealthCheck]
    timestamp: float = field(default_factory=time.time)

    @property
    def failed_checks(self) -> List[str]:
        return [name for name, check in self.checks.items() if not check.ok]

    @property
    def is_healthy(self) -> bool:
        return not self.failed_checks


def _directory_writable(path: Path) -> bool:
    path.mkdir(parents=True, exist_ok=True)
    return os.access(path, os.W_OK)


class HealthChecker:

    def __init__(self, settings: Settings, executor: Optional[QueryExecutor] = None) -> None:
        self.settings = settings
        self.executor = executor or QueryExecutor(settings.database)

    def probes(self) -> Dict[str, Callable[[], HealthCheck]]:
        return {
            "configuration": self._check_configuration,
            "query_log": self._check_log_directory,
            "rate_limit_store": self._check_rate_limit_store,
            "database": self._check_database,
        }

    async def check_all(self) -> HealthStatus:
        """Run every probe concurrently. A probe that raises counts as unhealthy."""
        probes = self.probes()
        results = await asyncio.gather(
            *(asyncio.to_thread(probe) for probe in probes.values()),
            return_exceptions=True,
        )

        checks: Dict[str, HealthCheck] = {}
        for name, result in zip(probes, results):
            if isinstance(result, HealthCheck):
                checks[name] = result
                continue
            logger.warning("Health probe raised", check=name, error=str(result))
            checks[name] = HealthCheck(
                name=name,
                status=UNHEALTHY,
                message=f"Check failed: {result}",
                details={"error_type": type(result).__name__},
            )

        return HealthStatus(checks=checks)

    def _check_configuration(self) -> HealthCheck:
        security = self.settings.security
        if not security.api_key:
            return HealthCheck("configuration", UNHEALTHY, "API key not configured")
        return HealthCheck(
            "configuration",
            HEALTHY,
            "Configuration OK",
            {"admin_key_configured": bool(security.admin_api_key)},
        )

    def _check_log_directory(self) -> HealthCheck:
        logging_settings = self.settings.logging
        api_log = logging_settings.resolve_path(logging_settings.api_log_file)
        if not logging_settings.enable_logging or api_log is None:
            return HealthCheck("query_log", HEALTHY, "Query log file disabled")
        return self._check_directory("query_log", api_log.parent)

    def _check_rate_limit_store(self) -> HealthCheck:
        return self._check_directory("rate_limit_store", self.settings.security.rate_limit_dir)

    def _check_directory(self, name: str, path: Path) -> HealthCheck:
        if _directory_writable(path):
            return HealthCheck(name, HEALTHY, "Directory writable", {"path": str(path)})
        return HealthCheck(name, UNHEALTHY, "Directory not writable", {"path": str(path)})

    def _check_database(self) -> HealthCheck:
        started = time.perf_counter()
        self.executor.ping()
        return HealthCheck(
            "database",
            HEALTHY,
            "Database server reachable",
            {
                "host": self.settings.database.host,
                "port": self.settings.database.port,
                "response_time_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
