"""
Query log: append-only daily log files plus retention cleanup.

Lines look like ``[2025-06-10 14:30:15] <message>``. ERROR entries go to
the error log when one is configured, everything else to the API log.
"""

import asyncio
import time
import weakref
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import aiofiles
import aiofiles.os
import structlog

from ..config import LoggingSettings

logger = structlog.get_logger(__name__)

INFO = "INFO"
WARNING = "WARNING"
ERROR = "ERROR"

QUERY_PREVIEW_CHARS = 100

# Per-file locks, so concurrent requests never interleave partial lines
_file_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def truncate_query(query: str, limit: int = QUERY_PREVIEW_CHARS) -> str:
    """First ``limit`` characters of a query, for log lines."""
    return query[:limit]


class QueryLog:
    """
    Log sink gated by the configured level policy.

    ALL logs everything, ERROR only ERROR entries, NONE nothing.
    """

    def __init__(self, settings: LoggingSettings) -> None:
        self.settings = settings

    def should_log(self, level: str) -> bool:
        """Apply the enable flag and level policy."""
        if not self.settings.enable_logging:
            return False
        if self.settings.log_level == "NONE":
            return False
        if self.settings.log_level == "ERROR" and level != ERROR:
            return False
        return True

    def target_for(self, level: str) -> Optional[Path]:
        """Resolve today's file for an entry of ``level``."""
        if level == ERROR and self.settings.error_log_file:
            return self.settings.resolve_path(self.settings.error_log_file)
        if self.settings.api_log_file:
            return self.settings.resolve_path(self.settings.api_log_file)
        return None

    async def log(self, level: str, message: str) -> None:
        """Append one entry."""
        if not self.should_log(level):
            return

        line = f"[{datetime.now().strftime('%Y-%m-%d %H:%M:%S')}] {message}\n"
        path = self.target_for(level)

        if path is None:
            # No file configured, fall back to the application log
            logger.info("Query log entry", level=level, entry=line.rstrip("\n"))
            return

        lock = _file_locks.setdefault(str(path), asyncio.Lock())
        async with lock:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(path, "a", encoding="utf-8") as f:
                await f.write(line)

    async def info(self, message: str) -> None:
        await self.log(INFO, message)

    async def warning(self, message: str) -> None:
        await self.log(WARNING, message)

    async def error(self, message: str) -> None:
        await self.log(ERROR, message)

    async def cleanup_old_logs(self, now: Optional[float] = None, force: bool = False) -> List[Path]:
        """
        Delete ``*.log`` files in the API log directory older than the
        retention window. Returns the deleted paths.

        ``force`` runs the sweep even when automatic cleanup is off.
        """
        if not force and not self.settings.auto_cleanup_logs:
            return []

        keep_days = self.settings.keep_logs_for_days
        if keep_days <= 0:
            return []

        api_log = self.target_for(INFO)
        if api_log is None:
            return []

        log_dir = api_log.parent
        if not await aiofiles.os.path.isdir(log_dir):
            return []

        cutoff = (now if now is not None else time.time()) - keep_days * 24 * 60 * 60
        deleted: List[Path] = []

        for log_file in sorted(log_dir.glob("*.log")):
            try:
                if not await aiofiles.os.path.isfile(log_file):
                    continue
                if await aiofiles.os.path.getmtime(log_file) < cutoff:
                    await aiofiles.os.remove(log_file)
                    deleted.append(log_file)
            except FileNotFoundError:
                # Removed by a concurrent sweep
                continue

        logger.info(
            "Log retention sweep completed",
            log_dir=str(log_dir),
            keep_days=keep_days,
            deleted=len(deleted),
        )
        return deleted
