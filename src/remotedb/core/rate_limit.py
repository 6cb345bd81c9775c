"""
Sliding-window rate limiting per client address.

Each client gets one record file holding the UNIX timestamps of its
allowed requests within the trailing window, newline separated.
"""

import asyncio
import fcntl
import hashlib
import os
import time
import uuid
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, List, Optional

import aiofiles
import aiofiles.os
import structlog

from ..config import SecuritySettings
from .exceptions import RateLimitError

logger = structlog.get_logger(__name__)

WINDOW_SECONDS = 3600

# Per-identity locks, shared by every limiter in the process. An entry lives
# only while some request holds or waits on its lock.
_identity_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


@dataclass
class RateLimitDecision:
    """Outcome of a single rate limit check."""
    allowed: bool
    remaining: int
    retry_after: int


class SlidingWindowRateLimiter:
    """
    Per-client sliding window limiter with durable storage.

    Updates for one client are serialized with an in-process lock plus an
    exclusive flock on a sidecar file, so several worker processes never
    lose an increment. Records are persisted with write-to-temp + atomic
    replace, so a record is never torn.
    """

    def __init__(self, storage_dir: Path, max_requests: int, window_seconds: int = WINDOW_SECONDS) -> None:
        self.storage_dir = Path(storage_dir)
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    def record_path(self, identity: str) -> Path:
        """Record file for a client, named by a SHA-256 of its identity."""
        digest = hashlib.sha256(identity.encode("utf-8")).hexdigest()
        return self.storage_dir / f"{digest}.txt"

    @asynccontextmanager
    async def _exclusive(self, path: Path) -> AsyncIterator[None]:
        """Hold the cross-process lock for one record."""
        await aiofiles.os.makedirs(self.storage_dir, exist_ok=True)
        fd = await asyncio.to_thread(os.open, path.with_suffix(".lock"), os.O_CREAT | os.O_RDWR, 0o600)
        try:
            await asyncio.to_thread(fcntl.flock, fd, fcntl.LOCK_EX)
            yield
        finally:
            # Closing the descriptor releases the flock
            os.close(fd)

    async def _load(self, path: Path) -> List[int]:
        """Read stored timestamps. Missing or corrupt records read as empty."""
        try:
            async with aiofiles.open(path, "r") as f:
                content = await f.read()
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.warning("Unreadable rate limit record, resetting window", path=str(path), error=str(e))
            return []

        timestamps = []
        for line in content.split():
            try:
                timestamps.append(int(float(line)))
            except ValueError:
                continue
        return timestamps

    async def _store(self, path: Path, timestamps: List[int]) -> None:
        """Persist timestamps atomically."""
        await aiofiles.os.makedirs(self.storage_dir, exist_ok=True)
        tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
        async with aiofiles.open(tmp_path, "w") as f:
            await f.write("\n".join(str(ts) for ts in timestamps))
        await aiofiles.os.replace(tmp_path, path)

    async def check(self, identity: str, now: Optional[float] = None) -> RateLimitDecision:
        """
        Check and record a request for ``identity``.

        Denied requests are not recorded.
        """
        path = self.record_path(identity)
        lock = _identity_locks.setdefault(str(path), asyncio.Lock())

        async with lock, self._exclusive(path):
            current = int(now if now is not None else time.time())
            window_start = current - self.window_seconds

            timestamps = [ts for ts in await self._load(path) if ts > window_start]

            if len(timestamps) >= self.max_requests:
                oldest = min(timestamps) if timestamps else current
                retry_after = max(1, oldest + self.window_seconds - current)
                return RateLimitDecision(allowed=False, remaining=0, retry_after=retry_after)

            timestamps.append(current)
            await self._store(path, timestamps)

            return RateLimitDecision(
                allowed=True,
                remaining=self.max_requests - len(timestamps),
                retry_after=0,
            )

    async def check_rate_limit(self, identity: str) -> None:
        """
        Check rate limit for a client.

        Raises RateLimitError if limit exceeded.
        """
        decision = await self.check(identity)

        if not decision.allowed:
            logger.warning(
                "Rate limit exceeded",
                client_ip=identity,
                retry_after=decision.retry_after,
                max_requests=self.max_requests,
            )
            raise RateLimitError(retry_after=decision.retry_after)

        logger.debug(
            "Rate limit check passed",
            client_ip=identity,
            remaining=decision.remaining,
        )


def get_rate_limiter(settings: SecuritySettings) -> SlidingWindowRateLimiter:
    """Build a limiter for the configured store and ceiling."""
    return SlidingWindowRateLimiter(
        storage_dir=settings.rate_limit_dir,
        max_requests=settings.max_requests_per_hour,
    )
