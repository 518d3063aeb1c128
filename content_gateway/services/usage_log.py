"""
Usage Log - Asynchronous Request Logging

This module records one entry per completed protected request to an
append-only PostgreSQL table without touching the response path.

Entries are handed to a UsageLogWriter, which owns a bounded asyncio.Queue and
a fixed pool of worker tasks. submit() never awaits; a full queue drops the
entry. Write failures are logged and never retried. On shutdown the queue is
drained for a bounded time and anything left is reported as lost.

Pattern: Repository pattern (Percival & Gregory pp. 86) - UsageLogStore
Pattern: Bulkhead - bounded queue and worker pool cap concurrent store connections
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import psycopg
from psycopg_pool import AsyncConnectionPool

from content_gateway.core.config import Settings
from content_gateway.core.exceptions import UsageLogError
from content_gateway.observability.logging import get_logger
from content_gateway.observability.metrics import record_usage_log_write

logger = get_logger(__name__)


CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS request_logs (
    id SERIAL PRIMARY KEY,
    user_id TEXT,
    endpoint TEXT,
    status_code INT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

INSERT_SQL = """
INSERT INTO request_logs (user_id, endpoint, status_code, created_at)
VALUES (%s, %s, %s, %s)
"""


# =============================================================================
# Usage Log Entry
# =============================================================================


@dataclass(frozen=True)
class UsageLogEntry:
    """
    Immutable record of one completed request.

    Attributes:
        identity: Caller identity
        endpoint: Request path
        status_code: Final response status
        created_at: When the logging stage began handling the request (UTC)
    """

    identity: str
    endpoint: str
    status_code: int
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# =============================================================================
# Store Interface
# =============================================================================


class UsageLogStore(ABC):
    """Append-only persistence for usage log entries."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create the backing table if it does not exist (idempotent)."""

    @abstractmethod
    async def insert(self, entry: UsageLogEntry) -> None:
        """
        Persist one entry.

        Raises:
            UsageLogError: if the write fails
        """

    async def close(self) -> None:
        """Release any held resources."""
        return None


class PostgresUsageLogStore(UsageLogStore):
    """
    PostgreSQL store using a psycopg async connection pool.

    The pool is sized to the writer's worker count, so the number of
    concurrent connections to the database never exceeds it.
    """

    def __init__(self, conninfo: str, max_connections: int = 4, connect_timeout: float = 5.0) -> None:
        # timeout bounds waiting for a pooled connection; connect_timeout bounds
        # each libpq connection attempt (whole seconds)
        self._pool = AsyncConnectionPool(
            conninfo,
            min_size=1,
            max_size=max_connections,
            open=False,
            timeout=connect_timeout,
            kwargs={"connect_timeout": max(1, round(connect_timeout))},
        )
        self._opened = False

    async def _ensure_open(self) -> None:
        if not self._opened:
            await self._pool.open(wait=False)
            self._opened = True

    async def initialize(self) -> None:
        try:
            await self._ensure_open()
            async with self._pool.connection() as conn:
                await conn.execute(CREATE_TABLE_SQL)
        except psycopg.Error as e:
            raise UsageLogError(f"Failed to create request_logs table: {e}") from e

    async def insert(self, entry: UsageLogEntry) -> None:
        # request_logs.created_at is TIMESTAMP without time zone; store UTC
        created_at = entry.created_at.astimezone(timezone.utc).replace(tzinfo=None)
        try:
            await self._ensure_open()
            async with self._pool.connection() as conn:
                await conn.execute(
                    INSERT_SQL,
                    (entry.identity, entry.endpoint, entry.status_code, created_at),
                )
        except psycopg.Error as e:
            raise UsageLogError(f"Failed to insert usage log entry: {e}") from e

    async def close(self) -> None:
        if self._opened:
            await self._pool.close()
            self._opened = False


# =============================================================================
# Background Writer
# =============================================================================


class UsageLogWriter:
    """
    Bounded fire-and-forget writer.

    With no store the writer is disabled: start() does nothing and submit()
    is a no-op.

    Example:
        >>> writer = UsageLogWriter(store, queue_size=1000, workers=4)
        >>> await writer.start()
        >>> writer.submit(UsageLogEntry("user_123", "/api/generate-content", 200))
        >>> await writer.stop()
    """

    def __init__(
        self,
        store: Optional[UsageLogStore],
        queue_size: int = 1000,
        workers: int = 4,
        drain_timeout_seconds: float = 5.0,
    ) -> None:
        self._store = store
        self._queue_size = queue_size
        self._worker_count = workers
        self._drain_timeout = drain_timeout_seconds
        self._queue: Optional[asyncio.Queue[UsageLogEntry]] = None
        self._workers: list[asyncio.Task[None]] = []

    @property
    def enabled(self) -> bool:
        return self._store is not None

    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    async def start(self) -> None:
        """Create the table and start the worker pool."""
        if self._store is None or self.running:
            return

        try:
            await self._store.initialize()
        except UsageLogError as e:
            # Inserts may still succeed once the database is reachable
            logger.warning("usage log table initialization failed", error=e.message)

        queue: asyncio.Queue[UsageLogEntry] = asyncio.Queue(maxsize=self._queue_size)
        self._queue = queue
        self._workers = [
            asyncio.create_task(self._run_worker(queue, self._store), name=f"usage-log-writer-{i}")
            for i in range(self._worker_count)
        ]
        logger.info("usage log writer started", workers=self._worker_count)

    def submit(self, entry: UsageLogEntry) -> bool:
        """
        Queue an entry for writing without waiting.

        Returns:
            True if the entry was queued
        """
        if self._store is None:
            return False

        if self._queue is None or not self.running:
            logger.warning("usage log writer not running, entry dropped", identity=entry.identity)
            record_usage_log_write("dropped")
            return False

        try:
            self._queue.put_nowait(entry)
        except asyncio.QueueFull:
            logger.warning(
                "usage log queue full, entry dropped",
                identity=entry.identity,
                endpoint=entry.endpoint,
            )
            record_usage_log_write("dropped")
            return False
        return True

    async def _run_worker(self, queue: asyncio.Queue[UsageLogEntry], store: UsageLogStore) -> None:
        while True:
            entry = await queue.get()
            try:
                await store.insert(entry)
                record_usage_log_write("written")
            except Exception as e:
                # A failed write is reported and forgotten; the worker keeps running
                record_usage_log_write("failed")
                logger.warning(
                    "usage log write failed",
                    identity=entry.identity,
                    endpoint=entry.endpoint,
                    error=f"{type(e).__name__}: {e}",
                )
            finally:
                queue.task_done()

    async def stop(self) -> int:
        """
        Drain pending entries (bounded by the drain timeout) and stop workers.

        Returns:
            Number of entries left unwritten
        """
        lost = 0
        if self.running and self._queue is not None:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=self._drain_timeout)
            except asyncio.TimeoutError:
                lost = self._queue.qsize()
                logger.warning("usage log drain timed out", lost_entries=lost)

            for task in self._workers:
                task.cancel()
            await asyncio.gather(*self._workers, return_exceptions=True)
            self._workers = []

        if self._store is not None:
            await self._store.close()
        return lost


# =============================================================================
# Factory
# =============================================================================


def create_usage_log_writer(settings: Settings) -> UsageLogWriter:
    """Build the usage log writer; no DATABASE_URL disables it."""
    conninfo = settings.database_url.get_secret_value()
    store: Optional[UsageLogStore] = None
    if conninfo:
        store = PostgresUsageLogStore(
            conninfo,
            max_connections=settings.usage_log_workers,
            connect_timeout=settings.usage_log_connect_timeout_seconds,
        )

    return UsageLogWriter(
        store,
        queue_size=settings.usage_log_queue_size,
        workers=settings.usage_log_workers,
        drain_timeout_seconds=settings.usage_log_drain_timeout_seconds,
    )
