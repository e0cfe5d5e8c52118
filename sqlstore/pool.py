"""Bounded pool of database connections with scheduled idle maintenance."""

import logging
import threading
import time
from collections import deque
from typing import Any, Callable, Optional

from .config import PoolConfig
from .dialects import Dialect, get_dialect_for_url
from .errors import PoolClosedError, PoolExhaustedError

logger = logging.getLogger(__name__)


class PooledConnection:
    """A native driver connection checked out from (or idle in) a ConnectionPool.

    Use it as a context manager to give it back to the pool:

        with pool.acquire() as connection:
            connection.execute("SELECT 1")
    """

    def __init__(self, pool: "ConnectionPool", native: Any):
        self.pool = pool
        self.native = native
        self.in_use = False
        self.last_released_at = time.monotonic()
        self.closed = False

    def cursor(self):
        return self.native.cursor()

    def execute(self, sql: str, parameters: tuple | list = ()):
        """Execute a statement on a new cursor and return the cursor."""
        cursor = self.native.cursor()
        cursor.execute(sql, tuple(parameters))
        return cursor

    def commit(self) -> None:
        self.native.commit()

    def rollback(self) -> None:
        self.native.rollback()

    def release(self) -> None:
        """Return this connection to its pool."""
        self.pool.release(self)

    def close(self) -> None:
        """Close the native connection. Only the pool calls this."""
        if self.closed:
            return
        self.closed = True
        try:
            self.native.close()
        except Exception:  # pylint: disable=broad-except
            logger.warning("Error while closing connection %r", self.native, exc_info=True)

    def __enter__(self) -> "PooledConnection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()

    def __repr__(self) -> str:
        state = "closed" if self.closed else ("in use" if self.in_use else "idle")
        return f"<PooledConnection {state} {self.native!r}>"


class ConnectionPool:
    """Bounded set of reusable connections.

    ``acquire()`` hands out an idle connection, opens a new one while the pool
    is below ``max_size``, or waits for a release until the timeout expires.
    A maintenance thread (``start_maintenance()``) periodically closes idle
    connections above ``min_size`` once they exceeded ``idle_timeout``.
    """

    def __init__(
        self,
        connection_factory: Callable[[], Any],
        dialect: Optional[Dialect] = None,
        config: Optional[PoolConfig] = None,
        **options: Any,
    ):
        self.config = (config or PoolConfig()).with_overrides(**options)
        self.dialect = dialect
        self._connection_factory = connection_factory
        self._condition = threading.Condition(threading.Lock())
        # idle connections, least recently released on the left
        self._idle: deque[PooledConnection] = deque()
        self._in_use: set[PooledConnection] = set()
        # open connections plus connections being opened
        self._size = 0
        self._closed = False
        self._stop_event = threading.Event()
        self._maintenance_thread: Optional[threading.Thread] = None

    @classmethod
    def from_url(cls, url: str, config: Optional[PoolConfig] = None, **options: Any) -> "ConnectionPool":
        """Build a pool opening connections to the given database URL."""
        dialect = get_dialect_for_url(url)
        return cls(lambda: dialect.connect(url), dialect=dialect, config=config, **options)

    # introspection

    @property
    def size(self) -> int:
        with self._condition:
            return self._size

    @property
    def idle_count(self) -> int:
        with self._condition:
            return len(self._idle)

    @property
    def in_use_count(self) -> int:
        with self._condition:
            return len(self._in_use)

    @property
    def closed(self) -> bool:
        return self._closed

    # acquire / release

    def acquire(self, timeout: Optional[float] = None) -> PooledConnection:
        """Check a connection out of the pool.

        Args:
            timeout: Seconds to wait when the pool is exhausted; defaults to
                ``config.acquire_timeout``.

        Raises:
            PoolExhaustedError: no connection was released before the timeout.
            PoolClosedError: the pool has been shut down.
        """
        if timeout is None:
            timeout = self.config.acquire_timeout
        deadline = time.monotonic() + timeout
        with self._condition:
            while True:
                if self._closed:
                    raise PoolClosedError("Connection pool has been shut down")
                if self._idle:
                    connection = self._idle.pop()
                    self._check_out(connection)
                    return connection
                if self._size < self.config.max_size:
                    self._size += 1
                    break
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise PoolExhaustedError(
                        f"No connection available after {timeout}s "
                        f"({self._size} of max_size={self.config.max_size} in use)"
                    )
                self._condition.wait(remaining)
        # the slot is reserved, open the connection without holding the lock
        try:
            connection = self._open()
        except BaseException:
            with self._condition:
                self._size -= 1
                self._condition.notify()
            raise
        with self._condition:
            if not self._closed:
                self._check_out(connection)
                return connection
            self._size -= 1
        connection.close()
        raise PoolClosedError("Connection pool has been shut down")

    def release(self, connection: PooledConnection) -> None:
        """Give a connection back. Invalid connections are closed, not reused."""
        if connection.pool is not self:
            raise ValueError(f"{connection!r} does not belong to this pool")
        with self._condition:
            if connection not in self._in_use:
                if self._closed:
                    # already force-closed by shutdown()
                    connection.close()
                    return
                raise ValueError(f"{connection!r} is not checked out from this pool")
            closing = self._closed
        valid = not closing and (not self.config.validate_on_release or self._is_valid(connection))
        with self._condition:
            self._in_use.discard(connection)
            connection.in_use = False
            connection.last_released_at = time.monotonic()
            keep = valid and not self._closed
            if keep:
                self._idle.append(connection)
            else:
                self._size -= 1
            self._condition.notify_all()
        if keep:
            return
        if not closing:
            logger.warning("Discarding invalid connection %r", connection.native)
        connection.close()
        if not closing:
            self._fill_to_min_size()

    def _check_out(self, connection: PooledConnection) -> None:
        connection.in_use = True
        self._in_use.add(connection)

    def _open(self) -> PooledConnection:
        return PooledConnection(self, self._connection_factory())

    def _is_valid(self, connection: PooledConnection) -> bool:
        """Liveness check: run the dialect's validation query, then reset the connection."""
        query = self.dialect.validation_query if self.dialect else "SELECT 1"
        try:
            cursor = connection.native.cursor()
            try:
                cursor.execute(query)
                cursor.fetchall()
            finally:
                cursor.close()
            connection.native.rollback()
        except Exception:  # pylint: disable=broad-except
            logger.warning("Connection failed validation", exc_info=True)
            return False
        return True

    def _fill_to_min_size(self) -> None:
        """Open connections until the pool holds at least min_size of them."""
        while True:
            with self._condition:
                if self._closed or self._size >= self.config.min_size:
                    return
                self._size += 1
            try:
                connection = self._open()
            except Exception:  # pylint: disable=broad-except
                with self._condition:
                    self._size -= 1
                    self._condition.notify()
                logger.warning("Could not open a connection to refill the pool", exc_info=True)
                return
            with self._condition:
                if not self._closed:
                    connection.last_released_at = time.monotonic()
                    self._idle.append(connection)
                    self._condition.notify()
                    continue
                self._size -= 1
            connection.close()
            return

    # maintenance

    def start_maintenance(self) -> None:
        """Start the periodic maintenance thread (no-op when already running)."""
        with self._condition:
            if self._closed:
                raise PoolClosedError("Connection pool has been shut down")
            if self._maintenance_thread is not None and self._maintenance_thread.is_alive():
                return
            self._stop_event.clear()
            thread = threading.Thread(
                target=self._maintenance_loop,
                name="sqlstore-pool-maintenance",
                daemon=True,
            )
            self._maintenance_thread = thread
        thread.start()

    def stop_maintenance(self) -> None:
        """Stop the maintenance thread and wait for it to exit."""
        with self._condition:
            thread = self._maintenance_thread
            self._maintenance_thread = None
        if thread is None:
            return
        self._stop_event.set()
        if thread is not threading.current_thread():
            thread.join()

    @property
    def maintenance_running(self) -> bool:
        thread = self._maintenance_thread
        return thread is not None and thread.is_alive()

    def _maintenance_loop(self) -> None:
        # Event.wait sleeps without holding the pool lock
        while not self._stop_event.wait(self.config.maintenance_interval):
            try:
                self.run_maintenance()
            except Exception:  # pylint: disable=broad-except
                logger.exception("Connection pool maintenance failed")

    def run_maintenance(self) -> int:
        """Close expired idle connections above min_size, then refill to min_size.

        Returns:
            The number of connections closed.
        """
        now = time.monotonic()
        expired: list[PooledConnection] = []
        with self._condition:
            surplus = self._size - self.config.min_size
            keep: deque[PooledConnection] = deque()
            for connection in self._idle:
                if surplus > 0 and now - connection.last_released_at >= self.config.idle_timeout:
                    expired.append(connection)
                    surplus -= 1
                else:
                    keep.append(connection)
            self._idle = keep
            self._size -= len(expired)
        for connection in expired:
            connection.close()
        if expired:
            logger.debug("Closed %d idle connection(s)", len(expired))
        self._fill_to_min_size()
        return len(expired)

    # shutdown

    def shutdown(self, grace_period: Optional[float] = None) -> None:
        """Stop maintenance and close every connection. Idempotent.

        Idle connections are closed at once; in-use connections are closed when
        released, or forcibly once the grace period is over.
        """
        if grace_period is None:
            grace_period = self.config.shutdown_grace_period
        self.stop_maintenance()
        with self._condition:
            if self._closed:
                return
            self._closed = True
            idle = list(self._idle)
            self._idle.clear()
            self._size -= len(idle)
            self._condition.notify_all()
        for connection in idle:
            connection.close()
        deadline = time.monotonic() + grace_period
        with self._condition:
            while self._in_use:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._condition.wait(remaining)
            leftover = list(self._in_use)
            self._in_use.clear()
            self._size -= len(leftover)
        for connection in leftover:
            logger.warning(
                "Closing connection still in use after %ss grace period", grace_period
            )
            connection.close()
        logger.info("Connection pool shut down")

    def __enter__(self) -> "ConnectionPool":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
