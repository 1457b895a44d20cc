"""
Bounded connection pool.

Wraps a SQLAlchemy `QueuePool` around the raw connection factory:

    acquire() → slot reserved → QueuePool.connect() → checkout listener (idle check, SELECT 1)
    release() → proxy.close()       → checkin listener (idle stamp)
    destroy() → proxy.invalidate()  → slot refilled on the next acquire

A reaper thread wakes every `eviction_interval` seconds and closes idle
connections past `idle_timeout`, keeping `min_size` of them open. The
slot stays in the pool and reconnects on its next checkout.

A connection that fails validation raises `DisconnectionError` from the
checkout listener, so the pool discards it and opens a replacement before
handing anything to the caller.

Streaming and connectivity checks use the standalone path, which opens a
session with the same factory but never counts against the pool.
"""
import logging
import threading
import time
from collections.abc import Callable
from typing import Any

import sqlalchemy as sa
from sqlalchemy import event
from sqlalchemy.pool import QueuePool

from mysql_driver.exceptions import DbConnectionError, PoolClosedError
from mysql_driver.exceptions import PoolTimeoutError
from mysql_driver.options import PoolOptions

logger = logging.getLogger(__name__)

__all__ = ['ConnectionPool']


class ConnectionPool:
    """Thread-safe pool of raw database sessions.

    Args:
        connect: Zero-argument factory returning a new raw connection
        options: Pool sizing and timeout options
        on_error: Called with the error whenever validation fails
        clock: Monotonic clock used for idle and acquire deadlines
        sleep_func: Function used to wait between connection attempts
    """

    def __init__(self, connect: Callable, options: PoolOptions | None = None,
                 on_error: Callable[[BaseException], None] | None = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep_func: Callable[[float], None] = time.sleep):
        self._connect = connect
        self.options = options or PoolOptions()
        self._on_error = on_error
        self._clock = clock
        self._sleep = sleep_func
        self._cond = threading.Condition()
        self._outstanding = 0
        self._closed = False
        # connection record -> clock time it was checked in
        self._idle: dict[Any, float] = {}
        self._idle_lock = threading.Lock()
        self._stop_reaper = threading.Event()

        self._pool = QueuePool(
            self._create,
            pool_size=self.options.max_size,
            max_overflow=0,
            timeout=self.options.acquire_timeout,
            reset_on_return='rollback',
            )
        event.listen(self._pool, 'checkout', self._on_checkout)
        event.listen(self._pool, 'checkin', self._on_checkin)

        self._reaper = None
        if self.options.eviction_interval > 0:
            self._reaper = threading.Thread(target=self._run_reaper, name='mysql-pool-reaper',
                                            daemon=True)
            self._reaper.start()
        logger.debug(f'Created connection pool (max {self.options.max_size}, '
                     f'acquire timeout {self.options.acquire_timeout}s)')

    def _create(self):
        return self._connect()

    def _validate(self, dbapi_connection) -> None:
        with dbapi_connection.cursor() as cursor:
            cursor.execute('SELECT 1')
            cursor.fetchall()

    def _on_checkout(self, dbapi_connection, connection_record, connection_proxy):
        with self._idle_lock:
            idle_since = self._idle.pop(connection_record, None)
            if dbapi_connection is not connection_record.dbapi_connection:
                raise sa.exc.DisconnectionError('Connection evicted while idle')
            if idle_since is not None and self._clock() - idle_since > self.options.idle_timeout:
                if len(self._idle) >= self.options.min_size:
                    logger.debug(f'Evicting connection idle for over {self.options.idle_timeout}s')
                    raise sa.exc.DisconnectionError('Connection idle timeout')

        if not self.options.test_on_borrow:
            return
        try:
            self._validate(dbapi_connection)
        except Exception as err:
            logger.warning(f'Connection failed validation: {err}')
            if self._on_error is not None:
                self._on_error(err)
            raise sa.exc.DisconnectionError(str(err)) from err

    def _on_checkin(self, dbapi_connection, connection_record):
        with self._idle_lock:
            if dbapi_connection is None:
                self._idle.pop(connection_record, None)
            else:
                self._idle[connection_record] = self._clock()

    def _run_reaper(self) -> None:
        while not self._stop_reaper.wait(self.options.eviction_interval):
            try:
                self.evict_idle()
            except Exception as err:
                logger.warning(f'Idle connection eviction failed: {err}')

    def evict_idle(self) -> int:
        """Close idle connections past the idle timeout, oldest first.

        At least `min_size` idle connections are kept open.

        Returns
            Number of connections closed
        """
        now = self._clock()
        with self._idle_lock:
            spare = len(self._idle) - self.options.min_size
            oldest = sorted(self._idle.items(), key=lambda item: item[1])
            expired = [record for record, since in oldest
                       if now - since > self.options.idle_timeout][:max(spare, 0)]
            for record in expired:
                del self._idle[record]
                record.invalidate()
        if expired:
            logger.debug(f'Evicted {len(expired)} connections idle for over {self.options.idle_timeout}s')
        return len(expired)

    def _stop(self) -> None:
        self._stop_reaper.set()
        if self._reaper is not None and self._reaper is not threading.current_thread():
            self._reaper.join(1)

    def acquire(self):
        """Check out a validated pooled connection.

        Waits up to the acquire timeout for a free slot. When opening or
        validating a connection fails, retries with backoff until the same
        deadline passes.

        Returns
            Pooled connection proxy; hand it back with `release` or `destroy`

        Raises
            PoolClosedError: The pool is draining
            PoolTimeoutError: No connection became available in time
        """
        timeout = self.options.acquire_timeout
        deadline = self._clock() + timeout
        with self._cond:
            if self._closed:
                raise PoolClosedError('Connection pool is draining')
            free = self._cond.wait_for(
                lambda: self._closed or self._outstanding < self.options.max_size,
                max(deadline - self._clock(), 0))
            if self._closed:
                raise PoolClosedError('Connection pool is draining')
            if not free:
                logger.error(f'Timed out after {timeout}s waiting for a pooled connection')
                raise PoolTimeoutError(f'Timed out after {timeout}s waiting for a pooled connection')
            # reserved slot, so QueuePool.connect() never waits
            self._outstanding += 1

        try:
            conn = self._checkout(deadline)
        except BaseException:
            self._returned()
            raise

        with self._cond:
            closed = self._closed
        if closed:
            self.release(conn)
            raise PoolClosedError('Connection pool is draining')
        return conn

    def _checkout(self, deadline: float):
        timeout = self.options.acquire_timeout
        delay = self.options.retry_delay
        attempt = 0
        while True:
            attempt += 1
            try:
                return self._pool.connect()
            except sa.exc.TimeoutError as err:
                logger.error(f'Timed out after {timeout}s waiting for a pooled connection')
                raise PoolTimeoutError(f'Timed out after {timeout}s waiting for a pooled connection') from err
            except (*DbConnectionError, sa.exc.InvalidRequestError) as err:
                if self._clock() + delay > deadline:
                    logger.error(f'Could not acquire a connection after {attempt} attempts: {err}')
                    raise PoolTimeoutError(f'Timed out after {timeout}s acquiring a connection: {err}') from err
                logger.warning(f'Connection attempt {attempt} failed: {err}')
                self._sleep(delay)
                delay *= self.options.retry_backoff

    def _returned(self) -> None:
        with self._cond:
            self._outstanding -= 1
            self._cond.notify_all()

    def release(self, conn) -> None:
        """Return a connection to the idle set.
        """
        try:
            conn.close()
        finally:
            self._returned()

    def destroy(self, conn) -> None:
        """Discard a connection instead of returning it to the idle set.
        """
        try:
            conn.invalidate()
        finally:
            self._returned()
        logger.debug('Destroyed pooled connection')

    def acquire_standalone(self):
        """Open a private session outside the pool.

        The caller owns the connection and must pass it to
        `destroy_standalone` when finished.
        """
        return self._connect()

    def destroy_standalone(self, raw) -> None:
        """Close a session opened with `acquire_standalone`.
        """
        try:
            raw.close()
        except Exception as err:
            logger.warning(f'Error closing standalone connection: {err}')

    def drain(self, timeout: float | None = None) -> bool:
        """Stop handing out connections and wait for outstanding ones.

        Returns
            True once every checked-out connection came back, False if
            `timeout` elapsed first
        """
        self._stop()
        with self._cond:
            self._closed = True
            self._cond.notify_all()
            drained = self._cond.wait_for(lambda: self._outstanding == 0, timeout)
        if not drained:
            logger.warning(f'Pool drain timed out with {self._outstanding} connections outstanding')
        return drained

    def clear(self) -> None:
        """Close every idle connection. Call after `drain`.
        """
        self._stop()
        with self._idle_lock:
            self._idle.clear()
        self._pool.dispose()
        logger.debug('Connection pool cleared')

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def max_size(self) -> int:
        return self.options.max_size

    @property
    def checked_out(self) -> int:
        return self._pool.checkedout()

    @property
    def checked_in(self) -> int:
        return self._pool.checkedin()

    @property
    def size(self) -> int:
        return self.checked_out + self.checked_in
