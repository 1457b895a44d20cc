"""
MySQL driver.

Composes the connection pool, the type mapper and the DDL helper behind
the driver interface used by the query orchestration layer:

    query / submit_query   → pooled connection → SET time_zone → statement
    stream                 → standalone connection → unbuffered cursor
    upload_table_with_indexes → create table → batched INSERTs → indexes

Every statement on a pooled connection is preceded by a ``SET time_zone``
so sessions never carry a previous caller's zone.
"""
import logging
import re
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from functools import partial
from typing import Any

from pymysql.cursors import SSDictCursor

from mysql_driver.cancellation import CancellableTask, cancel_combinator
from mysql_driver.connection import open_connection, set_time_zone
from mysql_driver.ddl import DDLHelper
from mysql_driver.exceptions import QueryCancelledError, is_disconnect
from mysql_driver.options import MySqlDriverOptions
from mysql_driver.pool import ConnectionPool
from mysql_driver.sql import prepare_query, quote_identifier
from mysql_driver.stream import DEFAULT_HIGH_WATER_MARK, StreamingResult
from mysql_driver.stream import iter_rows
from mysql_driver.types import Column, MySqlTypeMapper
from mysql_driver.upload import BATCH_SIZE, upload_table_with_indexes

logger = logging.getLogger(__name__)

__all__ = ['MySqlDriver', 'QueryResult']

CREATE_TABLE_AS = re.compile(r'^CREATE TABLE (\S+) AS', re.IGNORECASE)


@dataclass
class QueryResult:
    """Buffered rows with their column descriptors.
    """
    rows: list[dict]
    types: list[Column] = field(default_factory=list)


def _default_event_logger(message: str, event: Mapping[str, Any]) -> None:
    logger.info(f'{message}: {dict(event)}')


class _KillOnCancel:
    """Cancel callback that kills a server connection while its statement runs.

    The kill connection is borrowed before the lock is taken, so a full
    pool never holds up the statement's own return. `finish` is called once
    the statement returned; a kill arriving after that is skipped so it
    cannot hit the connection's next borrower.
    """

    def __init__(self, with_connection: Callable[[Callable[[Any], Any]], Any],
                 kill: Callable[[Any, int], Any], connection_id: int) -> None:
        self._with_connection = with_connection
        self._kill = kill
        self.connection_id = connection_id
        self._lock = threading.Lock()
        self._finished = False

    def __call__(self) -> None:
        if self._finished:
            return
        self._with_connection(self._kill_if_running)

    def _kill_if_running(self, raw) -> None:
        with self._lock:
            if self._finished:
                logger.debug(f'Connection {self.connection_id} finished before kill')
                return
            self._kill(raw, self.connection_id)

    def finish(self) -> None:
        with self._lock:
            self._finished = True


class MySqlDriver:
    """Driver for MySQL-compatible databases.

    Args:
        config: Explicit options as a mapping or `MySqlDriverOptions`
        data_source: Logical data source whose environment supplies defaults
        connection_factory: ``factory(options) -> connection`` (default: open_connection)
        type_mapper: Type mapper (default: MySqlTypeMapper)
        clock: Monotonic clock for pool deadlines
        sleep_func: Function used to wait between connection attempts
        **kwargs: Further explicit options, e.g. ``max_pool_size`` or ``pool``

    Examples
        >>> driver = MySqlDriver({'host': 'localhost', 'database': 'app'})  # doctest: +SKIP
        >>> driver.query('SELECT ? AS answer', [42])  # doctest: +SKIP
        [{'answer': 42}]
    """
    DEFAULT_CONCURRENCY = 2

    def __init__(self, config: MySqlDriverOptions | Mapping[str, Any] | None = None, *,
                 data_source: str | None = None,
                 connection_factory: Callable[[MySqlDriverOptions], Any] | None = None,
                 type_mapper: MySqlTypeMapper | None = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep_func: Callable[[float], None] = time.sleep,
                 **kwargs: Any) -> None:
        self.config = MySqlDriverOptions.resolve(config, data_source=data_source, **kwargs)
        self._connection_factory = connection_factory or open_connection
        self.type_mapper = type_mapper or MySqlTypeMapper()
        self._event_logger: Callable[[str, Mapping[str, Any]], None] = _default_event_logger
        self.pool = ConnectionPool(self._open_connection, self.config.pool,
                                   on_error=self.database_pool_error,
                                   clock=clock, sleep_func=sleep_func)
        self.ddl = DDLHelper(self.query, self.type_mapper, self.quote_identifier)

    def __enter__(self) -> 'MySqlDriver':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.release()

    @classmethod
    def get_default_concurrency(cls) -> int:
        return cls.DEFAULT_CONCURRENCY

    def _open_connection(self):
        return self._connection_factory(self.config)

    #
    # Logging
    #

    def set_logger(self, event_logger: Callable[[str, Mapping[str, Any]], None]) -> None:
        """Route driver events to ``event_logger(message, event)``.
        """
        self._event_logger = event_logger

    def log_event(self, message: str, event: Mapping[str, Any]) -> None:
        self._event_logger(message, event)

    def database_pool_error(self, error: BaseException) -> None:
        self.log_event('Database Pool Error', {'error': repr(error)})

    #
    # Query execution
    #

    def _execute(self, raw, sql: str, values: Sequence[Any] | None = None) -> tuple[list[dict], Any]:
        sql, args = prepare_query(sql, values)
        with raw.cursor() as cursor:
            cursor.execute(sql, args)
            return list(cursor.fetchall()), cursor.description

    def _return_connection(self, conn, error: BaseException | None) -> None:
        if error is not None and is_disconnect(error):
            logger.warning(f'Destroying connection after lost session: {error}')
            self.pool.destroy(conn)
        else:
            self.pool.release(conn)

    def with_connection(self, fn: Callable[[Any], Any]) -> Any:
        """Run ``fn(raw_connection)`` on a pooled connection.

        The connection goes back to the pool on both the success and the
        error path, or is destroyed if the session was lost.
        """
        conn = self.pool.acquire()
        error = None
        try:
            return fn(conn.dbapi_connection)
        except Exception as err:
            error = err
            raise
        finally:
            self._return_connection(conn, error)

    def _timed_execute(self, raw, sql: str, values: Sequence[Any] | None) -> tuple[list[dict], Any]:
        set_time_zone(raw, self.config.store_timezone)
        return self._execute(raw, sql, values)

    def query(self, sql: str, values: Sequence[Any] | None = None) -> list[dict]:
        """Run one statement on a pooled connection and return its rows.

        Parameters
            sql: Statement with ``?`` placeholders
            values: Positional parameter values

        Returns
            List of rows as dicts
        """
        rows, _ = self.with_connection(lambda raw: self._timed_execute(raw, sql, values))
        return rows

    def submit_query(self, sql: str, values: Sequence[Any] | None = None) -> CancellableTask:
        """Run `query` on a background thread.

        Cancelling the returned task kills the statement's server
        connection from another pooled connection; the task then fails
        with `QueryCancelledError`.
        """
        task = CancellableTask(name='mysql-query')
        return task.start(self._run_cancellable, task, sql, values)

    def _run_cancellable(self, task: CancellableTask, sql: str,
                         values: Sequence[Any] | None) -> list[dict]:
        def run(raw):
            kill = _KillOnCancel(self.with_connection, self._kill, raw.thread_id())
            task.add_cancel_callback(kill)
            try:
                if task.cancelled:
                    raise QueryCancelledError()
                rows, _ = self._timed_execute(raw, sql, values)
                return rows
            finally:
                kill.finish()
                task.remove_cancel_callback(kill)

        return self.with_connection(run)

    def _kill(self, raw, connection_id: int) -> None:
        logger.info(f'Killing connection {connection_id}')
        self._execute(raw, f'KILL {int(connection_id)}')

    def stream(self, sql: str, values: Sequence[Any] | None = None,
               high_water_mark: int | None = None) -> StreamingResult:
        """Stream rows from a dedicated connection.

        The connection bypasses the pool and is destroyed by the result's
        `release`. Column types are resolved before any row is read.
        """
        raw = self.pool.acquire_standalone()
        try:
            set_time_zone(raw, self.config.store_timezone)
            sql, args = prepare_query(sql, values)
            cursor = raw.cursor(SSDictCursor)
            cursor.execute(sql, args)
            types = self.type_mapper.map_fields(cursor.description)
        except Exception:
            self.pool.destroy_standalone(raw)
            raise

        rows = iter_rows(cursor, high_water_mark or DEFAULT_HIGH_WATER_MARK)
        return StreamingResult(rows, types, partial(self.pool.destroy_standalone, raw))

    def download_query_results(self, sql: str, values: Sequence[Any] | None = None,
                               stream_import: bool = False,
                               high_water_mark: int | None = None) -> QueryResult | StreamingResult:
        """Fetch a full result with column types, or a stream with `stream_import`.
        """
        if stream_import:
            return self.stream(sql, values, high_water_mark=high_water_mark)
        rows, description = self.with_connection(lambda raw: self._timed_execute(raw, sql, values))
        return QueryResult(rows=rows, types=self.type_mapper.map_fields(description))

    def test_connection(self) -> list[dict]:
        """Run ``SELECT 1`` on a standalone connection.
        """
        raw = self.pool.acquire_standalone()
        try:
            rows, _ = self._execute(raw, 'SELECT 1')
            return rows
        finally:
            self.pool.destroy_standalone(raw)

    def release(self) -> None:
        """Wait for outstanding connections, then close the pool.
        """
        self.pool.drain()
        self.pool.clear()

    #
    # Bulk load
    #

    def upload_table_with_indexes(self, table: str, columns: Sequence[Any], table_data: Any,
                                  indexes: Sequence[Any] = (), batch_size: int = BATCH_SIZE) -> None:
        upload_table_with_indexes(self, table, columns, table_data, indexes, batch_size=batch_size)

    def load_pre_aggregation_into_table(self, table: str, load_sql: str,
                                        params: Sequence[Any] | None = None) -> CancellableTask:
        """Build a pre-aggregation table.

        Without the meta lock, the table is first materialized empty with
        ``LIMIT 0`` and then filled by an ``INSERT INTO`` rewritten from the
        ``CREATE TABLE ... AS`` statement. Cancelling the returned task
        cancels whichever statement is running.
        """
        if not self.config.load_pre_aggregation_without_meta_lock:
            return self.ddl.load_pre_aggregation_into_table(table, load_sql, params,
                                                            query=self.submit_query)

        insert_sql = CREATE_TABLE_AS.sub(r'INSERT INTO \1', load_sql, count=1)

        def steps(save_cancel):
            save_cancel(self.submit_query(f'{load_sql} LIMIT 0', params))
            return save_cancel(self.submit_query(insert_sql, params))

        return cancel_combinator(steps, name=f'load-{table}')

    #
    # Schema
    #

    def read_only(self) -> bool:
        return bool(self.config.read_only)

    def quote_identifier(self, identifier: str) -> str:
        return quote_identifier(identifier)

    def param(self, index: int) -> str:
        return '?'

    def information_schema_query(self) -> str:
        return f"{self.ddl.information_schema_query()} AND columns.table_schema = '{self.config.database}'"

    def tables_schema(self) -> dict[str, dict[str, list[dict]]]:
        return self.ddl.tables_schema(self.information_schema_query())

    def create_schema_if_not_exists(self, schema: str) -> None:
        self.ddl.create_schema_if_not_exists(schema)

    def get_tables_query(self, schema: str) -> list[dict]:
        return self.ddl.get_tables_query(schema)

    def create_table(self, table: str, columns: Sequence[Any]) -> None:
        self.ddl.create_table(table, columns)

    def drop_table(self, table: str) -> None:
        self.ddl.drop_table(table)

    #
    # Types
    #

    def to_generic_type(self, column_type: str) -> str:
        return self.type_mapper.to_generic_type(column_type)

    def from_generic_type(self, generic_type: str) -> str:
        return self.type_mapper.from_generic_type(generic_type)

    def to_column_value(self, value: Any, generic_type: str) -> Any:
        return self.type_mapper.to_column_value(value, generic_type)

    def map_fields(self, description) -> list[Column]:
        return self.type_mapper.map_fields(description)
