"""
In-memory stand-ins for PyMySQL connections.

A `FakeServer` hands out `FakeConnection` objects and records every
statement they execute, so tests can assert on statement order without a
database. Responses are registered by substring:

    def test_query(fake_server, make_driver):
        fake_server.on('FROM orders', rows=[{'id': 1}], description=describe(('id', 3)))
        driver = make_driver()
        assert driver.query('SELECT id FROM orders') == [{'id': 1}]

`block()` returns a gate that holds matching statements until released
or until the connection running them is killed with ``KILL <id>``.
"""
import os
import threading
import time
from dataclasses import dataclass

import pymysql
import pytest


def describe(*columns):
    """Build a DB-API cursor description from ``(name, type_code)`` pairs.
    """
    return tuple((name, type_code, None, None, None, None, True) for name, type_code in columns)


@dataclass
class Statement:
    thread_id: int
    sql: str
    args: tuple | None


class Gate:
    """Holds matching statements until `release` or a KILL of their connection.
    """

    def __init__(self, rows=None, description=None):
        self.rows = rows or []
        self.description = description
        self.entered = threading.Event()
        self.released = threading.Event()

    def release(self):
        self.released.set()

    def wait_entered(self, timeout=5):
        assert self.entered.wait(timeout), 'statement never reached the server'


class FakeCursor:

    def __init__(self, connection, cursorclass=None):
        self.connection = connection
        self.cursorclass = cursorclass
        self.description = None
        self.fetch_sizes = []
        self._rows = []
        self._pos = 0

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def execute(self, sql, args=None):
        rows, description = self.connection.server.execute(self.connection, sql, args)
        self._rows = list(rows)
        self._pos = 0
        self.description = description
        return len(self._rows)

    def fetchall(self):
        rows = self._rows[self._pos:]
        self._pos = len(self._rows)
        return rows

    def fetchmany(self, size=1):
        self.fetch_sizes.append(size)
        rows = self._rows[self._pos:self._pos + size]
        self._pos += len(rows)
        return rows

    def close(self):
        pass


class FakeConnection:

    def __init__(self, server, thread_id):
        self.server = server
        self._thread_id = thread_id
        self.closed = False
        self.broken = False
        self.killed = threading.Event()
        self.cursors = []

    def __repr__(self):
        return f'<FakeConnection {self._thread_id}>'

    def thread_id(self):
        return self._thread_id

    def cursor(self, cursorclass=None):
        if self.closed:
            raise pymysql.err.InterfaceError(0, 'Connection closed')
        cursor = FakeCursor(self, cursorclass)
        self.cursors.append(cursor)
        return cursor

    def rollback(self):
        pass

    def close(self):
        self.closed = True


class FakeServer:
    """Records statements and produces canned responses.
    """

    def __init__(self):
        self.connections = []
        self.log = []
        self.responses = []
        self.connect_error = None
        self.kill_interrupts = True
        self._lock = threading.Lock()
        self._next_thread_id = 100

    def connect(self, options=None):
        if self.connect_error is not None:
            raise self.connect_error
        with self._lock:
            self._next_thread_id += 1
            conn = FakeConnection(self, self._next_thread_id)
            self.connections.append(conn)
        return conn

    def on(self, pattern, rows=None, description=None, error=None):
        """Answer statements containing `pattern` with rows or an error.
        """
        def respond(conn, sql, args):
            if error is not None:
                raise error
            return rows or [], description
        self.responses.append((pattern, respond))

    def on_call(self, pattern, handler):
        """Answer statements containing `pattern` with ``handler(sql, args)``.
        """
        self.responses.append((pattern, lambda conn, sql, args: handler(sql, args)))

    def block(self, pattern, rows=None, description=None):
        gate = Gate(rows, description)

        def respond(conn, sql, args):
            gate.entered.set()
            deadline = time.monotonic() + 5
            while not (gate.released.is_set() or conn.killed.is_set()):
                if time.monotonic() > deadline:
                    raise AssertionError(f'blocked statement never released: {sql}')
                time.sleep(0.005)
            if conn.killed.is_set() and self.kill_interrupts:
                raise pymysql.err.OperationalError(2013, 'Lost connection to MySQL server during query')
            if not gate.released.is_set():
                gate.released.wait(5)
            return gate.rows, gate.description

        self.responses.append((pattern, respond))
        return gate

    def kill(self, thread_id):
        for conn in self.connections:
            if conn.thread_id() == thread_id:
                conn.killed.set()
                if self.kill_interrupts:
                    conn.broken = True

    def execute(self, conn, sql, args):
        with self._lock:
            self.log.append(Statement(conn.thread_id(), sql, args))
        if conn.broken:
            raise pymysql.err.OperationalError(2006, 'MySQL server has gone away')
        if sql.startswith('KILL '):
            self.kill(int(sql.split()[1]))
            return [], None
        for pattern, respond in reversed(self.responses):
            if pattern in sql:
                return respond(conn, sql, args)
        if sql == 'SELECT 1':
            return [{'1': 1}], describe(('1', 8))
        return [], None

    def statements(self, thread_id=None, include_probes=False):
        """Executed SQL text, optionally for one connection.
        """
        return [s.sql for s in self.log
                if (thread_id is None or s.thread_id == thread_id)
                and (include_probes or s.sql != 'SELECT 1')]

    def find(self, fragment):
        return [s for s in self.log if fragment in s.sql]


class FakeClock:
    """Manually advanced monotonic clock whose `sleep` advances time.
    """

    def __init__(self, now=1000.0):
        self.now = now
        self.sleeps = []

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_server():
    """Fresh fake server per test.
    """
    return FakeServer()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove connection settings inherited from the environment.
    """
    for key in list(os.environ):
        if key.startswith('DB_') or key.startswith('DS_'):
            monkeypatch.delenv(key)
    return monkeypatch


@pytest.fixture
def make_driver(fake_server, clean_env):
    """Factory for drivers wired to the fake server.

    Drivers built here are released when the test finishes.
    """
    from mysql_driver import MySqlDriver

    drivers = []

    def factory(config=None, **kwargs):
        config = {'host': 'localhost', 'database': 'test_db', 'user': 'test', **(config or {})}
        kwargs.setdefault('connection_factory', fake_server.connect)
        kwargs.setdefault('sleep_func', lambda seconds: None)
        driver = MySqlDriver(config, **kwargs)
        drivers.append(driver)
        return driver

    yield factory

    for driver in drivers:
        driver.pool.drain(timeout=5)
        driver.pool.clear()
