"""
Tests for the streaming reader.
"""
import pymysql
import pytest
from mysql_driver.stream import StreamingResult
from pymysql.cursors import SSDictCursor
from tests.fixtures.mocks import describe


@pytest.fixture
def orders(fake_server):
    rows = [{'id': i, 'name': f'order-{i}'} for i in range(5)]
    fake_server.on('FROM orders', rows=rows, description=describe(('id', 3), ('name', 253)))
    return rows


def test_stream_uses_dedicated_connection(make_driver, fake_server, orders):
    """Test streams bypass the pool and use an unbuffered cursor"""
    driver = make_driver()
    result = driver.stream('SELECT id, name FROM orders WHERE id > ?', [0])

    assert isinstance(result, StreamingResult)
    assert driver.pool.checked_out == 0
    assert driver.pool.checked_in == 0

    conn = fake_server.connections[0]
    assert fake_server.statements(conn.thread_id(), include_probes=True) == [
        "SET time_zone = '+00:00'",
        'SELECT id, name FROM orders WHERE id > %s',
    ]
    assert conn.cursors[-1].cursorclass is SSDictCursor
    result.release()


def test_types_known_before_rows(make_driver, orders):
    """Test column types are resolved before the first row is read"""
    driver = make_driver()
    with driver.stream('SELECT id, name FROM orders') as result:
        assert [(c.name, c.type) for c in result.types] == [('id', 'int'), ('name', 'text')]
        assert list(result) == orders


def test_rows_fetched_in_high_water_mark_batches(make_driver, fake_server, orders):
    """Test rows are pulled lazily in batches"""
    driver = make_driver()
    result = driver.stream('SELECT id, name FROM orders', high_water_mark=2)
    cursor = fake_server.connections[0].cursors[-1]
    assert cursor.fetch_sizes == []

    assert next(iter(result.rows)) == orders[0]
    assert cursor.fetch_sizes == [2]

    assert list(result.rows) == orders[1:]
    assert cursor.fetch_sizes == [2, 2, 2, 2]
    result.release()


def test_default_high_water_mark(make_driver, fake_server, orders):
    driver = make_driver()
    with driver.stream('SELECT id, name FROM orders') as result:
        list(result)
    assert fake_server.connections[0].cursors[-1].fetch_sizes[0] == 1000


def test_release_destroys_connection_once(make_driver, fake_server, orders):
    """Test release closes the dedicated connection and is idempotent"""
    driver = make_driver()
    result = driver.stream('SELECT id, name FROM orders')
    conn = fake_server.connections[0]

    result.release()
    assert conn.closed
    assert result.released
    result.release()


def test_setup_failure_destroys_connection(make_driver, fake_server):
    """Test an error before the stream is returned closes the connection"""
    fake_server.on('FROM missing', error=pymysql.err.ProgrammingError(1146, "Table 'missing' doesn't exist"))
    driver = make_driver()

    with pytest.raises(pymysql.err.ProgrammingError):
        driver.stream('SELECT * FROM missing')
    assert fake_server.connections[0].closed


def test_download_with_stream_import(make_driver, orders):
    """Test stream_import downloads through the streaming reader"""
    driver = make_driver()
    result = driver.download_query_results('SELECT id, name FROM orders', stream_import=True,
                                           high_water_mark=3)
    assert isinstance(result, StreamingResult)
    with result:
        assert list(result) == orders


if __name__ == '__main__':
    __import__('pytest').main([__file__])
