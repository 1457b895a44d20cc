"""
MySQL driver adapter: pooled queries, streaming reads and bulk loads behind
a uniform driver interface.

    driver = MySqlDriver(data_source='default')
    rows = driver.query('SELECT * FROM orders WHERE id IN (?)', [[1, 2, 3]])
    with driver.stream('SELECT * FROM orders') as result:
        for row in result:
            ...
"""
__version__ = '0.1.0'

from mysql_driver.cancellation import CancellableTask, cancel_combinator
from mysql_driver.driver import MySqlDriver, QueryResult
from mysql_driver.exceptions import ConnectionFailure, DatabaseError
from mysql_driver.exceptions import DbConnectionError, IntegrityError
from mysql_driver.exceptions import OperationalError, PoolClosedError
from mysql_driver.exceptions import PoolTimeoutError, ProgrammingError
from mysql_driver.exceptions import QueryCancelledError, QueryError
from mysql_driver.exceptions import TypeConversionError, UnknownNativeTypeError
from mysql_driver.exceptions import UnsupportedTableDataError, ValidationError
from mysql_driver.options import MySqlDriverOptions, PoolOptions
from mysql_driver.pool import ConnectionPool
from mysql_driver.stream import StreamingResult
from mysql_driver.types import Column, DefaultTypeMapper, MySqlTypeMapper
from mysql_driver.types import NativeType, TypeMapper
from mysql_driver.upload import BATCH_SIZE, CsvTableData, IndexSpec
from mysql_driver.upload import RowsTableData

__all__ = [
    'MySqlDriver',
    'QueryResult',
    'MySqlDriverOptions',
    'PoolOptions',
    'ConnectionPool',
    'CancellableTask',
    'cancel_combinator',
    'StreamingResult',
    'Column',
    'NativeType',
    'TypeMapper',
    'DefaultTypeMapper',
    'MySqlTypeMapper',
    'BATCH_SIZE',
    'RowsTableData',
    'CsvTableData',
    'IndexSpec',
    'DatabaseError',
    'ConnectionFailure',
    'PoolTimeoutError',
    'PoolClosedError',
    'QueryError',
    'QueryCancelledError',
    'ValidationError',
    'UnsupportedTableDataError',
    'TypeConversionError',
    'UnknownNativeTypeError',
    'DbConnectionError',
    'IntegrityError',
    'ProgrammingError',
    'OperationalError',
]
