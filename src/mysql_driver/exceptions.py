"""
Driver-specific exception classes.
"""
import pymysql

# Client error codes that mean the session is gone and cannot be reused
# (server gone away, lost connection, out of sync, shutdown in progress...)
DISCONNECT_CODES = frozenset({2006, 2013, 2014, 2045, 2055, 4031})


def is_disconnect(exc: BaseException) -> bool:
    """Check if an exception means the underlying session is unusable.

    A connection that raised one of these must be destroyed rather than
    returned to the pool.

    :param exc: The exception to check.
    :returns: True if the session was lost.
    """
    if isinstance(exc, pymysql.err.InterfaceError):
        return True
    if isinstance(exc, pymysql.err.OperationalError):
        return bool(exc.args) and exc.args[0] in DISCONNECT_CODES
    return False


class DatabaseError(Exception):
    """Base class for all driver errors.
    """


class ConnectionFailure(DatabaseError):
    """Error establishing or maintaining database connection.
    """


class PoolTimeoutError(ConnectionFailure):
    """No pooled connection became available before the acquire timeout.
    """


class PoolClosedError(ConnectionFailure):
    """The pool is draining or cleared and no longer hands out connections.
    """


class QueryError(DatabaseError):
    """Error in query syntax or execution.
    """


class QueryCancelledError(DatabaseError):
    """The query was cancelled by its caller.
    """

    def __init__(self, message: str = 'Query cancelled') -> None:
        super().__init__(message)


class ValidationError(DatabaseError):
    """Error in input validation.
    """


class UnsupportedTableDataError(ValidationError):
    """Table data payload is not in a shape the driver can upload.
    """


class TypeConversionError(DatabaseError):
    """Error converting types between Python and database.
    """


class UnknownNativeTypeError(TypeConversionError):
    """Column metadata carried a protocol type code outside the known set.
    """


DbConnectionError = (
    pymysql.err.OperationalError,
    pymysql.err.InterfaceError,
    ConnectionFailure,
    )

IntegrityError = (
    pymysql.err.IntegrityError,
    )

ProgrammingError = (
    pymysql.err.ProgrammingError,
    pymysql.err.DatabaseError,
    QueryError,
    )

OperationalError = (
    pymysql.err.OperationalError,
    )
