"""
Raw connection factory.

Every pooled and standalone session is opened by `open_connection`, so
both acquisition paths share the same settings.
"""
import logging

import pymysql
from pymysql.constants import FIELD_TYPE
from pymysql.converters import conversions
from pymysql.cursors import DictCursor

from mysql_driver.options import MySqlDriverOptions

logger = logging.getLogger(__name__)

__all__ = ['open_connection', 'set_time_zone', 'date_string_conversions']

TEMPORAL_FIELD_TYPES = (
    FIELD_TYPE.DATE,
    FIELD_TYPE.DATETIME,
    FIELD_TYPE.TIMESTAMP,
    FIELD_TYPE.TIME,
    FIELD_TYPE.NEWDATE,
    )


def date_string_conversions() -> dict:
    """Converter table that leaves temporal values in their server string form.
    """
    conv = conversions.copy()
    for field_type in TEMPORAL_FIELD_TYPES:
        conv.pop(field_type, None)
    return conv


def open_connection(options: MySqlDriverOptions, connector=pymysql.connect):
    """Open a new session from resolved options.

    Args:
        options: Resolved driver options
        connector: Function used to open the session (default: pymysql.connect)

    Returns
        An autocommit PyMySQL connection returning dict rows
    """
    kwargs = {
        'host': options.host or 'localhost',
        'user': options.user,
        'password': options.password or '',
        'database': options.database,
        'charset': options.charset,
        'connect_timeout': options.connect_timeout,
        'autocommit': True,
        'cursorclass': DictCursor,
    }
    if options.port:
        kwargs['port'] = options.port
    if options.socket_path:
        kwargs['unix_socket'] = options.socket_path
    if options.ssl:
        kwargs['ssl'] = options.ssl
    if options.date_strings:
        kwargs['conv'] = date_string_conversions()

    logger.debug(f'Opening connection to {kwargs["host"]}:{options.port or 3306}/{options.database}')
    return connector(**kwargs)


def set_time_zone(connection, time_zone: str) -> None:
    """Set the session time zone on a raw connection.
    """
    with connection.cursor() as cursor:
        cursor.execute(f"SET time_zone = '{time_zone}'")
