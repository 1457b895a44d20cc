"""
Schema helpers shared by every driver.

`DDLHelper` builds and runs schema statements through a query callable, so
the driver composes it instead of inheriting table and schema helpers.
"""
import logging
from collections.abc import Callable, Sequence
from typing import Any

from mysql_driver.types import TypeMapper

logger = logging.getLogger(__name__)

__all__ = ['DDLHelper', 'SYSTEM_SCHEMAS']

SYSTEM_SCHEMAS = (
    'pg_catalog',
    'information_schema',
    'mysql',
    'performance_schema',
    'sys',
    'INFORMATION_SCHEMA',
    )


def _column_value(column: Any, key: str) -> Any:
    if isinstance(column, dict):
        return column[key]
    return getattr(column, key)


class DDLHelper:
    """Table and schema statements built on a query callable.

    Args:
        query: Callable ``query(sql, values=None) -> list[dict]``
        type_mapper: Mapper used to turn generic column types into DDL types
        quote_identifier: Callable quoting a column or schema name
    """

    def __init__(self, query: Callable[..., list[dict]], type_mapper: TypeMapper,
                 quote_identifier: Callable[[str], str]) -> None:
        self.query = query
        self.type_mapper = type_mapper
        self.quote_identifier = quote_identifier

    def create_table_sql(self, table: str, columns: Sequence[Any]) -> str:
        """Build ``CREATE TABLE`` for `columns`.

        `table` is used verbatim, so pass it already quoted where needed.
        Columns are mappings or objects with ``name`` and ``type``.
        """
        definitions = ', '.join(
            f'{self.quote_identifier(_column_value(col, "name"))} '
            f'{self.type_mapper.from_generic_type(_column_value(col, "type"))}'
            for col in columns
            )
        return f'CREATE TABLE {table} ({definitions})'

    def create_table(self, table: str, columns: Sequence[Any]) -> None:
        sql = self.create_table_sql(table, columns)
        logger.debug(f'Creating table {table}')
        self.query(sql, [])

    def drop_table(self, table: str) -> None:
        logger.debug(f'Dropping table {table}')
        self.query(f'DROP TABLE {table}', [])

    def create_schema_if_not_exists(self, schema: str) -> None:
        rows = self.query(
            'SELECT schema_name FROM information_schema.schemata WHERE schema_name = ?',
            [schema],
            )
        if not rows:
            logger.debug(f'Creating schema {schema}')
            self.query(f'CREATE SCHEMA IF NOT EXISTS {schema}', [])

    def get_tables_query(self, schema: str) -> list[dict]:
        """List the tables of one schema as ``{'table_name': ...}`` rows.
        """
        return self.query(
            f'SELECT table_name AS {self.quote_identifier("table_name")} '
            f'FROM information_schema.tables WHERE table_schema = ?',
            [schema],
            )

    def information_schema_query(self) -> str:
        """Column listing across user schemas.
        """
        excluded = ', '.join(f"'{schema}'" for schema in SYSTEM_SCHEMAS)
        return (
            f'SELECT columns.column_name AS {self.quote_identifier("column_name")}, '
            f'columns.table_name AS {self.quote_identifier("table_name")}, '
            f'columns.table_schema AS {self.quote_identifier("table_schema")}, '
            f'columns.data_type AS {self.quote_identifier("data_type")} '
            f'FROM information_schema.columns '
            f'WHERE columns.table_schema NOT IN ({excluded})'
            )

    def tables_schema(self, information_schema_query: str | None = None) -> dict[str, dict[str, list[dict]]]:
        """Group information-schema columns by schema and table.

        Returns
            ``{schema: {table: [{'name', 'type', 'attributes'}]}}``
        """
        rows = self.query(information_schema_query or self.information_schema_query(), [])
        result: dict[str, dict[str, list[dict]]] = {}
        for row in rows:
            tables = result.setdefault(row['table_schema'], {})
            tables.setdefault(row['table_name'], []).append({
                'name': row['column_name'],
                'type': row['data_type'],
                'attributes': [],
            })
        return result

    def load_pre_aggregation_into_table(self, table: str, load_sql: str,
                                        params: Sequence[Any] | None = None,
                                        query: Callable[..., Any] | None = None) -> Any:
        """Build a pre-aggregation table with a single locking statement.

        `query` overrides the executor, e.g. with one returning a
        cancellable task.
        """
        logger.debug(f'Loading pre-aggregation {table}')
        return (query or self.query)(load_sql, params)
