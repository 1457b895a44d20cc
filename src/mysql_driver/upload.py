"""
Bulk table loading.

Rows are inserted in fixed-size batches, one multi-row INSERT per batch:

    INSERT INTO t (`a`, `b`) VALUES (?, ?), (?, ?), ...

followed by the index statements. A load is all-or-nothing for the caller:
any failure after the table is created drops it again before the original
error propagates.
"""
import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from mysql_driver.exceptions import UnsupportedTableDataError
from mysql_driver.sql import make_placeholders, quote_identifier

logger = logging.getLogger(__name__)

__all__ = [
    'BATCH_SIZE',
    'RowsTableData',
    'CsvTableData',
    'IndexSpec',
    'build_insert_batches',
    'upload_table_with_indexes',
]

BATCH_SIZE = 1000


@dataclass
class RowsTableData:
    """Table payload as a list of records keyed by column name.
    """
    rows: list[Mapping[str, Any]]


@dataclass
class CsvTableData:
    """Table payload as exported CSV files. Not loadable by this driver.
    """
    csv_files: list[str] = field(default_factory=list)


@dataclass
class IndexSpec:
    """Post-load statement with its bound parameters.
    """
    sql: str
    params: Sequence[Any] = ()

    @classmethod
    def coerce(cls, spec: 'IndexSpec | Mapping[str, Any]') -> 'IndexSpec':
        """Accept an IndexSpec or a mapping of the form ``{'sql': [query, params]}``.
        """
        if isinstance(spec, IndexSpec):
            return spec
        sql = spec['sql']
        if isinstance(sql, str):
            return cls(sql, spec.get('params') or ())
        query, params = sql
        return cls(query, params or ())


def row_data(table_data: Any) -> list[Mapping[str, Any]] | None:
    """Return the rows of a row-form payload, or None for any other shape.
    """
    if isinstance(table_data, RowsTableData):
        return table_data.rows
    if isinstance(table_data, Mapping) and 'rows' in table_data:
        return table_data['rows']
    return None


def _column_field(column: Any, key: str) -> Any:
    if isinstance(column, Mapping):
        return column[key]
    return getattr(column, key)


def build_insert_batches(table: str, columns: Sequence[Any], rows: Sequence[Mapping[str, Any]],
                         to_column_value: Callable[[Any, str], Any] | None = None,
                         param: Callable[[int], str] | None = None,
                         quote: Callable[[str], str] = quote_identifier,
                         batch_size: int = BATCH_SIZE) -> Iterator[tuple[str, list]]:
    """Yield one ``(sql, params)`` INSERT per batch of rows.

    Parameters
        table: Destination table, used verbatim
        columns: Column descriptors with ``name`` and ``type``
        rows: Records keyed by column name; missing keys insert NULL
        to_column_value: Coercion applied to every cell with its column type
        param: Maps a parameter index within the statement to its placeholder
        quote: Identifier quoting for column names
        batch_size: Rows per statement

    Params are in row-major order, ``len(columns)`` values per row.
    """
    to_column_value = to_column_value or (lambda value, generic_type: value)
    names = [_column_field(col, 'name') for col in columns]
    types = [_column_field(col, 'type') for col in columns]
    column_list = ', '.join(quote(name) for name in names)
    width = len(columns)

    for offset in range(0, len(rows), batch_size):
        batch = rows[offset:offset + batch_size]
        placeholders = ', '.join(
            make_placeholders(width, start=i * width, param=param) for i in range(len(batch))
            )
        params = [to_column_value(row.get(name), generic_type)
                  for row in batch
                  for name, generic_type in zip(names, types)]
        yield f'INSERT INTO {table} ({column_list}) VALUES {placeholders}', params


def upload_table_with_indexes(driver, table: str, columns: Sequence[Any], table_data: Any,
                              indexes: Sequence[Any] = (), batch_size: int = BATCH_SIZE) -> None:
    """Create `table`, load its rows in batches, then run `indexes` in order.

    `driver` supplies ``query``, ``create_table``, ``drop_table``,
    ``to_column_value``, ``quote_identifier`` and ``param``.

    Raises
        UnsupportedTableDataError: `table_data` is not a row payload
    """
    rows = row_data(table_data)
    if rows is None:
        raise UnsupportedTableDataError(f'{type(driver).__name__} driver supports only rows upload')

    try:
        driver.create_table(table, columns)
        batches = 0
        for sql, params in build_insert_batches(table, columns, rows,
                                                to_column_value=driver.to_column_value,
                                                param=driver.param,
                                                quote=driver.quote_identifier,
                                                batch_size=batch_size):
            driver.query(sql, params)
            batches += 1
        logger.debug(f'Inserted {len(rows)} rows into {table} in {batches} batches')
        for spec in indexes:
            spec = IndexSpec.coerce(spec)
            driver.query(spec.sql, list(spec.params))
    except Exception:
        logger.warning(f'Upload into {table} failed, dropping table')
        try:
            driver.drop_table(table)
        except Exception as drop_err:
            logger.warning(f'Could not drop {table} after failed upload: {drop_err}')
        raise
