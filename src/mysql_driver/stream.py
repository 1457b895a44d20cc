"""
Streaming result sets.
"""
import logging
from collections.abc import Callable, Iterator

from mysql_driver.types import Column

logger = logging.getLogger(__name__)

__all__ = ['StreamingResult', 'DEFAULT_HIGH_WATER_MARK', 'iter_rows']

DEFAULT_HIGH_WATER_MARK = 1000


def iter_rows(cursor, batch_size: int = DEFAULT_HIGH_WATER_MARK) -> Iterator[dict]:
    """Yield rows from an unbuffered cursor, fetching `batch_size` at a time.
    """
    while True:
        batch = cursor.fetchmany(batch_size)
        if not batch:
            return
        yield from batch


class StreamingResult:
    """Forward-only rows from a dedicated connection.

    `types` is known before the first row is read. The owner must call
    `release` once the rows are no longer needed; using the result as a
    context manager does so on exit.
    """

    def __init__(self, rows: Iterator[dict], types: list[Column],
                 release: Callable[[], None]) -> None:
        self.rows = rows
        self.types = types
        self._release = release
        self.released = False

    def __iter__(self) -> Iterator[dict]:
        return iter(self.rows)

    def __enter__(self) -> 'StreamingResult':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.release()

    def release(self) -> None:
        """Close the dedicated connection. Further calls do nothing.
        """
        if self.released:
            return
        self.released = True
        self._release()
        logger.debug('Released streaming connection')
