"""
SQL parameter processing.

Upstream SQL is written with ``?`` positional placeholders. PyMySQL
interpolates parameters client-side with Python ``%`` formatting, so before
execution:

    SQL + Args → Tokenize → Rewrite ? as %s, escape %, expand lists

Main entry points:
- `prepare_query(sql, args)` - Rewrite SQL and flatten args for PyMySQL
- `quote_identifier()` - Quote table/column names with backticks
- `make_placeholders()` - Build a placeholder group for one row
"""
import re
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

__all__ = [
    'prepare_query',
    'quote_identifier',
    'make_placeholders',
    'tokenize_sql',
]


class TokenType(Enum):
    """Token types identified during SQL parsing."""
    SQL_TEXT = auto()
    STRING_LITERAL = auto()
    QUOTED_IDENTIFIER = auto()
    POSITIONAL_PH = auto()      # ?
    PERCENT = auto()


@dataclass(slots=True)
class Token:
    """Token from SQL parsing."""
    type: TokenType
    text: str


# Master tokenization pattern. MySQL string literals accept both '' doubling
# and backslash escapes.
_TOKENIZE = re.compile(r"""
    (?P<string>'(?:[^'\\]|\\.|'')*'|"(?:[^"\\]|\\.|"")*")
    |(?P<ident>`(?:[^`]|``)*`)
    |(?P<qmark>\?)
    |(?P<percent>%)
""", re.VERBOSE | re.DOTALL)


def tokenize_sql(sql: str) -> list[Token]:
    """Parse SQL into tokens in a single pass.

    Parameters
        sql: SQL query string

    Returns
        List of tokens preserving all SQL text
    """
    tokens = []
    last_end = 0

    for match in _TOKENIZE.finditer(sql):
        start, end = match.span()
        if start > last_end:
            tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:start]))

        if match.group('string'):
            ttype = TokenType.STRING_LITERAL
        elif match.group('ident'):
            ttype = TokenType.QUOTED_IDENTIFIER
        elif match.group('qmark'):
            ttype = TokenType.POSITIONAL_PH
        else:
            ttype = TokenType.PERCENT

        tokens.append(Token(ttype, match.group(0)))
        last_end = end

    if last_end < len(sql):
        tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:]))

    return tokens


def _is_list_value(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def prepare_query(sql: str, args: Sequence[Any] | None = None) -> tuple[str, tuple | None]:
    """Rewrite SQL and parameters for PyMySQL.

    Parameters
        sql: SQL with ``?`` placeholders
        args: Positional parameter values

    Returns
        Tuple of (processed_sql, processed_args). processed_args is None when
        no parameters were supplied, in which case the SQL is left untouched
        because PyMySQL skips interpolation entirely.

    Raises
        ValueError: If placeholder and argument counts differ
    """
    if args is None or len(args) == 0:
        return sql, None

    result_parts = []
    result_args: list[Any] = []
    index = 0

    for token in tokenize_sql(sql):
        if token.type == TokenType.POSITIONAL_PH:
            if index >= len(args):
                raise ValueError(f'Not enough parameters for query: got {len(args)}')
            value = args[index]
            index += 1
            if _is_list_value(value):
                values = list(value)
                if not values:
                    raise ValueError(f'Empty list bound to parameter {index}')
                result_parts.append(', '.join(['%s'] * len(values)))
                result_args.extend(values)
            else:
                result_parts.append('%s')
                result_args.append(value)
        elif token.type in {TokenType.STRING_LITERAL, TokenType.QUOTED_IDENTIFIER}:
            result_parts.append(token.text.replace('%', '%%'))
        elif token.type == TokenType.PERCENT:
            result_parts.append('%%')
        else:
            result_parts.append(token.text)

    if index != len(args):
        raise ValueError(f'Query has {index} placeholders but {len(args)} parameters were given')

    return ''.join(result_parts), tuple(result_args)


def quote_identifier(identifier: str) -> str:
    """Safely quote a MySQL identifier.

    Parameters
        identifier: Table or column name

    Returns
        Backtick-quoted identifier
    """
    return '`' + identifier.replace('`', '``') + '`'


def make_placeholders(count: int, start: int = 0, param=None) -> str:
    """Build a parenthesized placeholder group, e.g. ``(?, ?, ?)``.

    `param` maps an absolute parameter index to its placeholder text.
    """
    param = param or (lambda index: '?')
    return '(' + ', '.join(param(start + i) for i in range(count)) + ')'
