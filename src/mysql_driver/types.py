"""
Type mapping between MySQL and the generic type vocabulary.

This module provides:
- NativeType: the closed set of MySQL protocol column type codes
- TypeMapper: the capability interface for generic type conversion
- DefaultTypeMapper: driver-independent fallback mapping
- MySqlTypeMapper: MySQL-specific overrides delegating to a fallback
- Column: column descriptor attached to result sets and streams
"""
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from mysql_driver.exceptions import UnknownNativeTypeError

logger = logging.getLogger(__name__)

__all__ = [
    'Column',
    'NativeType',
    'native_type_name',
    'TypeMapper',
    'DefaultTypeMapper',
    'MySqlTypeMapper',
    'GENERIC_TO_MYSQL',
    'MYSQL_TO_GENERIC',
]


class NativeType(IntEnum):
    """MySQL client/server protocol column type codes.
    """
    DECIMAL = 0
    TINY = 1
    SHORT = 2
    LONG = 3
    FLOAT = 4
    DOUBLE = 5
    NULL = 6
    TIMESTAMP = 7
    LONGLONG = 8
    INT24 = 9
    DATE = 10
    TIME = 11
    DATETIME = 12
    YEAR = 13
    NEWDATE = 14
    VARCHAR = 15
    BIT = 16
    TIMESTAMP2 = 17
    DATETIME2 = 18
    TIME2 = 19
    VECTOR = 242
    JSON = 245
    NEWDECIMAL = 246
    ENUM = 247
    SET = 248
    TINY_BLOB = 249
    MEDIUM_BLOB = 250
    LONG_BLOB = 251
    BLOB = 252
    VAR_STRING = 253
    STRING = 254
    GEOMETRY = 255


# Protocol codes with a more precise MySQL type name than the code's own name
NATIVE_TO_MYSQL: dict[NativeType, str] = {
    NativeType.DECIMAL: 'decimal',
    NativeType.NEWDECIMAL: 'decimal',
    NativeType.TINY: 'tinyint',
    NativeType.SHORT: 'smallint',
    NativeType.LONG: 'int',
    NativeType.INT24: 'mediumint',
    NativeType.LONGLONG: 'bigint',
    NativeType.NEWDATE: 'datetime',
    NativeType.TIMESTAMP2: 'timestamp',
    NativeType.DATETIME2: 'datetime',
    NativeType.TIME2: 'time',
    NativeType.TINY_BLOB: 'tinytext',
    NativeType.MEDIUM_BLOB: 'mediumtext',
    NativeType.LONG_BLOB: 'longtext',
    NativeType.BLOB: 'text',
    NativeType.VAR_STRING: 'varchar',
    NativeType.STRING: 'varchar',
}

MYSQL_TO_GENERIC: dict[str, str] = {
    'mediumtext': 'text',
    'longtext': 'text',
    'mediumint': 'int',
    'smallint': 'int',
    'bigint': 'int',
    'tinyint': 'int',
    'mediumint unsigned': 'int',
    'smallint unsigned': 'int',
    'bigint unsigned': 'int',
    'tinyint unsigned': 'int',
}

GENERIC_TO_MYSQL: dict[str, str] = {
    'string': 'varchar(255) CHARACTER SET utf8mb4',
    'text': 'varchar(255) CHARACTER SET utf8mb4',
    'decimal': 'decimal(38,10)',
}

# Driver-independent database type name -> generic type
DB_TYPE_TO_GENERIC: dict[str, str] = {
    'timestamp without time zone': 'timestamp',
    'timestamp': 'timestamp',
    'datetime': 'timestamp',
    'character varying': 'text',
    'varchar': 'text',
    'nvarchar': 'text',
    'text': 'text',
    'string': 'text',
    'integer': 'int',
    'int': 'int',
    'bigint': 'bigint',
    'boolean': 'boolean',
    'bool': 'boolean',
    'time': 'string',
    'date': 'date',
    'decimal': 'decimal',
    'numeric': 'decimal',
    'double precision': 'decimal',
    'float': 'float',
    'double': 'double',
}


def native_type_name(type_code: int) -> str:
    """Resolve a protocol type code to a MySQL type name.

    Codes with a dedicated MySQL name use it; any other known code resolves
    to the code's enum name (e.g. ``DATE``, ``JSON``).

    Raises
        UnknownNativeTypeError: If the code is not a known protocol type
    """
    try:
        native = NativeType(type_code)
    except ValueError:
        raise UnknownNativeTypeError(f'Unknown MySQL column type code: {type_code!r}') from None
    return NATIVE_TO_MYSQL.get(native, native.name)


@dataclass(frozen=True)
class Column:
    """Column descriptor: name plus generic type.
    """
    name: str
    type: str

    def to_dict(self) -> dict[str, str]:
        return {'name': self.name, 'type': self.type}


class TypeMapper(ABC):
    """Conversion between database types and the generic type vocabulary.
    """

    @abstractmethod
    def to_generic_type(self, column_type: str) -> str:
        """Map a database type name to a generic type.
        """

    @abstractmethod
    def from_generic_type(self, generic_type: str) -> str:
        """Map a generic type to a DDL column type.
        """

    @abstractmethod
    def to_column_value(self, value: Any, generic_type: str) -> Any:
        """Coerce a value before binding it to a column of `generic_type`.
        """


class DefaultTypeMapper(TypeMapper):
    """Driver-independent mapping used when a driver has no override.
    """

    def to_generic_type(self, column_type: str) -> str:
        return DB_TYPE_TO_GENERIC.get(column_type.lower(), column_type)

    def from_generic_type(self, generic_type: str) -> str:
        return generic_type

    def to_column_value(self, value: Any, generic_type: str) -> Any:
        return value


class MySqlTypeMapper(TypeMapper):
    """MySQL type mapping with delegation to a fallback mapper.
    """

    def __init__(self, fallback: TypeMapper | None = None) -> None:
        self.fallback = fallback or DefaultTypeMapper()

    def to_generic_type(self, column_type: str) -> str:
        """Map a MySQL type name to a generic type.

        Matching is case-insensitive; a length suffix such as ``(11)`` is
        ignored when the full name has no entry.
        """
        lowered = column_type.lower()
        generic = MYSQL_TO_GENERIC.get(lowered) or MYSQL_TO_GENERIC.get(lowered.split('(')[0])
        if generic:
            return generic
        return self.fallback.to_generic_type(column_type)

    def from_generic_type(self, generic_type: str) -> str:
        return GENERIC_TO_MYSQL.get(generic_type) or self.fallback.from_generic_type(generic_type)

    def to_column_value(self, value: Any, generic_type: str) -> Any:
        if generic_type == 'timestamp' and isinstance(value, str):
            return value and value.replace('Z', '', 1)
        if generic_type == 'boolean' and isinstance(value, str):
            if value.lower() == 'true':
                return True
            if value.lower() == 'false':
                return False
        return self.fallback.to_column_value(value, generic_type)

    def map_fields(self, description: Sequence[Sequence[Any]] | None) -> list[Column]:
        """Build column descriptors from a DB-API cursor description.

        Each description entry is ``(name, type_code, ...)``.
        """
        if not description:
            return []
        return [Column(name=desc[0], type=self.to_generic_type(native_type_name(desc[1])))
                for desc in description]
