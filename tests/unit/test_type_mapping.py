"""
Tests for MySQL type mapping.
"""
import pytest
from mysql_driver.exceptions import UnknownNativeTypeError
from mysql_driver.types import Column, DefaultTypeMapper, MySqlTypeMapper
from mysql_driver.types import NativeType, TypeMapper, native_type_name


@pytest.fixture
def mapper():
    return MySqlTypeMapper()


@pytest.mark.parametrize(('code', 'expected'), [
    (0, 'decimal'),
    (246, 'decimal'),
    (1, 'tinyint'),
    (2, 'smallint'),
    (3, 'int'),
    (9, 'mediumint'),
    (8, 'bigint'),
    (14, 'datetime'),
    (17, 'timestamp'),
    (18, 'datetime'),
    (19, 'time'),
    (249, 'tinytext'),
    (250, 'mediumtext'),
    (251, 'longtext'),
    (252, 'text'),
    (253, 'varchar'),
    (254, 'varchar'),
])
def test_native_type_names(code, expected):
    """Test protocol codes with a dedicated MySQL name"""
    assert native_type_name(code) == expected


def test_native_type_falls_back_to_code_name():
    """Test other known codes resolve to their protocol name"""
    assert native_type_name(NativeType.DATE) == 'DATE'
    assert native_type_name(12) == 'DATETIME'
    assert native_type_name(245) == 'JSON'


def test_unknown_native_type_rejected():
    """Test codes outside the protocol table raise"""
    with pytest.raises(UnknownNativeTypeError, match='200'):
        native_type_name(200)


@pytest.mark.parametrize(('column_type', 'expected'), [
    ('bigint unsigned', 'int'),
    ('BIGINT', 'int'),
    ('tinyint(1)', 'int'),
    ('int(11)', 'int'),
    ('mediumtext', 'text'),
    ('LongText', 'text'),
    ('varchar', 'text'),
    ('datetime', 'timestamp'),
    ('decimal', 'decimal'),
    ('geometry', 'geometry'),
])
def test_to_generic_type(mapper, column_type, expected):
    """Test MySQL aliases collapse and unknown types fall through"""
    assert mapper.to_generic_type(column_type) == expected


@pytest.mark.parametrize(('generic_type', 'expected'), [
    ('string', 'varchar(255) CHARACTER SET utf8mb4'),
    ('text', 'varchar(255) CHARACTER SET utf8mb4'),
    ('decimal', 'decimal(38,10)'),
    ('int', 'int'),
    ('timestamp', 'timestamp'),
])
def test_from_generic_type(mapper, generic_type, expected):
    """Test generic types map to DDL types"""
    assert mapper.from_generic_type(generic_type) == expected


def test_to_column_value_boolean(mapper):
    """Test boolean strings convert only for boolean columns"""
    assert mapper.to_column_value('TRUE', 'boolean') is True
    assert mapper.to_column_value('true', 'boolean') is True
    assert mapper.to_column_value('False', 'boolean') is False
    assert mapper.to_column_value('yes', 'boolean') == 'yes'
    assert mapper.to_column_value('true', 'string') == 'true'
    assert mapper.to_column_value(1, 'boolean') == 1


def test_to_column_value_timestamp(mapper):
    """Test the UTC marker is stripped only for timestamp columns"""
    assert mapper.to_column_value('2024-01-01T00:00:00.000Z', 'timestamp') == '2024-01-01T00:00:00.000'
    assert mapper.to_column_value('', 'timestamp') == ''
    assert mapper.to_column_value('2024-01-01T00:00:00.000Z', 'string') == '2024-01-01T00:00:00.000Z'
    assert mapper.to_column_value(None, 'timestamp') is None


def test_fallback_is_consulted():
    """Test a custom fallback handles what MySQL does not override"""
    class UpperFallback(DefaultTypeMapper):
        def from_generic_type(self, generic_type):
            return generic_type.upper()

        def to_column_value(self, value, generic_type):
            return ('fallback', value)

    mapper = MySqlTypeMapper(fallback=UpperFallback())
    assert mapper.from_generic_type('int') == 'INT'
    assert mapper.from_generic_type('text') == 'varchar(255) CHARACTER SET utf8mb4'
    assert mapper.to_column_value(5, 'int') == ('fallback', 5)
    assert isinstance(mapper, TypeMapper)


def test_type_mapper_is_abstract():
    """Test the capability interface cannot be instantiated"""
    with pytest.raises(TypeError):
        TypeMapper()


def test_map_fields(mapper):
    """Test cursor descriptions become column descriptors"""
    description = (
        ('id', 8, None, None, None, None, False),
        ('name', 253, None, None, None, None, True),
        ('created', 12, None, None, None, None, True),
        ('amount', 246, None, None, None, None, True),
    )
    assert mapper.map_fields(description) == [
        Column('id', 'int'),
        Column('name', 'text'),
        Column('created', 'timestamp'),
        Column('amount', 'decimal'),
    ]
    assert mapper.map_fields(None) == []


if __name__ == '__main__':
    __import__('pytest').main([__file__])
