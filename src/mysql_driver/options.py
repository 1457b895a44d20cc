"""
Driver options.

Options are resolved once per driver from the environment of the logical
data source and any explicit configuration, then frozen.
"""
import logging
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any

from mysql_driver.config import DEFAULT_DATA_SOURCE, DataSourceEnv

logger = logging.getLogger(__name__)

__all__ = [
    'PoolOptions',
    'MySqlDriverOptions',
]

DEFAULT_MAX_POOL_SIZE = 8


@dataclass(frozen=True)
class PoolOptions:
    """Options for the shared connection pool

    - min_size: Idle connections kept even past the idle timeout (default: 0)
    - max_size: Maximum connections in the pool (default: 8)
    - idle_timeout: Seconds a connection may sit idle before eviction (default: 30)
    - eviction_interval: Seconds between idle eviction sweeps, 0 disables them (default: 10)
    - acquire_timeout: Seconds to wait for a connection (default: 20)
    - test_on_borrow: Probe connections with ``SELECT 1`` on checkout (default: True)
    - retry_delay: Initial delay between connection attempts while acquiring
    - retry_backoff: Multiplier applied to the delay after each failed attempt
    """
    min_size: int = 0
    max_size: int = DEFAULT_MAX_POOL_SIZE
    idle_timeout: float = 30
    eviction_interval: float = 10
    acquire_timeout: float = 20
    test_on_borrow: bool = True
    retry_delay: float = 0.5
    retry_backoff: float = 1.5

    def __post_init__(self):
        if self.min_size < 0:
            raise ValueError('min_size must not be negative')
        if self.max_size < 1:
            raise ValueError('max_size must be at least 1')
        if self.min_size > self.max_size:
            raise ValueError(f'min_size ({self.min_size}) exceeds max_size ({self.max_size})')
        if self.eviction_interval < 0:
            raise ValueError('eviction_interval must not be negative')

    @classmethod
    def merge(cls, base: 'PoolOptions', overrides: 'PoolOptions | Mapping[str, Any] | None') -> 'PoolOptions':
        """Return `base` with any fields set in `overrides` applied.
        """
        if overrides is None:
            return base
        if isinstance(overrides, PoolOptions):
            return overrides
        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f'Unknown pool options: {sorted(unknown)}')
        return replace(base, **{k: v for k, v in overrides.items() if v is not None})


@dataclass(frozen=True)
class MySqlDriverOptions:
    """Options

    Connection parameters default to the environment of `data_source`;
    see `mysql_driver.config.env` for the variable names.
    """
    host: str | None = None
    port: int | None = None
    database: str | None = None
    user: str | None = None
    password: str | None = None
    socket_path: str | None = None
    ssl: dict[str, Any] | None = None
    charset: str = 'utf8mb4'
    connect_timeout: int = 10
    store_timezone: str = '+00:00'
    date_strings: bool = True
    read_only: bool = True
    load_pre_aggregation_without_meta_lock: bool = False
    data_source: str = DEFAULT_DATA_SOURCE
    pool: PoolOptions = field(default_factory=PoolOptions)

    @classmethod
    def resolve(cls, config: 'MySqlDriverOptions | Mapping[str, Any] | None' = None,
                data_source: str | None = None, **overrides: Any) -> 'MySqlDriverOptions':
        """Resolve options for a data source.

        Args:
            config: Explicit options, either a mapping or an options object
            data_source: Logical data source whose environment supplies defaults
            **overrides: Additional explicit options, applied over `config`

        Explicit values that are not None win over the environment. Pool
        options are layered as built-in defaults, then `max_pool_size` (or
        the environment's max pool), then any raw `pool` options.

        Returns
            Frozen MySqlDriverOptions
        """
        if isinstance(config, MySqlDriverOptions):
            explicit = asdict(config)
            explicit['pool'] = config.pool
        else:
            explicit = dict(config or {})
        explicit.update(overrides)

        data_source = data_source or explicit.pop('data_source', None) or DEFAULT_DATA_SOURCE
        explicit.pop('data_source', None)
        max_pool_size = explicit.pop('max_pool_size', None)
        pool = explicit.pop('pool', None)

        env = DataSourceEnv.for_data_source(data_source)

        values: dict[str, Any] = {
            'host': env.host,
            'port': env.port,
            'database': env.name,
            'user': env.user,
            'password': env.password,
            'socket_path': env.socket_path,
            'ssl': env.ssl_options(),
        }

        known = {f.name for f in fields(cls)}
        unknown = set(explicit) - known
        if unknown:
            raise ValueError(f'Unknown driver options: {sorted(unknown)}')
        values.update({k: v for k, v in explicit.items() if v is not None})

        base_pool = PoolOptions(max_size=max_pool_size or env.max_pool or DEFAULT_MAX_POOL_SIZE)
        values['pool'] = PoolOptions.merge(base_pool, pool)
        values['data_source'] = data_source

        options = cls(**values)
        logger.debug(f'Resolved options for data source {data_source}: '
                     f'{options.host}:{options.port}/{options.database} '
                     f'(pool max {options.pool.max_size})')
        return options
