"""
Environment lookup for per-data-source connection settings.

Every logical data source reads its settings from its own set of
environment variables. The default data source uses the ``DB_`` prefix;
any other data source ``name`` uses ``DS_<NAME>_DB_``:

    DB_HOST=localhost            # default data source
    DS_ANALYTICS_DB_HOST=replica # data source 'analytics'
"""
import logging
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_DATA_SOURCE = 'default'


def env_prefix(data_source: str | None = None) -> str:
    """Return the environment variable prefix for a data source.
    """
    if not data_source or data_source == DEFAULT_DATA_SOURCE:
        return 'DB_'
    return f'DS_{data_source.upper()}_DB_'


class DataSourceEnv(BaseSettings):
    """Connection settings sourced from the environment.

    Fields are all optional; missing variables resolve to None so explicit
    configuration can fill the gaps.
    """
    model_config = SettingsConfigDict(env_prefix='DB_', extra='ignore')

    host: str | None = None
    name: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    socket_path: str | None = None
    max_pool: int | None = None
    ssl: bool = False
    ssl_ca: str | None = None
    ssl_cert: str | None = None
    ssl_key: str | None = None
    ssl_passphrase: str | None = None
    ssl_ciphers: str | None = None
    ssl_reject_unauthorized: bool = True

    @classmethod
    def for_data_source(cls, data_source: str | None = None) -> 'DataSourceEnv':
        """Load the settings for one data source.
        """
        prefix = env_prefix(data_source)
        logger.debug(f'Reading connection settings with prefix {prefix}')
        return cls(_env_prefix=prefix)

    def ssl_options(self) -> dict[str, Any] | None:
        """Build the PyMySQL ``ssl`` argument, or None when TLS is off.
        """
        if not self.ssl:
            return None

        options: dict[str, Any] = {}
        for key, value in (('ca', self.ssl_ca), ('cert', self.ssl_cert),
                           ('key', self.ssl_key), ('password', self.ssl_passphrase),
                           ('cipher', self.ssl_ciphers)):
            if value:
                options[key] = value

        if self.ssl_reject_unauthorized:
            options['verify_mode'] = 'required'
        else:
            options['verify_mode'] = 'none'
            options['check_hostname'] = False
        return options
