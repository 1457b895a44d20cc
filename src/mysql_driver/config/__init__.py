"""
Configuration sources for the driver.
"""
from mysql_driver.config.env import DEFAULT_DATA_SOURCE, DataSourceEnv
from mysql_driver.config.env import env_prefix

__all__ = ['DataSourceEnv', 'DEFAULT_DATA_SOURCE', 'env_prefix']
