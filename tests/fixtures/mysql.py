import logging
import pathlib
import sys

import pytest

HERE = pathlib.Path(pathlib.Path(__file__).resolve()).parent
sys.path.append(str(HERE.parent))
import config

logger = logging.getLogger(__name__)


def _start_container():
    """Start a MySQL container, skipping the test when Docker is unavailable."""
    mysql = pytest.importorskip('testcontainers.mysql')

    container = mysql.MySqlContainer(
        image=config.mysql['image'],
        username=config.mysql['user'],
        password=config.mysql['password'],
        dbname=config.mysql['database'],
    )
    try:
        container.start()
    except Exception as e:
        logger.warning(f'Could not start MySQL container: {e}')
        pytest.skip(f'Docker is not available: {e}')

    logger.info(
        f'MySQL container started at '
        f'{container.get_container_host_ip()}:{container.get_exposed_port(3306)}'
    )
    return container


def driver_config(container, **overrides):
    """Explicit driver options pointing at a running container."""
    return {
        'host': container.get_container_host_ip(),
        'port': int(container.get_exposed_port(3306)),
        'user': config.mysql['user'],
        'password': config.mysql['password'],
        'database': config.mysql['database'],
        'store_timezone': config.mysql['store_timezone'],
        **overrides,
    }


def _stopper(container):
    def finalizer():
        try:
            container.stop()
            logger.info('MySQL container stopped')
        except Exception as e:
            logger.warning(f'Error stopping container: {e}')
    return finalizer


@pytest.fixture(scope='session')
def mysql_docker(request):
    """Session-scoped MySQL container shared by the integration tests.
    """
    container = _start_container()
    request.addfinalizer(_stopper(container))
    return container


@pytest.fixture
def disposable_mysql(request):
    """Function-scoped container for tests that stop the server.
    """
    container = _start_container()
    request.addfinalizer(_stopper(container))
    return container


@pytest.fixture
def mysql_driver(mysql_docker, clean_env):
    """Driver connected to the shared container, released after the test.
    """
    from mysql_driver import MySqlDriver

    driver = MySqlDriver(driver_config(mysql_docker))
    yield driver
    driver.release()
