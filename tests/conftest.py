import logging
import pathlib
import site

import pytest

HERE = pathlib.Path(pathlib.Path(__file__).resolve()).parent
site.addsitedir(HERE)


@pytest.fixture(autouse=True)
def driver_logging(caplog):
    """Capture driver debug logging so failures show pool activity."""
    caplog.set_level(logging.DEBUG, logger='mysql_driver')
    yield


pytest_plugins = [
    'tests.fixtures.mocks',
    'tests.fixtures.mysql',
]
