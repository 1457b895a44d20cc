"""
Fixtures for MySQL integration tests.
"""
import time

import pytest


@pytest.fixture
def test_table_name():
    """Generate a unique table name for isolation."""
    return f'test_upload_{int(time.time() * 1000)}'
