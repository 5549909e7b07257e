"""
PyFileHub test configuration.

This module provides pytest fixtures shared by all tests:
- Isolation from PYFILEHUB_* environment variables
- A fresh ConfigManager and logging state per test
- Temporary storage directories
"""

import os
import pytest

from pyfilehub.config.settings import ConfigManager
from pyfilehub.logging.setup import reset_logging


# Session-level fixture to clear environment variables before any tests run
@pytest.fixture(scope="session", autouse=True)
def clear_env_vars():
    """
    Clear PYFILEHUB environment variables at session start.

    Variables exported in the developer's shell would otherwise override
    the configuration files written by the tests.
    """
    original_values = {
        name: value for name, value in os.environ.items()
        if name.startswith("PYFILEHUB_")
    }
    for name in original_values:
        del os.environ[name]

    yield

    for name, value in original_values.items():
        os.environ[name] = value


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset config manager and logging state around each test."""
    ConfigManager.reset_instance()
    reset_logging()
    yield
    ConfigManager.reset_instance()
    reset_logging()


@pytest.fixture
def storage_root(tmp_path):
    """Creates a storage directory in the test's temporary directory."""
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return storage_dir
