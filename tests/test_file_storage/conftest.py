"""
Fixtures for file storage tests.

Object storage is exercised against InMemoryContainerClient from
storage_fakes, an in-memory implementation of the BlobContainerClient
protocol that records how it was used and can be told to fail.
"""

from __future__ import annotations

import pytest

from pyfilehub.core.storage.file.options import BlobStorageOptions

from storage_fakes import (
    ACCOUNT_NAME,
    CONNECTION_STRING,
    CONTAINER_NAME,
    SHARED_ACCESS_DURATION,
    InMemoryContainerClient,
)


@pytest.fixture
def container_client():
    """Create an empty in-memory container client."""
    return InMemoryContainerClient()


@pytest.fixture
def shared_key_options():
    """Blob options authenticated with a connection string."""
    return BlobStorageOptions(
        connection_string=CONNECTION_STRING,
        container_name=CONTAINER_NAME,
        shared_access_duration=SHARED_ACCESS_DURATION,
    )


@pytest.fixture
def identity_options():
    """Blob options authenticated with a named identity."""
    return BlobStorageOptions(
        account_name=ACCOUNT_NAME,
        container_name=CONTAINER_NAME,
        shared_access_duration=SHARED_ACCESS_DURATION,
    )
