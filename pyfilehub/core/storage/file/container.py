"""
Object storage container access.

BlobContainerClient describes the capabilities the storage layer needs from
an object storage SDK. SharedContainer turns such a client into a container
that is created once per handle, shared by all concurrent callers.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import BinaryIO, Protocol, runtime_checkable

from azure.storage.blob import UserDelegationKey

from pyfilehub.logging.setup import get_logger

from .naming import validate_container_name


logger = get_logger(__name__)


@dataclass
class BlobProperties:
    """Properties of a stored blob."""
    size: int
    content_type: str
    metadata: dict[str, str] = field(default_factory=dict)


@runtime_checkable
class BlobContainerClient(Protocol):
    """
    Capabilities of one object storage container.

    Implementations raise FileNotFoundError when a blob does not exist.
    Any other exception is treated as a backend failure.
    """

    @property
    def url(self) -> str:
        """Base URL of the container, without a trailing slash."""
        ...

    async def create_if_not_exists(self) -> None:
        ...

    async def upload_blob(
        self,
        name: str,
        data: BinaryIO,
        content_type: str,
        metadata: dict[str, str],
    ) -> None:
        """Create or overwrite a blob."""
        ...

    async def download_blob(self, name: str) -> BinaryIO:
        ...

    async def get_blob_properties(self, name: str) -> BlobProperties:
        ...

    async def delete_blob(self, name: str) -> None:
        ...

    async def blob_exists(self, name: str) -> bool:
        ...

    async def set_blob_tags(self, name: str, tags: dict[str, str]) -> None:
        """Replace all tags of a blob."""
        ...

    async def get_user_delegation_key(
        self,
        starts_on: datetime,
        expires_on: datetime,
    ) -> UserDelegationKey:
        """Request a delegation key valid for the given window."""
        ...


class SharedContainer:
    """
    Lazily created container shared by every operation of one backend.

    The first call to get() starts the creation attempt and publishes it;
    concurrent callers wait on the same attempt. A successful attempt is
    kept for the lifetime of the handle. A failed or cancelled attempt is
    dropped so the next call starts a fresh one.
    """

    def __init__(self, client: BlobContainerClient, container_name: str):
        """
        Initialize the handle.

        Args:
            client: Client bound to the container
            container_name: Container name, validated immediately

        Raises:
            NamingError: If the container name is invalid
        """
        validate_container_name(container_name)

        self._client = client
        self._container_name = container_name
        self._container: BlobContainerClient | None = None
        self._pending: asyncio.Future[BlobContainerClient] | None = None

    @property
    def container_name(self) -> str:
        return self._container_name

    @property
    def is_ready(self) -> bool:
        return self._container is not None

    async def get(self) -> BlobContainerClient:
        """
        Return the ready container, creating it on first use.

        Raises:
            Exception: Whatever the creation attempt raised; the next call retries
        """
        if self._container is not None:
            return self._container

        attempt = self._pending
        if attempt is None or attempt.done():
            attempt = asyncio.ensure_future(self._initialize())
            attempt.add_done_callback(self._on_attempt_done)
            self._pending = attempt

        # A cancelled caller must not cancel the attempt other callers share
        return await asyncio.shield(attempt)

    async def _initialize(self) -> BlobContainerClient:
        logger.debug(f"Creating container '{self._container_name}' if missing")
        await self._client.create_if_not_exists()
        self._container = self._client
        return self._client

    def _on_attempt_done(self, attempt: asyncio.Future) -> None:
        if self._pending is attempt:
            self._pending = None

        if attempt.cancelled():
            logger.warning(
                f"Initialization of container '{self._container_name}' was cancelled")
            return

        error = attempt.exception()
        if error is not None:
            logger.warning(
                f"Initialization of container '{self._container_name}' failed, "
                f"next use will retry: {error}")
        else:
            logger.info(f"Container '{self._container_name}' is ready")
