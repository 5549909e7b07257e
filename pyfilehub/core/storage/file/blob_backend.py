"""Object storage backends built on a BlobContainerClient."""

from __future__ import annotations

from datetime import datetime
from typing import BinaryIO, Callable
from urllib.parse import quote

from pyfilehub.logging.setup import get_logger

from .backend import FileId, FileStorage
from .container import BlobContainerClient, SharedContainer
from .models import CloudStorageAction, FileContent, FileRecord
from .options import BlobStorageOptions, MimeTypeValidationOptions
from .signing import SharedAccessUrlIssuer, create_url_signer, utcnow


logger = get_logger(__name__)

# Blob metadata key holding the original file name
FILE_NAME_METADATA_KEY = "file_name"


class BlobFileStorage(FileStorage):
    """
    Object storage backend.

    Each file is one blob named after the file id. The file name travels
    in blob metadata and the content type in the blob properties. The
    container is created on first use and shared by all operations of
    this instance.
    """

    def __init__(
        self,
        options: BlobStorageOptions,
        client: BlobContainerClient,
        validation_options: MimeTypeValidationOptions | None = None,
    ):
        """
        Initialize blob storage.

        Args:
            options: Blob storage options (validated immediately)
            client: Client bound to the configured container
            validation_options: MIME type validation policy

        Raises:
            ConfigurationError: If the credential settings are inconsistent
            NamingError: If the container name is invalid
        """
        super().__init__(validation_options)

        options.ensure_is_valid()

        self.options = options
        self._container = SharedContainer(client, options.container_name)

    @property
    def container(self) -> SharedContainer:
        return self._container

    async def _write_content(self, record: FileRecord, content: BinaryIO) -> None:
        client = await self._container.get()
        await client.upload_blob(
            str(record.id),
            content,
            record.content_type,
            {FILE_NAME_METADATA_KEY: record.name},
        )

    async def _copy_content(self, source: FileRecord, target: FileRecord) -> None:
        client = await self._container.get()
        properties = await client.get_blob_properties(str(source.id))
        content = await client.download_blob(str(source.id))
        await client.upload_blob(
            str(target.id),
            content,
            properties.content_type,
            {FILE_NAME_METADATA_KEY: target.name},
        )

    async def _read_content(self, key: str) -> BinaryIO:
        client = await self._container.get()
        return await client.download_blob(key)

    async def _read_file(self, key: str) -> FileContent:
        client = await self._container.get()
        properties = await client.get_blob_properties(key)
        content = await client.download_blob(key)
        return FileContent(
            name=properties.metadata.get(FILE_NAME_METADATA_KEY, key),
            content_type=properties.content_type,
            content=content,
        )

    async def _delete_content(self, key: str) -> None:
        client = await self._container.get()
        await client.delete_blob(key)

    async def _content_exists(self, key: str) -> bool:
        client = await self._container.get()
        return await client.blob_exists(key)

    async def _file_url(self, key: str) -> str:
        client = await self._container.get()
        if not await client.blob_exists(key):
            raise FileNotFoundError(f"File not found: {key}")
        return f"{client.url}/{quote(key, safe='/')}"


class BlobCloudStorage(BlobFileStorage):
    """
    Object storage backend that also hands out shared access URLs.

    Callers can transfer data directly against the object store with the
    download, upload and delete URLs. No additional checks are performed
    on what is transferred through them.
    """

    def __init__(
        self,
        options: BlobStorageOptions,
        client: BlobContainerClient,
        validation_options: MimeTypeValidationOptions | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize cloud storage.

        Args:
            options: Blob storage options; shared_access_duration must be positive
            client: Client bound to the configured container
            validation_options: MIME type validation policy
            clock: Source of the current UTC time for URL windows

        Raises:
            ConfigurationError: If shared_access_duration is missing or not
                positive, or the credential settings are inconsistent
        """
        super().__init__(options, client, validation_options)

        duration = options.ensure_shared_access()
        self._url_issuer = SharedAccessUrlIssuer(
            self._container,
            create_url_signer(options, client),
            duration,
            clock=clock,
        )

    async def get_download_url(self, file_id: FileId) -> str:
        """Issue a read-only URL for a file."""
        return await self._issue_url(file_id, CloudStorageAction.DOWNLOAD)

    async def get_upload_url(self, file_id: FileId) -> str:
        """Issue a create/write URL for a file."""
        return await self._issue_url(file_id, CloudStorageAction.UPLOAD)

    async def get_delete_url(self, file_id: FileId) -> str:
        """Issue a delete-only URL for a file."""
        return await self._issue_url(file_id, CloudStorageAction.DELETE)

    async def _issue_url(self, file_id: FileId, action: CloudStorageAction) -> str:
        key = str(file_id)
        return await self._guard(
            f"issue {action.value} url for", key,
            self._url_issuer.issue_url(key, action))

    async def upload_file(
        self,
        file_name: str,
        content: BinaryIO | bytes,
        content_type: str,
        tags: dict[str, str] | None = None,
    ) -> FileRecord:
        """
        Store new content, then apply tags when given.

        Raises:
            ValidationError: If the content is rejected
            BackendError: If storing the content or the tags fails
        """
        record = await super().upload_file(file_name, content, content_type)

        if tags is not None:
            await self.update_file_tags(record, tags)

        return record

    async def update_file_tags(
            self, record: FileRecord, tags: dict[str, str]) -> None:
        """
        Replace all tags of a stored file.

        Raises:
            NotFoundError: If the file does not exist
            BackendError: If the backend rejects the tags
        """
        if tags is None:
            raise ValueError("tags must not be None")

        key = str(record.id)
        await self._guard("tag", key, self._set_tags(key, tags))
        logger.debug(f"Updated {len(tags)} tags of file {key}")

    async def _set_tags(self, key: str, tags: dict[str, str]) -> None:
        client = await self._container.get()
        await client.set_blob_tags(key, dict(tags))
