"""Build the configured file storage backend."""

from __future__ import annotations

from pyfilehub.config.settings import FileStorageSettings, get_config_manager
from pyfilehub.core.storage.file import (
    BlobCloudStorage,
    BlobContainerClient,
    BlobFileStorage,
    ConfigurationError,
    FileStorage,
    FileSystemFileStorage,
)
from pyfilehub.logging.setup import get_logger


logger = get_logger(__name__)


def create_file_storage(
    settings: FileStorageSettings | None = None,
    client: BlobContainerClient | None = None,
) -> FileStorage:
    """
    Create the file storage backend selected by configuration.

    Args:
        settings: File storage settings; loaded through the config manager
            when omitted
        client: Container client, required by the blob and cloud backends

    Raises:
        ConfigurationError: If the backend is unknown, a client is missing,
            or the backend options are inconsistent
    """
    if settings is None:
        settings = get_config_manager().file_storage

    backend = settings.backend
    validation = settings.mime_type_validation

    if backend == "filesystem":
        storage = FileSystemFileStorage(settings.filesystem, validation)
    elif backend in ("blob", "cloud"):
        if client is None:
            raise ConfigurationError(
                f"The {backend} backend requires a container client")
        if backend == "blob":
            storage = BlobFileStorage(settings.blob, client, validation)
        else:
            storage = BlobCloudStorage(settings.blob, client, validation)
    else:
        raise ConfigurationError(f"Unsupported storage backend: {backend}")

    logger.info(f"File storage initialized with {backend} backend")
    return storage
