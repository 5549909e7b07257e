"""File storage module for uploading, downloading and sharing files."""

from __future__ import annotations

from .errors import (
    FileStorageError,
    ConfigurationError,
    NamingError,
    ValidationError,
    BackendError,
    NotFoundError,
)
from .models import FileRecord, FileContent, CloudStorageAction
from .options import (
    BlobStorageOptions,
    FileSystemStorageOptions,
    MimeTypeSignatureOptions,
    MimeTypeValidationMode,
    MimeTypeValidationOptions,
)
from .naming import validate_blob_name, validate_container_name
from .validator import (
    MimeTypeValidationStrategy,
    WhitelistMimeTypeValidationStrategy,
    BlacklistMimeTypeValidationStrategy,
    create_validation_strategy,
)
from .container import BlobContainerClient, BlobProperties, SharedContainer, UserDelegationKey
from .signing import (
    SharedAccessToken,
    SharedAccessUrlIssuer,
    SharedKeySigner,
    UrlSigner,
    UserDelegationSigner,
)
from .backend import FileStorage
from .local_backend import FileSystemFileStorage
from .blob_backend import BlobFileStorage, BlobCloudStorage

__all__ = [
    "FileStorageError",
    "ConfigurationError",
    "NamingError",
    "ValidationError",
    "BackendError",
    "NotFoundError",
    "FileRecord",
    "FileContent",
    "CloudStorageAction",
    "BlobStorageOptions",
    "FileSystemStorageOptions",
    "MimeTypeSignatureOptions",
    "MimeTypeValidationMode",
    "MimeTypeValidationOptions",
    "validate_blob_name",
    "validate_container_name",
    "MimeTypeValidationStrategy",
    "WhitelistMimeTypeValidationStrategy",
    "BlacklistMimeTypeValidationStrategy",
    "create_validation_strategy",
    "BlobContainerClient",
    "BlobProperties",
    "SharedContainer",
    "UserDelegationKey",
    "SharedAccessToken",
    "SharedAccessUrlIssuer",
    "SharedKeySigner",
    "UrlSigner",
    "UserDelegationSigner",
    "FileStorage",
    "FileSystemFileStorage",
    "BlobFileStorage",
    "BlobCloudStorage",
]
