"""Exceptions raised by the file storage layer."""

from __future__ import annotations


class FileStorageError(Exception):
    """Base class for every file storage failure."""
    pass


class ConfigurationError(FileStorageError):
    """Raised when storage options are inconsistent or incomplete."""
    pass


class NamingError(FileStorageError):
    """Raised when a blob or container name violates provider naming rules."""
    pass


class ValidationError(FileStorageError):
    """Raised when file content is rejected by MIME type validation."""
    pass


class BackendError(FileStorageError):
    """Raised when the storage backend fails to complete an operation."""
    pass


class NotFoundError(FileStorageError):
    """Raised when an operation targets a file that does not exist."""

    def __init__(self, file_id: str, message: str | None = None):
        self.file_id = file_id
        super().__init__(message or f"File not found: {file_id}")
