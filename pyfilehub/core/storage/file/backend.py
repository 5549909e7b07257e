"""Abstract file storage with the orchestration shared by all backends."""

from __future__ import annotations

import io
import os
import uuid
import zipfile
from abc import ABC, abstractmethod
from pathlib import PurePath
from typing import BinaryIO, Iterable

from pyfilehub.logging.setup import get_logger

from .errors import BackendError, FileStorageError, NotFoundError, ValidationError
from .models import FileContent, FileRecord
from .options import MimeTypeValidationOptions
from .validator import MimeTypeValidationStrategy, create_validation_strategy


logger = get_logger(__name__)

FileId = uuid.UUID | str


class FileStorage(ABC):
    """
    Backend-agnostic file storage.

    Public operations validate input, run content validation before anything
    is written, and translate backend failures into the FileStorageError
    hierarchy. Subclasses implement the raw object operations.

    Implementations:
    - FileSystemFileStorage: Store files on local filesystem
    - BlobFileStorage / BlobCloudStorage: Store files in object storage
    """

    def __init__(self, validation_options: MimeTypeValidationOptions | None = None):
        """
        Initialize storage.

        Args:
            validation_options: MIME type validation policy (accepts
                everything when omitted)
        """
        self._validation_strategy = create_validation_strategy(
            validation_options or MimeTypeValidationOptions())

    @property
    def validation_strategy(self) -> MimeTypeValidationStrategy:
        return self._validation_strategy

    async def upload_file(
        self,
        file_name: str,
        content: BinaryIO | bytes,
        content_type: str,
    ) -> FileRecord:
        """
        Store new content and create its record.

        Args:
            file_name: Name of the file
            content: File data as bytes or a binary stream (read from its
                current position)
            content_type: Declared MIME type

        Returns:
            FileRecord of the stored file

        Raises:
            ValidationError: If the content is rejected
            BackendError: If the backend fails to store the content
        """
        stream, size = self._prepare_content(content, content_type)
        record = FileRecord(file_name, size, content_type)

        await self._guard(
            "upload", str(record.id),
            self._write_content(record, stream))

        logger.info(
            f"Uploaded file {record.id} ('{file_name}', {size} bytes, {content_type})")
        return record

    async def update_file_content(
        self,
        record: FileRecord,
        content: BinaryIO | bytes,
        content_type: str | None = None,
    ) -> None:
        """
        Replace the content of an existing file.

        The record's size and content type are updated only after the new
        content has been stored.

        Args:
            record: Record of the file to update
            content: New file data
            content_type: New MIME type (keeps the current one when omitted)

        Raises:
            ValidationError: If the content is rejected
            BackendError: If the backend fails to store the content
        """
        content_type = content_type or record.content_type
        stream, size = self._prepare_content(content, content_type)

        candidate = FileRecord(record.name, size, content_type, file_id=record.id)
        await self._guard(
            "update", str(record.id),
            self._write_content(candidate, stream))

        record.update_content_info(size, content_type)
        logger.info(f"Updated content of file {record.id} ({size} bytes)")

    async def copy_file(
        self,
        record: FileRecord,
        file_name: str | None = None,
    ) -> FileRecord:
        """
        Duplicate a file under a new id.

        Args:
            record: Record of the file to copy
            file_name: Name of the copy (keeps the original name when omitted)

        Returns:
            Record of the copy

        Raises:
            NotFoundError: If the source file does not exist
        """
        duplicate = record.copy(file_name)
        await self._guard(
            "copy", str(record.id),
            self._copy_content(record, duplicate))

        logger.info(f"Copied file {record.id} to {duplicate.id}")
        return duplicate

    async def download_file_content(self, file_id: FileId) -> BinaryIO:
        """
        Download file content as a stream.

        Raises:
            NotFoundError: If the file does not exist
        """
        key = str(file_id)
        return await self._guard("download", key, self._read_content(key))

    async def download_file(self, file_id: FileId) -> FileContent:
        """
        Download file content together with its name and content type.

        Raises:
            NotFoundError: If the file does not exist
        """
        key = str(file_id)
        return await self._guard("download", key, self._read_file(key))

    async def download_file_contents_as_zip(
            self, records: Iterable[FileRecord]) -> BinaryIO:
        """
        Download several files as one ZIP stream.

        Entries are named after the records; repeated names get a numeric
        suffix. The operation is all-or-nothing: the first file that fails
        aborts the archive and its error is raised.

        Returns:
            Seekable stream positioned at the start of the archive
        """
        archive = io.BytesIO()
        used_names: set[str] = set()

        with zipfile.ZipFile(archive, "w", zipfile.ZIP_DEFLATED) as zf:
            for record in records:
                content = await self.download_file_content(record.id)
                entry_name = _unique_entry_name(record.name, used_names)
                zf.writestr(entry_name, content.read())

        archive.seek(0)
        return archive

    async def delete_file(self, file_id: FileId) -> None:
        """
        Delete a file.

        Raises:
            NotFoundError: If the file does not exist
        """
        key = str(file_id)
        await self._guard("delete", key, self._delete_content(key))
        logger.info(f"Deleted file {key}")

    async def file_exists(self, file_id: FileId) -> bool:
        """Check whether a file exists."""
        key = str(file_id)
        return await self._guard("exists", key, self._content_exists(key))

    async def get_file_url(self, file_id: FileId) -> str:
        """
        Get a stable URL the file can be read from.

        Raises:
            NotFoundError: If the file does not exist
        """
        key = str(file_id)
        return await self._guard("get url of", key, self._file_url(key))

    def _prepare_content(
        self,
        content: BinaryIO | bytes,
        content_type: str,
    ) -> tuple[BinaryIO, int]:
        """
        Validate content and return it as a stream with its size.

        Non-seekable streams are buffered so validation does not consume
        bytes the backend still has to write.

        Raises:
            ValidationError: If the content is rejected
        """
        if not content_type or not content_type.strip():
            raise ValueError("content_type must not be empty")

        if isinstance(content, (bytes, bytearray, memoryview)):
            data = bytes(content)
            allowed = self._validation_strategy.is_content_allowed(data, content_type)
            stream: BinaryIO = io.BytesIO(data)
            size = len(data)
        else:
            stream = content if content.seekable() else io.BytesIO(content.read())
            allowed = self._validation_strategy.is_file_allowed(stream, content_type)
            position = stream.tell()
            size = stream.seek(0, os.SEEK_END) - position
            stream.seek(position, os.SEEK_SET)

        if not allowed:
            logger.warning(f"Rejected content declared as '{content_type}'")
            raise ValidationError(
                f"File content is not allowed for content type '{content_type}'")

        return stream, size

    async def _guard(self, operation: str, key: str, call):
        """
        Await a backend call, translating its failures.

        FileNotFoundError becomes NotFoundError and any other non storage
        exception becomes BackendError.
        """
        try:
            return await call
        except FileStorageError:
            raise
        except FileNotFoundError as e:
            raise NotFoundError(key) from e
        except Exception as e:
            raise BackendError(f"Failed to {operation} file {key}: {e}") from e

    @abstractmethod
    async def _write_content(self, record: FileRecord, content: BinaryIO) -> None:
        """Create or overwrite the stored content and metadata of a record."""

    @abstractmethod
    async def _copy_content(self, source: FileRecord, target: FileRecord) -> None:
        """Store a copy of the source content under the target record."""

    @abstractmethod
    async def _read_content(self, key: str) -> BinaryIO:
        """Return the stored content; raise FileNotFoundError when missing."""

    @abstractmethod
    async def _read_file(self, key: str) -> FileContent:
        """Return content and metadata; raise FileNotFoundError when missing."""

    @abstractmethod
    async def _delete_content(self, key: str) -> None:
        """Delete content and metadata; raise FileNotFoundError when missing."""

    @abstractmethod
    async def _content_exists(self, key: str) -> bool:
        ...

    @abstractmethod
    async def _file_url(self, key: str) -> str:
        ...


def _unique_entry_name(name: str, used_names: set[str]) -> str:
    candidate = name
    path = PurePath(name)
    counter = 1
    while candidate in used_names:
        candidate = f"{path.stem} ({counter}){path.suffix}"
        counter += 1
    used_names.add(candidate)
    return candidate
