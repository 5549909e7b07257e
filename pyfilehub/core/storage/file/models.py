"""File record and related value types."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, BinaryIO


class CloudStorageAction(str, Enum):
    """Actions a shared access URL can be issued for."""
    DOWNLOAD = "download"
    UPLOAD = "upload"
    DELETE = "delete"


class FileRecord:
    """
    Metadata of a stored file.

    The id is assigned at construction and never changes. Name, size and
    content type describe the stored content; size and content type are only
    ever updated together through update_content_info().
    """

    def __init__(
        self,
        name: str,
        size: int,
        content_type: str,
        file_id: uuid.UUID | str | None = None,
    ):
        """
        Create a file record.

        Args:
            name: File name shown to users
            size: Content size in bytes
            content_type: MIME type of the content
            file_id: Existing id when re-hydrating a record (a new one is
                generated when omitted)

        Raises:
            ValueError: If any argument is invalid
        """
        if not name or not name.strip():
            raise ValueError("name must not be empty")
        _check_content_info(size, content_type)

        if file_id is None:
            file_id = uuid.uuid4()
        elif isinstance(file_id, str):
            file_id = uuid.UUID(file_id)
        if file_id.int == 0:
            raise ValueError("file_id must not be the empty UUID")

        self._id = file_id
        self._name = name
        self._size = size
        self._content_type = content_type

    @property
    def id(self) -> uuid.UUID:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def size(self) -> int:
        return self._size

    @property
    def content_type(self) -> str:
        return self._content_type

    def update_content_info(self, size: int, content_type: str) -> None:
        """
        Replace size and content type after the content was swapped.

        Both values are checked before either is assigned.
        """
        _check_content_info(size, content_type)
        self._size = size
        self._content_type = content_type

    def copy(self, name: str | None = None) -> FileRecord:
        """
        Create a record for a duplicate of this file with a new id.

        Args:
            name: New file name (keeps the current name when blank)
        """
        return FileRecord(
            name if name and name.strip() else self._name,
            self._size,
            self._content_type,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": str(self._id),
            "name": self._name,
            "size": self._size,
            "content_type": self._content_type,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileRecord:
        """Create from dictionary."""
        return cls(
            name=data["name"],
            size=data["size"],
            content_type=data["content_type"],
            file_id=data["id"],
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FileRecord):
            return NotImplemented
        return self._id == other._id

    def __hash__(self) -> int:
        return hash(self._id)

    def __repr__(self) -> str:
        return (
            f"FileRecord(id={self._id}, name={self._name!r}, "
            f"size={self._size}, content_type={self._content_type!r})"
        )


@dataclass
class FileContent:
    """Downloaded file content together with its metadata."""
    name: str
    content_type: str
    content: BinaryIO


def _check_content_info(size: int, content_type: str) -> None:
    if size < 0:
        raise ValueError("size must not be negative")
    if not content_type or not content_type.strip():
        raise ValueError("content_type must not be empty")
