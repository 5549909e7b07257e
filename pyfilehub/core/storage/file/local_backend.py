"""Local filesystem storage backend."""

from __future__ import annotations

import io
import os
import shutil
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO

import aiosqlite

from pyfilehub.logging.setup import get_logger

from .backend import FileId, FileStorage
from .errors import ConfigurationError
from .models import FileContent, FileRecord
from .options import FileSystemStorageOptions, MimeTypeValidationOptions


logger = get_logger(__name__)


class FileSystemFileStorage(FileStorage):
    """
    Local filesystem storage backend.

    Content is stored under the file id:
    - Base directory: /path/to/storage/
    - Content: files/<file id>
    - Metadata: file_records.db (SQLite, name/content type/size per file)

    Writes go to a temporary file that replaces the target only once
    complete, so an interrupted update leaves the previous content intact.
    """

    def __init__(
        self,
        options: FileSystemStorageOptions,
        validation_options: MimeTypeValidationOptions | None = None,
    ):
        """
        Initialize local storage backend.

        Args:
            options: Filesystem storage options
            validation_options: MIME type validation policy
        """
        super().__init__(validation_options)

        if not options.storage_root_path or not options.storage_root_path.strip():
            raise ConfigurationError("storage_root_path must be set")

        self.options = options
        self.base_dir = Path(options.storage_root_path)
        self.files_dir = self.base_dir / "files"
        self.db_path = self.base_dir / "file_records.db"

        # Create directories
        self.files_dir.mkdir(parents=True, exist_ok=True)

        # Initialize database (will be done async on first use)
        self._db_initialized = False

    async def _ensure_db(self):
        """Ensure database is initialized."""
        if self._db_initialized:
            return

        async with aiosqlite.connect(str(self.db_path)) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS file_records (
                    file_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    content_type TEXT NOT NULL,
                    size_bytes INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            await db.commit()

        self._db_initialized = True
        logger.debug(f"File record database ready at {self.db_path}")

    def _content_path(self, key: str) -> Path:
        # Keys are file ids; anything else could escape the files directory
        if not _is_file_id(key):
            raise FileNotFoundError(f"File not found: {key}")
        return self.files_dir / key

    async def _write_content(self, record: FileRecord, content: BinaryIO) -> None:
        await self._ensure_db()

        key = str(record.id)
        target = self._content_path(key)
        partial = target.with_name(f"{key}.partial")

        # Metadata is stored before the content is swapped in, so a failed
        # database write leaves both the old content and the old record
        try:
            with open(partial, "wb") as f:
                shutil.copyfileobj(content, f)
            await self._upsert_record(record)
            os.replace(partial, target)
        finally:
            if partial.exists():
                partial.unlink()

    async def _upsert_record(self, record: FileRecord) -> None:
        now = datetime.now(timezone.utc).isoformat()
        async with aiosqlite.connect(str(self.db_path)) as db:
            await db.execute("""
                INSERT INTO file_records (
                    file_id, name, content_type, size_bytes, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(file_id) DO UPDATE SET
                    content_type = excluded.content_type,
                    size_bytes = excluded.size_bytes,
                    updated_at = excluded.updated_at
            """, (
                str(record.id),
                record.name,
                record.content_type,
                record.size,
                now,
                now,
            ))
            await db.commit()

    async def _copy_content(self, source: FileRecord, target: FileRecord) -> None:
        await self._ensure_db()

        source_path = self._content_path(str(source.id))
        if not source_path.exists():
            raise FileNotFoundError(f"File not found: {source.id}")

        shutil.copyfile(source_path, self._content_path(str(target.id)))
        await self._upsert_record(target)

    async def _read_content(self, key: str) -> BinaryIO:
        path = self._content_path(key)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {key}")

        # Read file into BytesIO so no handle is left open
        with open(path, "rb") as f:
            return io.BytesIO(f.read())

    async def _read_file(self, key: str) -> FileContent:
        record = await self._load_record(key)
        return FileContent(
            name=record.name,
            content_type=record.content_type,
            content=await self._read_content(key),
        )

    async def get_record(self, file_id: FileId) -> FileRecord:
        """
        Load the stored record of a file.

        Raises:
            NotFoundError: If no record exists
        """
        key = str(file_id)
        return await self._guard("load record of", key, self._load_record(key))

    async def _load_record(self, key: str) -> FileRecord:
        await self._ensure_db()

        async with aiosqlite.connect(str(self.db_path)) as db:
            async with db.execute("""
                SELECT file_id, name, content_type, size_bytes
                FROM file_records
                WHERE file_id = ?
            """, (key,)) as cursor:
                row = await cursor.fetchone()
                if not row:
                    raise FileNotFoundError(f"File not found: {key}")

                return FileRecord(
                    name=row[1],
                    size=row[3],
                    content_type=row[2],
                    file_id=row[0],
                )

    async def _delete_content(self, key: str) -> None:
        await self._ensure_db()

        path = self._content_path(key)

        async with aiosqlite.connect(str(self.db_path)) as db:
            cursor = await db.execute(
                "DELETE FROM file_records WHERE file_id = ?", (key,))
            deleted_rows = cursor.rowcount
            await db.commit()

        if not path.exists() and not deleted_rows:
            raise FileNotFoundError(f"File not found: {key}")

        if path.exists():
            path.unlink()

    async def _content_exists(self, key: str) -> bool:
        return _is_file_id(key) and self._content_path(key).is_file()

    async def _file_url(self, key: str) -> str:
        if not self.options.allow_download_url:
            raise ConfigurationError(
                "Download urls are disabled for filesystem storage "
                "(set allow_download_url to enable them).")

        path = self._content_path(key)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {key}")

        return path.resolve().as_uri()


def _is_file_id(key: str) -> bool:
    try:
        uuid.UUID(key)
    except ValueError:
        return False
    return True
