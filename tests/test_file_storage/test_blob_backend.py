"""Tests for BlobFileStorage and BlobCloudStorage."""

from __future__ import annotations

import asyncio
import io
import uuid
import zipfile
from datetime import timedelta

import pytest
from azure.storage.blob import BlobSasPermissions, generate_blob_sas

from pyfilehub.core.storage.file.blob_backend import (
    FILE_NAME_METADATA_KEY,
    BlobCloudStorage,
    BlobFileStorage,
)
from pyfilehub.core.storage.file.errors import (
    BackendError,
    ConfigurationError,
    NamingError,
    NotFoundError,
    ValidationError,
)
from pyfilehub.core.storage.file.options import (
    BlobStorageOptions,
    MimeTypeSignatureOptions,
    MimeTypeValidationMode,
    MimeTypeValidationOptions,
)
from pyfilehub.core.storage.file.signing import SharedAccessToken

from storage_fakes import (
    ACCOUNT_KEY,
    ACCOUNT_NAME,
    CONNECTION_STRING,
    CONTAINER_NAME,
    CONTAINER_URL,
    NOW,
    PNG_HEADER,
    SHARED_ACCESS_DURATION,
    NonSeekableStream,
)


@pytest.fixture
def png_only():
    return MimeTypeValidationOptions(
        validation_mode=MimeTypeValidationMode.WHITELIST,
        mime_type_signatures=[
            MimeTypeSignatureOptions(mime_type="image/png", signatures=["89 50 4E 47"]),
        ],
    )


@pytest.fixture
def blob_storage(shared_key_options, container_client):
    return BlobFileStorage(shared_key_options, container_client)


@pytest.fixture
def cloud_storage(shared_key_options, container_client):
    return BlobCloudStorage(shared_key_options, container_client, clock=lambda: NOW)


class TestConfiguration:
    """Option checks performed at construction."""

    def test_requires_a_credential(self, container_client):
        options = BlobStorageOptions(container_name=CONTAINER_NAME)

        with pytest.raises(ConfigurationError):
            BlobFileStorage(options, container_client)

    def test_rejects_both_credentials(self, container_client):
        options = BlobStorageOptions(
            connection_string=CONNECTION_STRING,
            account_name=ACCOUNT_NAME,
            container_name=CONTAINER_NAME,
        )

        with pytest.raises(ConfigurationError):
            BlobFileStorage(options, container_client)

    def test_rejects_invalid_container_name(self, container_client):
        options = BlobStorageOptions(
            connection_string=CONNECTION_STRING, container_name="My_Files")

        with pytest.raises(NamingError):
            BlobFileStorage(options, container_client)

    @pytest.mark.parametrize("duration", [None, timedelta(0), timedelta(seconds=-30)])
    def test_cloud_storage_requires_positive_duration(self, container_client, duration):
        options = BlobStorageOptions(
            connection_string=CONNECTION_STRING,
            container_name=CONTAINER_NAME,
            shared_access_duration=duration,
        )

        with pytest.raises(ConfigurationError) as exc_info:
            BlobCloudStorage(options, container_client)

        assert "shared_access_duration" in str(exc_info.value)

    def test_plain_storage_does_not_need_duration(self, container_client):
        options = BlobStorageOptions(
            connection_string=CONNECTION_STRING, container_name=CONTAINER_NAME)

        BlobFileStorage(options, container_client)

    def test_construction_does_not_touch_the_service(self, blob_storage, container_client):
        assert container_client.create_calls == 0
        assert not blob_storage.container.is_ready


class TestFileOperations:
    """Facade operations against object storage."""

    @pytest.mark.asyncio
    async def test_upload_and_download(self, blob_storage, container_client):
        record = await blob_storage.upload_file("notes.txt", b"hello world", "text/plain")

        assert record.size == 11
        assert container_client.blobs[str(record.id)] == b"hello world"
        properties = container_client.properties[str(record.id)]
        assert properties.content_type == "text/plain"
        assert properties.metadata[FILE_NAME_METADATA_KEY] == "notes.txt"

        content = await blob_storage.download_file_content(record.id)
        assert content.read() == b"hello world"

    @pytest.mark.asyncio
    async def test_download_file_restores_name(self, blob_storage):
        record = await blob_storage.upload_file("notes.txt", b"hello", "text/plain")

        downloaded = await blob_storage.download_file(record.id)

        assert downloaded.name == "notes.txt"
        assert downloaded.content_type == "text/plain"
        assert downloaded.content.read() == b"hello"

    @pytest.mark.asyncio
    async def test_upload_from_stream_position(self, blob_storage, container_client):
        stream = io.BytesIO(b"headerpayload")
        stream.seek(6)

        record = await blob_storage.upload_file("payload.bin", stream, "application/octet-stream")

        assert record.size == 7
        assert container_client.blobs[str(record.id)] == b"payload"

    @pytest.mark.asyncio
    async def test_upload_non_seekable_stream(self, shared_key_options, container_client, png_only):
        storage = BlobFileStorage(shared_key_options, container_client, png_only)

        record = await storage.upload_file(
            "image.png", NonSeekableStream(PNG_HEADER + b"pixels"), "image/png")

        assert record.size == len(PNG_HEADER) + 6
        assert container_client.blobs[str(record.id)] == PNG_HEADER + b"pixels"

    @pytest.mark.asyncio
    async def test_rejected_content_is_not_stored(
            self, shared_key_options, container_client, png_only):
        storage = BlobFileStorage(shared_key_options, container_client, png_only)

        with pytest.raises(ValidationError):
            await storage.upload_file("fake.png", b"<script>", "image/png")

        assert container_client.blobs == {}
        assert container_client.create_calls == 0

    @pytest.mark.asyncio
    async def test_update_content(self, blob_storage, container_client):
        record = await blob_storage.upload_file("notes.txt", b"v1", "text/plain")

        await blob_storage.update_file_content(record, b"version 2", "text/markdown")

        assert record.size == 9
        assert record.content_type == "text/markdown"
        assert container_client.blobs[str(record.id)] == b"version 2"
        assert container_client.properties[str(record.id)].metadata[
            FILE_NAME_METADATA_KEY] == "notes.txt"

    @pytest.mark.asyncio
    async def test_failed_update_leaves_record_untouched(self, blob_storage, container_client):
        record = await blob_storage.upload_file("notes.txt", b"v1", "text/plain")
        container_client.operation_error = RuntimeError("service unavailable")

        with pytest.raises(BackendError):
            await blob_storage.update_file_content(record, b"version 2", "text/markdown")

        assert record.size == 2
        assert record.content_type == "text/plain"

    @pytest.mark.asyncio
    async def test_copy(self, blob_storage, container_client):
        record = await blob_storage.upload_file("notes.txt", b"hello", "text/plain")

        duplicate = await blob_storage.copy_file(record, "copy.txt")

        assert duplicate.id != record.id
        assert duplicate.size == record.size
        assert duplicate.content_type == record.content_type
        assert container_client.blobs[str(duplicate.id)] == b"hello"
        assert container_client.properties[str(duplicate.id)].metadata[
            FILE_NAME_METADATA_KEY] == "copy.txt"

    @pytest.mark.asyncio
    async def test_delete(self, blob_storage):
        record = await blob_storage.upload_file("notes.txt", b"hello", "text/plain")
        assert await blob_storage.file_exists(record.id)

        await blob_storage.delete_file(record.id)

        assert not await blob_storage.file_exists(record.id)

    @pytest.mark.asyncio
    async def test_missing_file(self, blob_storage):
        missing = uuid.uuid4()

        with pytest.raises(NotFoundError) as exc_info:
            await blob_storage.download_file_content(missing)
        assert exc_info.value.file_id == str(missing)

        with pytest.raises(NotFoundError):
            await blob_storage.delete_file(missing)
        with pytest.raises(NotFoundError):
            await blob_storage.get_file_url(missing)
        assert not await blob_storage.file_exists(missing)

    @pytest.mark.asyncio
    async def test_file_url_is_plain_blob_url(self, blob_storage):
        record = await blob_storage.upload_file("notes.txt", b"hello", "text/plain")

        assert await blob_storage.get_file_url(record.id) == f"{CONTAINER_URL}/{record.id}"

    @pytest.mark.asyncio
    async def test_zip_download(self, blob_storage):
        first = await blob_storage.upload_file("a.txt", b"first", "text/plain")
        second = await blob_storage.upload_file("a.txt", b"second", "text/plain")

        archive = await blob_storage.download_file_contents_as_zip([first, second])

        with zipfile.ZipFile(archive) as zf:
            assert zf.namelist() == ["a.txt", "a (1).txt"]
            assert zf.read("a.txt") == b"first"
            assert zf.read("a (1).txt") == b"second"

    @pytest.mark.asyncio
    async def test_container_is_created_once(self, blob_storage, container_client):
        record = await blob_storage.upload_file("notes.txt", b"hello", "text/plain")
        await blob_storage.download_file_content(record.id)
        await blob_storage.copy_file(record)
        await blob_storage.delete_file(record.id)

        assert container_client.create_calls == 1


class TestErrorTranslation:
    """Backend failures surface as storage errors."""

    @pytest.mark.asyncio
    async def test_backend_failure_is_wrapped(self, blob_storage, container_client):
        container_client.operation_error = RuntimeError("service unavailable")

        with pytest.raises(BackendError) as exc_info:
            await blob_storage.upload_file("notes.txt", b"hello", "text/plain")

        assert "upload" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_container_failure_is_wrapped_and_retried(
            self, blob_storage, container_client):
        container_client.failing_creates = 1

        with pytest.raises(BackendError):
            await blob_storage.upload_file("notes.txt", b"hello", "text/plain")

        record = await blob_storage.upload_file("notes.txt", b"hello", "text/plain")
        assert await blob_storage.file_exists(record.id)
        assert container_client.create_calls == 2


class TestCloudStorage:
    """Shared access URLs and tags."""

    @pytest.mark.asyncio
    async def test_download_url(self, cloud_storage):
        record = await cloud_storage.upload_file("notes.txt", b"hello", "text/plain")

        url = await cloud_storage.get_download_url(record.id)
        token = SharedAccessToken.from_url(url)

        assert url.startswith(f"{CONTAINER_URL}/{record.id}?")
        assert token.permissions == "r"
        assert token.window.expires_on == NOW + SHARED_ACCESS_DURATION
        assert url.endswith(generate_blob_sas(
            ACCOUNT_NAME, CONTAINER_NAME, str(record.id),
            account_key=ACCOUNT_KEY,
            permission=BlobSasPermissions(read=True),
            start=NOW,
            expiry=NOW + SHARED_ACCESS_DURATION,
            protocol="https",
        ))

    @pytest.mark.asyncio
    async def test_upload_and_delete_urls(self, cloud_storage):
        file_id = uuid.uuid4()

        upload = SharedAccessToken.from_url(await cloud_storage.get_upload_url(file_id))
        delete = SharedAccessToken.from_url(await cloud_storage.get_delete_url(file_id))

        assert upload.permissions == "acw"
        assert delete.permissions == "d"

    @pytest.mark.asyncio
    async def test_identity_urls(self, identity_options, container_client):
        storage = BlobCloudStorage(identity_options, container_client, clock=lambda: NOW)

        token = SharedAccessToken.from_url(await storage.get_download_url(uuid.uuid4()))

        assert token.delegation is not None
        assert len(container_client.delegation_key_requests) == 1

    @pytest.mark.asyncio
    async def test_cancelled_during_delegation_key_fetch(self, identity_options, container_client):
        storage = BlobCloudStorage(identity_options, container_client, clock=lambda: NOW)
        container_client.delegation_key_gate = asyncio.Event()

        task = asyncio.create_task(storage.get_download_url(uuid.uuid4()))
        while not container_client.delegation_key_requests:
            await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert storage.container.is_ready

        container_client.delegation_key_gate = None
        token = SharedAccessToken.from_url(await storage.get_download_url(uuid.uuid4()))

        assert token.delegation is not None
        assert container_client.create_calls == 1

    @pytest.mark.asyncio
    async def test_cancelled_before_delegation_key_fetch(self, identity_options, container_client):
        storage = BlobCloudStorage(identity_options, container_client, clock=lambda: NOW)
        container_client.create_gate = asyncio.Event()

        task = asyncio.create_task(storage.get_download_url(uuid.uuid4()))
        while container_client.create_calls == 0:
            await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert container_client.delegation_key_requests == []

        container_client.create_gate.set()
        token = SharedAccessToken.from_url(await storage.get_download_url(uuid.uuid4()))

        assert token.delegation is not None
        assert storage.container.is_ready
        assert container_client.create_calls == 1

    @pytest.mark.asyncio
    async def test_url_requires_account_key(self, container_client):
        options = BlobStorageOptions(
            connection_string=f"AccountName={ACCOUNT_NAME}",
            container_name=CONTAINER_NAME,
            shared_access_duration=SHARED_ACCESS_DURATION,
        )
        storage = BlobCloudStorage(options, container_client)

        with pytest.raises(ConfigurationError):
            await storage.get_download_url(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_url_for_invalid_name(self, cloud_storage):
        with pytest.raises(NamingError):
            await cloud_storage.get_download_url("bad.")

    @pytest.mark.asyncio
    async def test_url_container_failure_is_wrapped(self, cloud_storage, container_client):
        container_client.failing_creates = 1

        with pytest.raises(BackendError):
            await cloud_storage.get_download_url(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_upload_with_tags(self, cloud_storage, container_client):
        record = await cloud_storage.upload_file(
            "notes.txt", b"hello", "text/plain", tags={"project": "alpha"})

        assert container_client.tags[str(record.id)] == {"project": "alpha"}

    @pytest.mark.asyncio
    async def test_upload_without_tags(self, cloud_storage, container_client):
        record = await cloud_storage.upload_file("notes.txt", b"hello", "text/plain")

        assert str(record.id) not in container_client.tags

    @pytest.mark.asyncio
    async def test_update_tags_replaces_all(self, cloud_storage, container_client):
        tags = {"project": "alpha", "stage": "draft"}
        record = await cloud_storage.upload_file("notes.txt", b"hello", "text/plain", tags=tags)

        await cloud_storage.update_file_tags(record, {"stage": "final"})

        assert container_client.tags[str(record.id)] == {"stage": "final"}
        assert tags == {"project": "alpha", "stage": "draft"}

    @pytest.mark.asyncio
    async def test_update_tags_of_missing_file(self, cloud_storage):
        record = await cloud_storage.upload_file("notes.txt", b"hello", "text/plain")
        await cloud_storage.delete_file(record.id)

        with pytest.raises(NotFoundError):
            await cloud_storage.update_file_tags(record, {"stage": "final"})

    @pytest.mark.asyncio
    async def test_update_tags_requires_tags(self, cloud_storage):
        record = await cloud_storage.upload_file("notes.txt", b"hello", "text/plain")

        with pytest.raises(ValueError):
            await cloud_storage.update_file_tags(record, None)
