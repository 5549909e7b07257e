"""Configuration models for storage backends and MIME type validation."""

from __future__ import annotations

import re
from datetime import timedelta
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from .errors import ConfigurationError
from .naming import validate_container_name


_SIGNATURE_SEPARATORS = re.compile(r"[\s\-:]")


class MimeTypeValidationMode(str, Enum):
    """How the signature table is applied to uploads."""
    WHITELIST = "whitelist"
    BLACKLIST = "blacklist"


class MimeTypeSignatureOptions(BaseModel):
    """Byte signatures accepted as proof of one declared MIME type."""
    mime_type: str = Field(description="Declared MIME type, e.g. image/png")
    signatures: list[str] = Field(
        default_factory=list,
        description="Leading bytes as hex strings, e.g. '89 50 4E 47'"
    )

    @field_validator("mime_type")
    @classmethod
    def _normalize_mime_type(cls, value: str) -> str:
        value = normalize_mime_type(value)
        if not value:
            raise ValueError("mime_type must not be empty")
        return value

    @field_validator("signatures")
    @classmethod
    def _check_signatures(cls, value: list[str]) -> list[str]:
        for signature in value:
            parse_signature(signature)
        return value

    def signature_bytes(self) -> tuple[bytes, ...]:
        """Return the configured signatures decoded to bytes."""
        return tuple(parse_signature(signature) for signature in self.signatures)


class MimeTypeValidationOptions(BaseModel):
    """
    Content validation policy.

    The default is a blacklist with no signatures, which accepts everything.
    """
    validation_mode: MimeTypeValidationMode = Field(
        default=MimeTypeValidationMode.BLACKLIST)
    mime_type_signatures: list[MimeTypeSignatureOptions] = Field(
        default_factory=list)


class FileSystemStorageOptions(BaseModel):
    """Settings for the local filesystem backend."""
    storage_root_path: str = Field(
        default=".pyfilehub",
        description="Directory holding stored files and their metadata")
    allow_download_url: bool = Field(
        default=False,
        description="Whether get_file_url may expose file:// URIs")


class BlobStorageOptions(BaseModel):
    """
    Settings for an object storage container.

    Exactly one of connection_string (shared key) or account_name (named
    identity) must be set.
    """
    connection_string: str | None = Field(
        default=None,
        description="Connection string carrying a shared account key")
    account_name: str | None = Field(
        default=None,
        description="Storage account used with identity based authentication")
    container_name: str | None = Field(default=None)
    shared_access_duration: timedelta | None = Field(
        default=None,
        description="Lifetime of issued shared access URLs")

    @property
    def uses_identity(self) -> bool:
        return bool(self.account_name and self.account_name.strip())

    def ensure_is_valid(self) -> None:
        """
        Check credential exclusivity and the container name.

        Raises:
            ConfigurationError: If no credential or both credentials are set
            NamingError: If the container name is invalid
        """
        has_connection_string = bool(
            self.connection_string and self.connection_string.strip())

        if not has_connection_string and not self.uses_identity:
            raise ConfigurationError(
                "At least one connection must be provided, either the connection "
                "string or the account name (for identity based authentication).")

        if has_connection_string and self.uses_identity:
            raise ConfigurationError(
                "Only one connection can be provided, either the connection "
                "string or the account name (for identity based authentication).")

        validate_container_name(self.container_name)

    def ensure_shared_access(self) -> timedelta:
        """
        Return the shared access duration, requiring it to be positive.

        Raises:
            ConfigurationError: If the duration is missing or not positive
        """
        duration = self.shared_access_duration
        if duration is None or duration <= timedelta(0):
            raise ConfigurationError(
                "shared_access_duration is not set, the cloud storage provider "
                "will not be able to generate file urls.")
        return duration


def normalize_mime_type(mime_type: str | None) -> str:
    """Lowercase and trim a MIME type for table lookups."""
    return (mime_type or "").strip().lower()


def parse_signature(signature: str) -> bytes:
    """
    Decode a hex signature string.

    Spaces, hyphens and colons between byte pairs are ignored.

    Raises:
        ValueError: If the string is empty or not valid hex
    """
    cleaned = _SIGNATURE_SEPARATORS.sub("", signature or "")
    if not cleaned:
        raise ValueError("signature must not be empty")
    try:
        return bytes.fromhex(cleaned)
    except ValueError as e:
        raise ValueError(f"Invalid hex signature '{signature}': {e}") from e
