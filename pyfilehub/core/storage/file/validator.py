"""MIME type validation of uploaded content using magic numbers."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import BinaryIO, Mapping

from .options import (
    MimeTypeSignatureOptions,
    MimeTypeValidationMode,
    MimeTypeValidationOptions,
    normalize_mime_type,
)


# Well-known file headers, usable as a starting point for configuration
WELL_KNOWN_SIGNATURES = {
    "image/jpeg": ["FF D8 FF"],
    "image/png": ["89 50 4E 47 0D 0A 1A 0A"],
    "image/gif": ["47 49 46 38 37 61", "47 49 46 38 39 61"],
    "image/bmp": ["42 4D"],
    "image/tiff": ["49 49 2A 00", "4D 4D 00 2A"],
    "application/pdf": ["25 50 44 46 2D"],
    "application/zip": ["50 4B 03 04", "50 4B 05 06", "50 4B 07 08"],
    "application/gzip": ["1F 8B"],
    "audio/mpeg": ["FF FB", "FF F3", "FF F2", "49 44 33"],
    "video/mp4": ["00 00 00 18 66 74 79 70", "00 00 00 1C 66 74 79 70"],
}


def well_known_signature_options() -> list[MimeTypeSignatureOptions]:
    """Build signature options for every entry of WELL_KNOWN_SIGNATURES."""
    return [
        MimeTypeSignatureOptions(mime_type=mime_type, signatures=signatures)
        for mime_type, signatures in WELL_KNOWN_SIGNATURES.items()
    ]


class MimeTypeValidationStrategy(ABC):
    """
    Decides whether content may be stored under a declared MIME type.

    The signature table is built once from the options and never changes.
    A declared type with no signatures is not covered by the table.
    """

    def __init__(self, options: MimeTypeValidationOptions):
        table: dict[str, tuple[bytes, ...]] = {}
        for entry in options.mime_type_signatures:
            signatures = entry.signature_bytes()
            if signatures:
                table[entry.mime_type] = table.get(entry.mime_type, ()) + signatures

        self._signatures: Mapping[str, tuple[bytes, ...]] = MappingProxyType(table)
        self._header_length = max(
            (len(sig) for sigs in table.values() for sig in sigs),
            default=0,
        )

    @property
    def signatures(self) -> Mapping[str, tuple[bytes, ...]]:
        return self._signatures

    @abstractmethod
    def is_file_allowed(self, content: BinaryIO, mime_type: str) -> bool:
        """Check stream content; the stream position is left unchanged."""

    @abstractmethod
    def is_content_allowed(self, content: bytes, mime_type: str) -> bool:
        """Check in-memory content."""

    def is_file_covered(self, content: BinaryIO, mime_type: str) -> bool:
        """
        Check whether the declared type has signatures and the stream matches one.

        Args:
            content: Seekable binary stream, read from its current position
            mime_type: Declared MIME type

        Returns:
            True if the stream header matches a signature of the declared type

        Raises:
            ValueError: If the stream is not seekable
        """
        signatures = self._signatures.get(normalize_mime_type(mime_type))
        if not signatures:
            return False

        if not content.seekable():
            raise ValueError("Content stream must be seekable for validation")

        position = content.tell()
        try:
            header = content.read(self._header_length)
        finally:
            content.seek(position, os.SEEK_SET)

        return _matches_any(header, signatures)

    def is_content_covered(self, content: bytes, mime_type: str) -> bool:
        """Bytes counterpart of is_file_covered()."""
        signatures = self._signatures.get(normalize_mime_type(mime_type))
        if not signatures:
            return False

        return _matches_any(content[:self._header_length], signatures)


class WhitelistMimeTypeValidationStrategy(MimeTypeValidationStrategy):
    """Allows only content that matches a signature of its declared type."""

    def is_file_allowed(self, content: BinaryIO, mime_type: str) -> bool:
        return self.is_file_covered(content, mime_type)

    def is_content_allowed(self, content: bytes, mime_type: str) -> bool:
        return self.is_content_covered(content, mime_type)


class BlacklistMimeTypeValidationStrategy(MimeTypeValidationStrategy):
    """Rejects content that matches a signature of its declared type."""

    def is_file_allowed(self, content: BinaryIO, mime_type: str) -> bool:
        return not self.is_file_covered(content, mime_type)

    def is_content_allowed(self, content: bytes, mime_type: str) -> bool:
        return not self.is_content_covered(content, mime_type)


def create_validation_strategy(
        options: MimeTypeValidationOptions) -> MimeTypeValidationStrategy:
    """
    Create the strategy matching the configured validation mode.

    Args:
        options: MIME type validation options

    Returns:
        Whitelist or blacklist strategy
    """
    if options.validation_mode == MimeTypeValidationMode.WHITELIST:
        return WhitelistMimeTypeValidationStrategy(options)
    if options.validation_mode == MimeTypeValidationMode.BLACKLIST:
        return BlacklistMimeTypeValidationStrategy(options)
    raise ValueError(f"Unknown validation mode: {options.validation_mode}")


def _matches_any(header: bytes, signatures: tuple[bytes, ...]) -> bool:
    return any(header.startswith(signature) for signature in signatures)
