"""
Blob and container name validation.

Object storage services reject malformed names with opaque remote errors.
These checks run locally before any network call so a bad name fails
immediately with a message describing the violated rule.
"""

from __future__ import annotations

import re

from .errors import NamingError


MAX_BLOB_NAME_LENGTH = 1024
MAX_BLOB_PATH_SEGMENTS = 254

MIN_CONTAINER_NAME_LENGTH = 3
MAX_CONTAINER_NAME_LENGTH = 63

_CONTAINER_CHARACTERS = re.compile(r"^[a-z0-9-]*$")
_CONTAINER_FULL_VALIDITY = re.compile(r"^[a-z0-9](?!.*--)[a-z0-9-]{1,61}[a-z0-9]$")


def validate_blob_name(blob_name: str) -> None:
    """
    Check a blob name against object storage naming rules.

    Args:
        blob_name: Blob key to validate

    Raises:
        NamingError: If any rule is violated
    """
    if not blob_name or not blob_name.strip():
        raise NamingError("Blob name cannot be empty.")

    if len(blob_name) > MAX_BLOB_NAME_LENGTH:
        raise NamingError(
            f"Blob name must be between 1 and {MAX_BLOB_NAME_LENGTH} characters in length.")

    if blob_name.endswith(".") or blob_name.endswith("/"):
        raise NamingError("Blob name must not end with '.' or '/'.")

    segments = blob_name.split("/")

    if len(segments) > MAX_BLOB_PATH_SEGMENTS:
        raise NamingError(
            f"The number of '/' delimited segments cannot exceed {MAX_BLOB_PATH_SEGMENTS}.")

    if any(segment.endswith(".") for segment in segments):
        raise NamingError(
            "No path segment ('/' delimited segment) can end in a '.'.")


def validate_container_name(container_name: str | None) -> None:
    """
    Check a container name against object storage naming rules.

    Args:
        container_name: Container name to validate

    Raises:
        NamingError: If any rule is violated
    """
    if not container_name or not container_name.strip():
        raise NamingError("Container name cannot be empty.")

    if not (MIN_CONTAINER_NAME_LENGTH <= len(container_name) <= MAX_CONTAINER_NAME_LENGTH):
        raise NamingError(
            f"Container name must be between {MIN_CONTAINER_NAME_LENGTH} and "
            f"{MAX_CONTAINER_NAME_LENGTH} characters in length.")

    if not _CONTAINER_CHARACTERS.match(container_name):
        raise NamingError(
            "Container name can only contain lowercase letters, numbers or hyphens.")

    if not _CONTAINER_FULL_VALIDITY.match(container_name):
        raise NamingError(
            "Container name must start and end with a number or letter "
            "and cannot contain multiple hyphens in sequence.")


def is_valid_blob_name(blob_name: str) -> bool:
    """Return True if the blob name passes validation."""
    try:
        validate_blob_name(blob_name)
    except NamingError:
        return False
    return True


def is_valid_container_name(container_name: str | None) -> bool:
    """Return True if the container name passes validation."""
    try:
        validate_container_name(container_name)
    except NamingError:
        return False
    return True
