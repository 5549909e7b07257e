"""
Shared access (capability) URLs for single blobs.

A shared access URL grants one permission set on exactly one blob for a
limited time window. Signatures are produced by azure-storage-blob's
generate_blob_sas in one of two variants:

- SharedKeySigner signs locally with the account key taken from the
  connection string.
- UserDelegationSigner first asks the service for a user delegation key
  scoped to the same window, then signs with that key, which embeds the
  key description into the URL.

SharedAccessToken parses an issued URL back into its signed fields so the
window and scope can be checked without a round trip.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable
from urllib.parse import parse_qs, quote, unquote, urlsplit

from azure.storage.blob import BlobSasPermissions, generate_blob_sas

from pyfilehub.logging.setup import get_logger

from .container import BlobContainerClient, SharedContainer
from .errors import ConfigurationError
from .models import CloudStorageAction
from .naming import validate_blob_name
from .options import BlobStorageOptions


logger = get_logger(__name__)


SIGNED_PROTOCOL = "https"
TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Never broader than the requested action
ACTION_PERMISSIONS = {
    CloudStorageAction.DOWNLOAD: "r",
    CloudStorageAction.UPLOAD: "acw",
    CloudStorageAction.DELETE: "d",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_time(moment: datetime) -> str:
    """Format a moment as a second precision UTC ISO-8601 string."""
    return moment.astimezone(timezone.utc).strftime(TIME_FORMAT)


def parse_time(value: str) -> datetime:
    return datetime.strptime(value, TIME_FORMAT).replace(tzinfo=timezone.utc)


def sas_permissions(permissions: str) -> BlobSasPermissions:
    return BlobSasPermissions.from_string(permissions)


def parse_connection_string(connection_string: str) -> dict[str, str]:
    """
    Split a 'Key=Value;Key=Value' connection string.

    Values may contain '=' (base64 keys do), so only the first one separates.
    """
    settings = {}
    for part in connection_string.split(";"):
        part = part.strip()
        if not part:
            continue
        key, separator, value = part.partition("=")
        if not separator:
            raise ConfigurationError(
                f"Malformed connection string segment: '{key}'")
        settings[key.strip()] = value.strip()
    return settings


def _floor_second(moment: datetime) -> datetime:
    return moment.replace(microsecond=0)


def _ceil_second(moment: datetime) -> datetime:
    floored = moment.replace(microsecond=0)
    if floored == moment:
        return floored
    return floored + timedelta(seconds=1)


@dataclass(frozen=True)
class SharedAccessWindow:
    """
    Half-open validity window [starts_on, expires_on) in UTC.

    Signed times have second precision. starting_at rounds the start down
    and the expiry up, so the window covers [now, now + duration) and may
    extend it by less than a second at either end.
    """
    starts_on: datetime
    expires_on: datetime

    @classmethod
    def starting_at(cls, now: datetime, duration: timedelta) -> SharedAccessWindow:
        now = now.astimezone(timezone.utc)
        return cls(_floor_second(now), _ceil_second(now + duration))

    def contains(self, moment: datetime) -> bool:
        return self.starts_on <= moment < self.expires_on


@dataclass(frozen=True)
class DelegationScope:
    """Description of the user delegation key a token was signed with."""
    object_id: str
    tenant_id: str
    starts_on: datetime
    expires_on: datetime
    service: str
    version: str


@dataclass(frozen=True)
class SharedAccessRequest:
    """What a signer is asked to grant."""
    container_name: str
    blob_name: str
    permissions: str
    window: SharedAccessWindow


@dataclass(frozen=True)
class SharedAccessToken:
    """Signed query fields of a shared access URL."""
    permissions: str
    window: SharedAccessWindow
    version: str
    resource: str
    protocol: str
    signature: str
    delegation: DelegationScope | None = None
    blob_path: str = ""

    def allows(self, permission: str) -> bool:
        """Check that every permission letter given is granted."""
        return set(permission) <= set(self.permissions)

    def is_valid_at(self, moment: datetime) -> bool:
        return self.window.contains(moment)

    @classmethod
    def from_url(cls, url: str) -> SharedAccessToken:
        """
        Parse a shared access URL.

        Raises:
            ValueError: If a required field is missing or malformed
        """
        parts = urlsplit(url)
        query = {
            name: values[0]
            for name, values in parse_qs(parts.query, keep_blank_values=True).items()
        }

        def field(name: str) -> str:
            if name not in query:
                raise ValueError(f"Shared access URL is missing '{name}'")
            return query[name]

        delegation = None
        if "skoid" in query:
            delegation = DelegationScope(
                object_id=field("skoid"),
                tenant_id=field("sktid"),
                starts_on=parse_time(field("skt")),
                expires_on=parse_time(field("ske")),
                service=field("sks"),
                version=field("skv"),
            )

        return cls(
            permissions=field("sp"),
            window=SharedAccessWindow(
                parse_time(field("st")), parse_time(field("se"))),
            version=field("sv"),
            resource=field("sr"),
            protocol=field("spr"),
            signature=field("sig"),
            delegation=delegation,
            blob_path=unquote(parts.path),
        )


class UrlSigner(ABC):
    """Turns a shared access request into a signed URL."""

    @property
    @abstractmethod
    def account_name(self) -> str:
        ...

    @abstractmethod
    async def sign(self, blob_url: str, request: SharedAccessRequest) -> str:
        """
        Sign a request for the blob at blob_url.

        Returns:
            blob_url with the shared access query appended
        """


class SharedKeySigner(UrlSigner):
    """Signs locally with a pre-shared account key."""

    def __init__(self, account_name: str, account_key: str | None):
        self._account_name = account_name
        self._account_key = account_key

    @classmethod
    def from_connection_string(cls, connection_string: str) -> SharedKeySigner:
        settings = parse_connection_string(connection_string)
        return cls(settings.get("AccountName", ""), settings.get("AccountKey"))

    @property
    def account_name(self) -> str:
        return self._account_name

    @property
    def can_sign(self) -> bool:
        return bool(self._account_name and self._account_key)

    async def sign(self, blob_url: str, request: SharedAccessRequest) -> str:
        if not self.can_sign:
            raise ConfigurationError(
                "Blob access must be authorized with shared key credentials "
                "to create a service shared access signature.")

        try:
            query = generate_blob_sas(
                self._account_name,
                request.container_name,
                request.blob_name,
                account_key=self._account_key,
                permission=sas_permissions(request.permissions),
                start=request.window.starts_on,
                expiry=request.window.expires_on,
                protocol=SIGNED_PROTOCOL,
            )
        except ValueError as e:
            raise ConfigurationError(f"Account key cannot sign: {e}") from e
        return f"{blob_url}?{query}"


class UserDelegationSigner(UrlSigner):
    """Signs with a user delegation key fetched for each request."""

    def __init__(self, client: BlobContainerClient, account_name: str):
        self._client = client
        self._account_name = account_name

    @property
    def account_name(self) -> str:
        return self._account_name

    async def sign(self, blob_url: str, request: SharedAccessRequest) -> str:
        key = await self._client.get_user_delegation_key(
            request.window.starts_on, request.window.expires_on)

        # Cancellation checkpoint between the key fetch and signing
        await asyncio.sleep(0)

        query = generate_blob_sas(
            self._account_name,
            request.container_name,
            request.blob_name,
            user_delegation_key=key,
            permission=sas_permissions(request.permissions),
            start=request.window.starts_on,
            expiry=request.window.expires_on,
            protocol=SIGNED_PROTOCOL,
        )
        return f"{blob_url}?{query}"


def create_url_signer(
        options: BlobStorageOptions,
        client: BlobContainerClient) -> UrlSigner:
    """
    Pick the signing variant matching the configured credential.

    Args:
        options: Validated blob storage options
        client: Container client (used for delegation key requests)
    """
    if options.uses_identity:
        return UserDelegationSigner(client, options.account_name)
    return SharedKeySigner.from_connection_string(options.connection_string)


class SharedAccessUrlIssuer:
    """Issues time-bounded URLs for single blobs of one container."""

    def __init__(
        self,
        container: SharedContainer,
        signer: UrlSigner,
        duration: timedelta,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._container = container
        self._signer = signer
        self._duration = duration
        self._clock = clock

    async def issue_url(self, blob_name: str, action: CloudStorageAction) -> str:
        """
        Issue a URL granting the permissions of one action on one blob.

        Args:
            blob_name: Blob key
            action: Download, upload or delete

        Returns:
            Signed URL valid from now until now + duration

        Raises:
            NamingError: If the blob name is invalid
            ConfigurationError: If the credential cannot sign
        """
        validate_blob_name(blob_name)

        client = await self._container.get()

        request = SharedAccessRequest(
            container_name=self._container.container_name,
            blob_name=blob_name,
            permissions=ACTION_PERMISSIONS[action],
            window=SharedAccessWindow.starting_at(self._clock(), self._duration),
        )
        blob_url = f"{client.url}/{quote(blob_name, safe='/')}"

        url = await self._signer.sign(blob_url, request)
        logger.debug(
            f"Issued {action.value} url for blob '{blob_name}' "
            f"expiring {format_time(request.window.expires_on)}")
        return url
