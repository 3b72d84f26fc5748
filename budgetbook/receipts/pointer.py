"""Receipt pointer parsing and resolution.

A receipt is stored on the expense as a polymorphic pointer. Over time it has
been written as a bare data URI, a JSON-encoded array or object, or a parsed
structure, so everything is first normalized into one of the tagged variants
below and only then resolved into something an extractor can read.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Union
from urllib.parse import quote

import httpx

from .errors import PointerResolutionError
from .http import http_session
from .secrets import SecretStore

logger = logging.getLogger(__name__)

_DATA_URI = re.compile(r"^data:([^;,]+);base64,(.+)$", re.DOTALL)

_BLOB_STORAGE = {"primary-blob", "supabase"}
_ARCHIVE_STORAGE = {"archive", "pcloud_webdav"}


@dataclass(frozen=True)
class InlinePointer:
    data_uri: str


@dataclass(frozen=True)
class BlobPointer:
    bucket: str
    path: str
    type: str = ""
    filename: str = ""


@dataclass(frozen=True)
class ArchivePointer:
    path: str
    base_url: str = ""
    type: str = ""


@dataclass(frozen=True)
class UrlPointer:
    """Legacy literal URL, fetchable as-is."""

    url: str


ReceiptPointer = Union[InlinePointer, BlobPointer, ArchivePointer, UrlPointer]


def parse_receipt_pointer(raw: Any) -> ReceiptPointer | None:
    """Normalize a stored receipt value into a tagged pointer.

    Returns:
        The pointer, or None when nothing usable is stored yet.
    """
    value = _decode_legacy(raw)

    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, str):
        value = {"url": value}
    if not isinstance(value, dict):
        return None

    storage = str(value.get("storage") or "").strip().lower()
    url = str(value.get("url") or "").strip()

    if url.startswith("data:"):
        return InlinePointer(data_uri=url)

    if storage in _BLOB_STORAGE:
        bucket = str(value.get("bucket") or "").strip()
        path = str(value.get("path") or "").strip()
        if not bucket or not path:
            return None
        return BlobPointer(
            bucket=bucket,
            path=path,
            type=str(value.get("type") or ""),
            filename=str(value.get("filename") or ""),
        )

    if storage in _ARCHIVE_STORAGE:
        path = str(value.get("path") or "").strip()
        if not path:
            return None
        return ArchivePointer(
            path=path,
            base_url=str(value.get("baseUrl") or "").strip(),
            type=str(value.get("type") or ""),
        )

    if url:
        return UrlPointer(url=url)
    return None


def _decode_legacy(raw: Any) -> Any:
    if raw is None:
        return None
    if not isinstance(raw, str):
        return raw

    s = raw.strip()
    if not s:
        return None
    if s.startswith("data:"):
        return {"url": s}
    if s.startswith("[") or s.startswith("{"):
        try:
            return json.loads(s)
        except ValueError:
            # Malformed JSON is treated as a literal URL
            return {"url": s}
    return {"url": s}


@dataclass(frozen=True)
class ResolvedImage:
    """An image an extractor can read: inline bytes or a fetchable URL."""

    mime_type: str = "image/jpeg"
    data: bytes | None = None
    url: str | None = None

    @property
    def is_inline(self) -> bool:
        return self.data is not None

    def base64(self) -> str:
        if self.data is None:
            raise ValueError("image is not inline; fetch() it first")
        return base64.standard_b64encode(self.data).decode()

    def data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64()}"

    async def fetch(
        self, http_client: httpx.AsyncClient | None = None, timeout_s: float = 30.0
    ) -> "ResolvedImage":
        """Return an inline copy, downloading the URL if needed."""
        if self.data is not None:
            return self
        if not self.url:
            raise PointerResolutionError("Resolved image has neither bytes nor URL")

        try:
            async with http_session(http_client, timeout_s) as client:
                resp = await client.get(self.url)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise PointerResolutionError(f"Image download failed: {e}") from e

        content_type = resp.headers.get("content-type", "").split(";")[0].strip()
        return replace(self, data=resp.content, mime_type=content_type or self.mime_type)


def decode_data_uri(data_uri: str) -> ResolvedImage:
    m = _DATA_URI.match(data_uri.strip())
    if not m:
        raise PointerResolutionError("Invalid data URL format")
    mime_type, payload = m.group(1), m.group(2)
    try:
        data = base64.b64decode("".join(payload.split()))
    except (binascii.Error, ValueError) as e:
        raise PointerResolutionError(f"Invalid base64 in data URL: {e}") from e
    return ResolvedImage(mime_type=mime_type, data=data)


class BlobSigner(ABC):
    """Turns a blob-storage object into a short-lived URL."""

    @abstractmethod
    async def sign(self, bucket: str, path: str, expires_in: int) -> str:
        ...


class SupabaseStorageSigner(BlobSigner):
    """Signs objects through the Supabase Storage REST API."""

    def __init__(
        self,
        secrets: SecretStore,
        http_client: httpx.AsyncClient | None = None,
        timeout_s: float = 30.0,
    ) -> None:
        self._secrets = secrets
        self._http_client = http_client
        self._timeout_s = timeout_s

    async def sign(self, bucket: str, path: str, expires_in: int) -> str:
        base_url = self._secrets.get("SUPABASE_URL").rstrip("/")
        key = self._secrets.get("SUPABASE_SERVICE_ROLE_KEY")

        endpoint = f"{base_url}/storage/v1/object/sign/{quote(bucket)}/{quote(path.lstrip('/'))}"
        try:
            async with http_session(self._http_client, self._timeout_s) as client:
                resp = await client.post(
                    endpoint,
                    json={"expiresIn": expires_in},
                    headers={"Authorization": f"Bearer {key}", "apikey": key},
                )
                resp.raise_for_status()
                body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise PointerResolutionError(f"Unable to sign {bucket}/{path}: {e}") from e

        signed = str(body.get("signedURL") or body.get("signedUrl") or "")
        if not signed:
            raise PointerResolutionError(f"Unable to sign {bucket}/{path}: empty response")
        if signed.startswith("http"):
            return signed
        return f"{base_url}/storage/v1{signed if signed.startswith('/') else '/' + signed}"


class PointerResolver:
    """Resolves receipt pointers into ``ResolvedImage`` values."""

    def __init__(
        self,
        secrets: SecretStore,
        signer: BlobSigner | None = None,
        *,
        signed_url_ttl_s: int = 3600,
        http_client: httpx.AsyncClient | None = None,
        timeout_s: float = 30.0,
    ) -> None:
        self._secrets = secrets
        self._signer = signer or SupabaseStorageSigner(
            secrets, http_client=http_client, timeout_s=timeout_s
        )
        self._ttl = signed_url_ttl_s
        self._http_client = http_client
        self._timeout_s = timeout_s

    async def resolve(self, pointer: ReceiptPointer) -> ResolvedImage:
        """Resolve a pointer.

        Raises:
            PointerResolutionError: Upstream storage failed or the pointer is malformed.
            ConfigurationError: Storage credentials are missing.
        """
        match pointer:
            case InlinePointer(data_uri=data_uri):
                return decode_data_uri(data_uri)
            case BlobPointer():
                url = await self._signer.sign(pointer.bucket, pointer.path, self._ttl)
                logger.debug("Signed blob %s/%s", pointer.bucket, pointer.path)
                return ResolvedImage(mime_type=pointer.type or "image/jpeg", url=url)
            case ArchivePointer():
                return await self._fetch_archive(pointer)
            case UrlPointer(url=url):
                return ResolvedImage(url=url)
            case _:
                raise PointerResolutionError(f"Unsupported receipt pointer: {pointer!r}")

    async def _fetch_archive(self, pointer: ArchivePointer) -> ResolvedImage:
        base_url = pointer.base_url or self._secrets.get("PCLOUD_WEBDAV_BASE_URL")
        username = self._secrets.get("PCLOUD_WEBDAV_USERNAME")
        password = self._secrets.get("PCLOUD_WEBDAV_PASSWORD")

        path = pointer.path if pointer.path.startswith("/") else f"/{pointer.path}"
        file_url = f"{base_url.rstrip('/')}{path}"

        try:
            async with http_session(self._http_client, self._timeout_s) as client:
                resp = await client.get(file_url, auth=(username, password))
        except httpx.HTTPError as e:
            raise PointerResolutionError(f"Archive fetch failed: {e}") from e

        if resp.status_code >= 400:
            raise PointerResolutionError(f"Archive fetch failed: {resp.status_code}")

        content_type = resp.headers.get("content-type", "").split(";")[0].strip()
        logger.debug("Fetched archived receipt %s (%d bytes)", pointer.path, len(resp.content))
        return ResolvedImage(
            mime_type=content_type or pointer.type or "application/octet-stream",
            data=resp.content,
        )
