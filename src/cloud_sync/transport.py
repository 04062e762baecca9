"""Transport to the remote blob store: upload/download of encrypted blobs."""

import base64
from typing import Optional, Protocol

import httpx
from pydantic import ValidationError

from . import config
from .crypto import check_storage_key
from .errors import (
    BlobNotFoundError,
    InvalidRequestError,
    MalformedBlobError,
    NetworkError,
    QuotaExceededError,
    RateLimitedError,
    ServiceUnavailableError,
)
from .logging import get_logger
from .models import UploadMetadata, UploadResult

log = get_logger("cloud_sync.transport")

UPLOAD_PATH = "/api/sync/upload"
DOWNLOAD_PATH = "/api/sync/download"

DEFAULT_UPLOAD_RETRY_AFTER = 3600
DEFAULT_DOWNLOAD_RETRY_AFTER = 60


class Transport(Protocol):
    """What the orchestrators need from the remote side."""

    async def upload(self, blob: bytes, storage_key: str, metadata: UploadMetadata) -> UploadResult: ...

    async def download(self, storage_key: str) -> bytes: ...


def _retry_after(response: httpx.Response, default: int) -> int:
    try:
        return int(response.headers.get("Retry-After", default))
    except ValueError:
        return default


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or ""
    if isinstance(body, dict):
        return body.get("message") or body.get("error") or ""
    return ""


class HttpTransport:
    """Talks to the sync edge endpoints over HTTP.

    Upload: POST JSON {blob (base64), storageKey, metadata}.
    Download: GET ?storageKey=... returning the raw blob.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url or config.get_sync_url()
        self.timeout = timeout if timeout is not None else config.get_timeout()
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def upload(self, blob: bytes, storage_key: str, metadata: UploadMetadata) -> UploadResult:
        """Upload an encrypted blob.

        Raises:
            QuotaExceededError: 413.
            RateLimitedError: 429, with Retry-After (default one hour).
            ServiceUnavailableError: 503.
            InvalidRequestError: 400.
            NetworkError: Any other failure, including timeouts.
        """
        if not blob:
            raise MalformedBlobError("Cannot upload empty blob")
        check_storage_key(storage_key)

        body = {
            "blob": base64.b64encode(blob).decode("ascii"),
            "storageKey": storage_key,
            "metadata": metadata.model_dump(by_alias=True),
        }
        log.info("upload_started", size=len(blob), storage_key_hash=storage_key[:8])

        try:
            async with self._client() as client:
                response = await client.post(UPLOAD_PATH, json=body)
        except httpx.HTTPError as exc:
            raise NetworkError(str(exc) or type(exc).__name__) from exc

        if response.status_code == 413:
            raise QuotaExceededError(_error_detail(response))
        if response.status_code == 429:
            raise RateLimitedError(_retry_after(response, DEFAULT_UPLOAD_RETRY_AFTER))
        if response.status_code == 503:
            raise ServiceUnavailableError(_error_detail(response))
        if response.status_code == 400:
            raise InvalidRequestError(_error_detail(response))
        if not response.is_success:
            raise NetworkError(f"Upload failed with HTTP {response.status_code}")

        try:
            result = UploadResult.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise NetworkError("Upload response was not understood") from exc

        log.info("upload_finished", size=result.blob_size, storage_key_hash=result.storage_key_hash)
        return result

    async def download(self, storage_key: str) -> bytes:
        """Download the blob stored under `storage_key`.

        Raises:
            BlobNotFoundError: 404.
            RateLimitedError: 429, with Retry-After (default one minute).
            ServiceUnavailableError: 503.
            NetworkError: Any other failure, including timeouts.
        """
        check_storage_key(storage_key)
        log.info("download_started", storage_key_hash=storage_key[:8])

        try:
            async with self._client() as client:
                response = await client.get(DOWNLOAD_PATH, params={"storageKey": storage_key})
        except httpx.HTTPError as exc:
            raise NetworkError(str(exc) or type(exc).__name__) from exc

        if response.status_code == 404:
            raise BlobNotFoundError("No backup stored under this storage key")
        if response.status_code == 429:
            raise RateLimitedError(_retry_after(response, DEFAULT_DOWNLOAD_RETRY_AFTER))
        if response.status_code == 503:
            raise ServiceUnavailableError(_error_detail(response))
        if not response.is_success:
            raise NetworkError(f"Download failed with HTTP {response.status_code}")

        log.info(
            "download_finished",
            size=len(response.content),
            last_modified=response.headers.get("Last-Modified", ""),
        )
        return response.content
