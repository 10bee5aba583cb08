"""
S3 Storage Service — document bytes in, document bytes out

The pipeline treats storage as a key → bytes service:

    put_object(key, body, content_type) → locator URL
    fetch(key)                          → bytes (via presigned GET)

Locators are opaque URLs persisted on Document.file_url:

    https://<bucket>.s3.<region>.amazonaws.com/<key>

key_from_locator() strips scheme + host to recover the key. Any other
URL shape (LocalStack path-style, CloudFront) works as long as the path
is the object key.

Fetches go through a short-lived presigned GET URL downloaded with httpx,
so the worker never holds long-lived read credentials for the object.
The download timeout is a transport setting (httpx), not an orchestrator
concern.
"""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from typing import BinaryIO, Optional
from urllib.parse import unquote, urlparse

import aioboto3
import httpx
from botocore.exceptions import ClientError

from app.core.config import settings
from app.core.exceptions import StorageError

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT_SECONDS = 60.0


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PresignedUrl:
    url:        str
    expires_in: int   # seconds
    method:     str   # GET | PUT


def key_from_locator(locator: str) -> str:
    """'https://bucket.s3.region.amazonaws.com/a/b.pdf' → 'a/b.pdf'."""
    parsed = urlparse(locator)
    if not parsed.scheme:
        return locator.lstrip("/")
    return unquote(parsed.path).lstrip("/")


# ---------------------------------------------------------------------------
# S3 Service
# ---------------------------------------------------------------------------

class S3StorageService:
    """Async S3 operations against one bucket."""

    def __init__(
        self,
        bucket: Optional[str] = None,
        region: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.bucket = bucket or settings.s3_bucket
        self.region = region or settings.aws_region
        self._session = aioboto3.Session()
        self._http = http_client

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self):
        """Return a scoped async S3 client context manager."""
        return self._session.client(
            "s3",
            region_name=self.region,
            endpoint_url=settings.s3_endpoint_url,
            # In production: IAM role assumed via ECS task role / IRSA.
            # In local dev: reads AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY.
        )

    def locator_for(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def put_object(
        self,
        key: str,
        body: bytes | BinaryIO,
        content_type: Optional[str] = None,
    ) -> str:
        """Upload an object and return its locator URL."""
        ct  = content_type or mimetypes.guess_type(key)[0] or "application/octet-stream"
        raw = body if isinstance(body, bytes) else body.read()

        async with self._client() as s3:
            try:
                await s3.put_object(Bucket=self.bucket, Key=key, Body=raw, ContentType=ct)
            except ClientError as exc:
                raise StorageError(f"S3 put failed for {key}", original_error=exc) from exc

        logger.info("S3 upload ok | bucket=%s key=%s size=%d", self.bucket, key, len(raw))
        return self.locator_for(key)

    async def generate_presigned_get(
        self,
        key: str,
        expires_in: Optional[int] = None,
    ) -> PresignedUrl:
        """Short-lived presigned GET URL scoped to exactly one key."""
        expires_in = expires_in or settings.presigned_url_expiry_seconds
        async with self._client() as s3:
            url = await s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        return PresignedUrl(url=url, expires_in=expires_in, method="GET")

    async def fetch(self, key: str) -> bytes:
        """Download an object's bytes through a presigned GET URL."""
        presigned = await self.generate_presigned_get(key)
        client = self._http or httpx.AsyncClient(timeout=DOWNLOAD_TIMEOUT_SECONDS)
        try:
            resp = await client.get(presigned.url)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise StorageError(f"Download failed for {key}: {exc}", original_error=exc) from exc
        finally:
            if self._http is None:
                await client.aclose()

        logger.debug("S3 fetch ok | key=%s size=%d", key, len(resp.content))
        return resp.content

    async def fetch_locator(self, locator: str) -> bytes:
        return await self.fetch(key_from_locator(locator))
