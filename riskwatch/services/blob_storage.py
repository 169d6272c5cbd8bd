"""Evidence blob storage: upload bytes, get back a reference URL."""

from typing import Optional, Protocol

import httpx
import structlog

from riskwatch.errors import ProviderUnavailable

logger = structlog.get_logger(__name__)


class BlobStorage(Protocol):
    async def upload(self, path: str, content: bytes, content_type: str) -> str:
        ...


class HttpBlobStorage:
    """PUT-based object store (S3 presigned-style or any HTTP bucket)."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def upload(self, path: str, content: bytes, content_type: str) -> str:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.put(url, content=content, headers={"content-type": content_type})
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise ProviderUnavailable("blob_storage", str(e)) from e

        location = resp.headers.get("location")
        logger.info("evidence_uploaded", path=path, size=len(content))
        return location or url
