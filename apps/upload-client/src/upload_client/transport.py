import logging
from typing import AsyncIterator, Optional

import httpx

from shared_uploads.errors import InternalError
from upload_client.config import UploadClientConfig
from upload_client.models import ProgressCallback, UploadGrant
from upload_client.sources import UploadSource

logger = logging.getLogger(__name__)


class StorageTransport:
    """PUTs a source to a presigned URL, streaming it in chunks."""

    def __init__(self, config: UploadClientConfig, http: httpx.AsyncClient):
        self.config = config
        self.http = http

    async def put(self, grant: UploadGrant, source: UploadSource,
                  progress: Optional[ProgressCallback] = None) -> None:
        total = source.size

        async def body() -> AsyncIterator[bytes]:
            sent = 0
            async for chunk in source.chunks(self.config.chunk_size):
                sent += len(chunk)
                if progress:
                    progress(sent, total)
                yield chunk

        if progress:
            progress(0, total)
        headers = {
            **grant.headers,
            # Must match the signed type byte for byte
            "Content-Type": grant.content_type,
            "Content-Length": str(total),
        }
        try:
            response = await self.http.put(
                grant.signed_url,
                content=body(),
                headers=headers,
                timeout=self.config.upload_timeout_seconds
            )
        except httpx.HTTPError as e:
            logger.error(f"Upload of {grant.object_key} to storage failed: {e}")
            raise InternalError(f"Upload to storage failed ({e.__class__.__name__})") from e

        if not response.is_success:
            logger.error(f"Storage rejected {grant.object_key} with {response.status_code}: {response.text[:200]}")
            raise InternalError(f"Storage rejected the upload ({response.status_code})", response.status_code)
        if progress:
            progress(total, total)
        logger.info(f"Uploaded {total} bytes to {grant.object_key}")
