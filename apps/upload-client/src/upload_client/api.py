import logging
from datetime import datetime
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from shared_schemas.contracts import ConfirmRequest, ConfirmResponse, GrantRequest, GrantResponse, MusicPayload
from shared_uploads.errors import InternalError, error_for_status
from upload_client.config import UploadClientConfig
from upload_client.models import UploadGrant
from upload_client.sources import UploadSource

logger = logging.getLogger(__name__)


class UploadApiClient:
    """Calls to the upload service; every failure comes back as an UploadError."""

    def __init__(self, config: UploadClientConfig, http: httpx.AsyncClient):
        self.config = config
        self.http = http

    async def request_grant(self, credential: str, request: GrantRequest, requested_at: datetime) -> UploadGrant:
        body = await self._post(
            self.config.grant_endpoint,
            credential,
            json=request.model_dump(by_alias=True, exclude_none=True)
        )
        try:
            response = GrantResponse.model_validate(body)
        except ValidationError as e:
            raise InternalError("Invalid grant response from upload service") from e
        # Capped by the locally configured lifetime
        lifetime = min(response.expires_in, self.config.grant_lifetime_seconds)
        expires_at = min(response.expires_at, int(requested_at.timestamp()) + lifetime)
        return UploadGrant(
            object_key=response.key,
            signed_url=response.upload_url,
            content_type=response.content_type,
            expires_at_seconds=expires_at,
            headers=dict(response.headers)
        )

    async def confirm(self, credential: str, request: ConfirmRequest) -> MusicPayload:
        body = await self._post(
            self.config.confirm_endpoint,
            credential,
            json=request.model_dump(by_alias=True, exclude_none=True)
        )
        return self._music(body)

    async def direct_upload(self, credential: str, source: UploadSource, content_type: str,
                            explicit_key: Optional[str] = None) -> MusicPayload:
        data = {"key": explicit_key} if explicit_key else {}
        handle = source.open()
        try:
            body = await self._post(
                self.config.direct_upload_endpoint,
                credential,
                files={"file": (source.file_name, handle, content_type)},
                data=data,
                timeout=self.config.upload_timeout_seconds
            )
        finally:
            handle.close()
        return self._music(body)

    @staticmethod
    def _music(body: dict[str, Any]) -> MusicPayload:
        try:
            return ConfirmResponse.model_validate(body).music
        except ValidationError as e:
            raise InternalError("Invalid confirmation response from upload service") from e

    async def _post(self, path: str, credential: str, timeout: Optional[float] = None, **kwargs) -> dict[str, Any]:
        url = self.config.url_for(path)
        try:
            response = await self.http.post(
                url,
                headers={"Authorization": f"Bearer {credential}"},
                timeout=timeout or self.config.request_timeout_seconds,
                **kwargs
            )
        except httpx.HTTPError as e:
            logger.error(f"Request to {url} failed: {e}")
            raise InternalError(f"Could not reach upload service ({e.__class__.__name__})") from e

        if response.is_success:
            try:
                return response.json()
            except ValueError as e:
                raise InternalError("Invalid response from upload service") from e

        message = _error_message(response)
        logger.warning(f"{url} answered {response.status_code}: {message}")
        raise error_for_status(response.status_code, message)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), str) and body["error"]:
        return body["error"]
    return f"Upload service returned {response.status_code}"
