import logging
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import UploadFile

from shared_schemas.contracts import ConfirmRequest
from shared_uploads.errors import InternalError, InvalidArgumentError
from shared_uploads.object_metadata import storage_metadata
from upload_api.models.music import UploadRecord
from upload_api.services.confirm_service import UploadConfirmService
from upload_api.services.grant_service import UploadGrantService

logger = logging.getLogger(__name__)


class DirectUploadService:
    """Fallback for clients that cannot PUT to storage themselves: the bytes pass through the API."""

    def __init__(self, grants: UploadGrantService, confirmations: UploadConfirmService):
        self.grants = grants
        self.confirmations = confirmations

    async def upload(self, owner_id: str, file: UploadFile, explicit_key: Optional[str] = None,
                     title: Optional[str] = None, artist: Optional[str] = None) -> UploadRecord:
        file_name = (file.filename or "").strip()
        if not file_name:
            raise InvalidArgumentError("fileName is required")
        policy = self.grants.policy
        content_type = policy.accepted_content_type(file_name, file.content_type)
        policy.check_size(file.size)
        object_key = await self.grants.resolve_destination(
            owner_id, file_name, content_type, explicit_key, self.grants.clock()
        )
        try:
            await self.grants.s3.upload_fileobj(
                file.file, object_key, content_type, metadata=storage_metadata(owner_id, file_name)
            )
        except (ClientError, BotoCoreError) as e:
            logger.exception(f"Direct upload of {object_key} failed: {e}")
            raise InternalError("Could not store uploaded file") from e
        finally:
            await file.close()
        return await self.confirmations.confirm(owner_id, ConfirmRequest(
            key=object_key,
            file_name=file_name,
            file_size=file.size,
            title=title,
            artist=artist
        ))
