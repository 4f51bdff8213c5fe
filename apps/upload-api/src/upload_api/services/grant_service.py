import logging
from datetime import datetime
from typing import Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from shared_schemas.contracts import GrantRequest, GrantResponse
from shared_storage.s3 import S3Client
from shared_uploads.errors import InternalError, InvalidArgumentError
from shared_uploads.keys import (
    MUSIC_ROOT,
    KeyPlacement,
    KeyScope,
    build_ad_hoc_key,
    check_content_type_for,
    manifest_key,
    owner_segment,
)
from shared_uploads.object_metadata import required_headers, storage_metadata
from upload_api.services.upload_policy import UploadPolicy

logger = logging.getLogger(__name__)

ALBUM_OF_ANOTHER_USER = "Album folder belongs to another user"


class UploadGrantService:
    def __init__(self, s3: S3Client, store, policy: UploadPolicy, clock: Callable[[], datetime]):
        self.s3 = s3
        self.store = store
        self.policy = policy
        self.clock = clock

    async def request_grant(self, owner_id: str, request: GrantRequest) -> GrantResponse:
        file_name = (request.file_name or "").strip()
        if not file_name:
            raise InvalidArgumentError("fileName is required")
        if not (request.file_type or "").strip():
            raise InvalidArgumentError("fileType is required")
        content_type = self.policy.accepted_content_type(file_name, request.file_type)
        self.policy.check_size(request.file_size)

        now = self.clock()
        object_key = await self.resolve_destination(owner_id, file_name, content_type, request.explicit_key, now)
        lifetime = self.policy.grant_lifetime_seconds
        metadata = storage_metadata(owner_id, file_name)
        try:
            url = self.s3.generate_presigned_url(object_key, content_type, lifetime, metadata=metadata)
        except (ClientError, BotoCoreError) as e:
            logger.exception(f"Failed to presign {object_key}: {e}")
            raise InternalError("Could not create upload URL") from e

        logger.info(f"Issued upload grant for {object_key} ({content_type}) to user {owner_id}")
        return GrantResponse(
            upload_url=url,
            key=object_key,
            expires_in=lifetime,
            expires_at=int(now.timestamp()) + lifetime,
            content_type=content_type,
            headers=required_headers(url, metadata)
        )

    async def resolve_destination(self, owner_id: str, file_name: str, content_type: str,
                                  explicit_key: Optional[str], now: datetime) -> str:
        """Storage key for a new object, random unless the caller asked for a structured one."""
        if explicit_key and explicit_key.strip():
            placement = self.policy.placement_for(owner_id, explicit_key.strip(), content_type)
            if placement.is_album_object:
                await self.ensure_album_writer(owner_id, placement, now)
                await self._ensure_album_unpublished(placement)
            else:
                await self._claim_own_folder(owner_id, now)
            return placement.object_key
        object_key = build_ad_hoc_key(owner_id, file_name, now)
        check_content_type_for(KeyPlacement(object_key, KeyScope.OWNER), content_type)
        await self._claim_own_folder(owner_id, now)
        return object_key

    async def ensure_album_writer(self, owner_id: str, placement: KeyPlacement, now: datetime) -> None:
        holder = await self._claim(placement.album_prefix, owner_id, now)
        if holder != owner_id:
            logger.warning(f"User {owner_id} tried to write {placement.object_key} in a folder held by {holder}")
            raise InvalidArgumentError(ALBUM_OF_ANOTHER_USER)

    async def _claim_own_folder(self, owner_id: str, now: datetime) -> None:
        await self._claim(f"{MUSIC_ROOT}/{owner_segment(owner_id)}", owner_id, now, take_over=True)

    async def _claim(self, prefix: str, owner_id: str, now: datetime, take_over: bool = False) -> str:
        try:
            return await self.store.claim_folder(prefix, owner_id, now, take_over=take_over)
        except Exception as e:
            logger.exception(f"Failed to claim {prefix} for user {owner_id}: {e}")
            raise InternalError("Could not create upload URL") from e

    async def _ensure_album_unpublished(self, placement: KeyPlacement) -> None:
        # The manifest seals the album, nothing under it may be rewritten afterwards
        try:
            existing = await self.s3.head_object(manifest_key(placement.album_prefix))
        except (ClientError, BotoCoreError) as e:
            logger.exception(f"Failed to check album {placement.album_prefix}: {e}")
            raise InternalError("Could not create upload URL") from e
        if existing is not None:
            raise InvalidArgumentError("Album is already published")
