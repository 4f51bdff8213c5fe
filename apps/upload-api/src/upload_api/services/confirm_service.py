import logging
import uuid
from datetime import datetime
from typing import Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from shared_messaging.producer import RabbitMQProducer
from shared_schemas.contracts import AlbumManifest, ConfirmRequest
from shared_schemas.events import AlbumPublishedEvent, MusicUploadedEvent
from shared_storage.s3 import ObjectInfo, S3Client
from shared_uploads.content_types import normalize_content_type
from shared_uploads.errors import InternalError, InvalidArgumentError, NotFoundError
from shared_uploads.keys import (
    UNKNOWN_ARTIST,
    KeyPlacement,
    KeyScope,
    check_content_type_for,
    classify_key,
    file_name_from_key,
    sanitize_file_name,
    title_and_artist,
)
from shared_uploads.object_metadata import metadata_file_name, metadata_owner
from upload_api.models.music import UploadRecord
from upload_api.services.grant_service import ALBUM_OF_ANOTHER_USER
from upload_api.services.upload_policy import UploadPolicy

logger = logging.getLogger(__name__)


class UploadConfirmService:
    """
    Turns a finished transfer into a durable UploadRecord.

    Nothing the client claims is trusted on its own: the object must be
    present in storage, size and content type come from storage, the owner
    comes from the verified token and the URL is rebuilt from the key.
    """

    def __init__(self, s3: S3Client, store, policy: UploadPolicy, clock: Callable[[], datetime],
                 producer: Optional[RabbitMQProducer] = None):
        self.s3 = s3
        self.store = store
        self.policy = policy
        self.clock = clock
        self.producer = producer

    async def confirm(self, owner_id: str, request: ConfirmRequest) -> UploadRecord:
        object_key = (request.key or "").strip()
        if not object_key:
            raise InvalidArgumentError("key is required")
        placement = classify_key(owner_id, object_key)
        if placement.is_album_object:
            await self._ensure_album_writer(owner_id, placement)

        info = await self._stat(object_key)
        if info is None:
            logger.warning(f"Confirmation for missing object {object_key} by user {owner_id}")
            raise NotFoundError("File not found in storage")
        uploader = metadata_owner(info.metadata)
        if uploader is not None and uploader != owner_id:
            logger.warning(f"User {owner_id} tried to confirm {object_key} uploaded by {uploader}")
            raise InvalidArgumentError("File was uploaded by another user")

        content_type = normalize_content_type(info.content_type)
        if not self.policy.is_allowed(content_type):
            raise InvalidArgumentError("Stored file has an unsupported type")
        check_content_type_for(placement, content_type)
        if info.size <= 0:
            raise InvalidArgumentError("Uploaded file is empty")
        if info.size > self.policy.max_file_size_bytes:
            raise InvalidArgumentError("Uploaded file exceeds the maximum allowed size")
        if request.file_size is not None and request.file_size != info.size:
            logger.warning(f"Client claimed {request.file_size} bytes for {object_key}, storage has {info.size}")

        if placement.scope == KeyScope.ALBUM_MANIFEST:
            await self._check_manifest(placement)

        file_name = self._file_name(object_key, info, request.file_name)
        title, artist = title_and_artist(file_name)
        record = UploadRecord(
            id=f"music_{uuid.uuid4().hex}",
            owner_id=owner_id,
            title=(request.title or "").strip() or title,
            artist=(request.artist or "").strip() or artist or UNKNOWN_ARTIST,
            original_file_name=file_name,
            object_key=object_key,
            bucket=self.policy.bucket,
            retrieval_url=self.policy.retrieval_url(object_key),
            size_bytes=info.size,
            content_type=content_type,
            uploaded_at=self.clock()
        )
        try:
            await self.store.insert(record)
        except Exception as e:
            logger.exception(f"Failed to save record for {object_key}: {e}")
            raise InternalError("Could not save upload record") from e

        await self._publish(record, placement)
        return record

    async def _stat(self, object_key: str) -> Optional[ObjectInfo]:
        try:
            return await self.s3.head_object(object_key)
        except (ClientError, BotoCoreError) as e:
            logger.exception(f"Failed to verify {object_key}: {e}")
            raise InternalError("Could not verify upload") from e

    async def _ensure_album_writer(self, owner_id: str, placement: KeyPlacement) -> None:
        try:
            holder = await self.store.claim_folder(placement.album_prefix, owner_id, self.clock())
        except Exception as e:
            logger.exception(f"Failed to check the claim on {placement.album_prefix}: {e}")
            raise InternalError("Could not verify upload") from e
        if holder != owner_id:
            logger.warning(f"User {owner_id} tried to confirm {placement.object_key} in a folder held by {holder}")
            raise InvalidArgumentError(ALBUM_OF_ANOTHER_USER)

    async def _check_manifest(self, placement: KeyPlacement) -> None:
        """Every cover and song URL must name an object already stored in the same album folder."""
        data = await self.s3.read_json(placement.object_key)
        if data is None:
            raise InvalidArgumentError("Album manifest is not valid JSON")
        try:
            manifest = AlbumManifest.model_validate(data)
        except ValidationError as e:
            raise InvalidArgumentError("Album manifest is malformed") from e

        folder = f"{placement.album_prefix}/"
        for url in [manifest.cover_url] + [song.url for song in manifest.songs]:
            key = self.policy.object_key_from_url(url)
            if key is None or not key.startswith(folder) or key == placement.object_key:
                raise InvalidArgumentError(f"Album manifest points outside the album: {url}")
            if await self._stat(key) is None:
                raise InvalidArgumentError(f"Album manifest references a missing object: {url}")

    @staticmethod
    def _file_name(object_key: str, info: ObjectInfo, claimed: Optional[str]) -> str:
        signed_name = metadata_file_name(info.metadata)
        if signed_name:
            return signed_name
        stored = file_name_from_key(object_key)
        # Client name wins only when it sanitizes to the stored one
        if claimed and sanitize_file_name(claimed.strip()) == sanitize_file_name(stored):
            return claimed.strip()
        return stored

    async def _publish(self, record: UploadRecord, placement: KeyPlacement) -> None:
        if self.producer is None:
            return
        try:
            await self.producer.publish("music.uploaded", MusicUploadedEvent(
                music_id=record.id,
                owner_id=record.owner_id,
                object_key=record.object_key,
                content_type=record.content_type,
                size_bytes=record.size_bytes,
                url=record.retrieval_url
            ))
            if placement.scope == KeyScope.ALBUM_MANIFEST:
                await self.producer.publish("album.published", AlbumPublishedEvent(
                    album_id=placement.album_prefix.rsplit("/", 1)[-1],
                    owner_id=record.owner_id,
                    manifest_key=record.object_key,
                    url=record.retrieval_url
                ))
        except Exception as e:
            # Best effort, the record is already persisted
            logger.error(f"Failed to publish events for {record.object_key}: {e}")
