from __future__ import annotations

from datetime import datetime, timezone
from functools import lru_cache
from typing import Annotated, Callable, Optional

from fastapi import Depends, Header

from shared_messaging.producer import RabbitMQProducer
from shared_storage.s3 import S3Client
from upload_api.cores.config import settings
from upload_api.cores.security import bearer_token, decode_access_token
from upload_api.services.album_catalog import AlbumCatalog
from upload_api.services.confirm_service import UploadConfirmService
from upload_api.services.direct_upload import DirectUploadService
from upload_api.services.grant_service import UploadGrantService
from upload_api.services.record_store import MongoRecordStore
from upload_api.services.upload_policy import UploadPolicy


@lru_cache
def get_s3_client() -> S3Client:
    return S3Client(
        bucket=settings.S3_BUCKET_NAME,
        endpoint=settings.S3_ENDPOINT,
        access_key=settings.S3_ACCESS_KEY,
        secret_key=settings.S3_SECRET_KEY,
        region=settings.S3_REGION
    )


def get_upload_policy() -> UploadPolicy:
    return UploadPolicy.from_settings(settings)


def get_record_store() -> MongoRecordStore:
    return MongoRecordStore()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def get_clock() -> Callable[[], datetime]:
    return utc_now


_Producer: RabbitMQProducer | None = None


def get_producer() -> Optional[RabbitMQProducer]:
    return _Producer


async def get_current_user_id(authorization: Annotated[str | None, Header()] = None) -> str:
    return decode_access_token(bearer_token(authorization))


def get_grant_service(
        s3: S3Client = Depends(get_s3_client),
        store: MongoRecordStore = Depends(get_record_store),
        policy: UploadPolicy = Depends(get_upload_policy),
        clock: Callable[[], datetime] = Depends(get_clock)
) -> UploadGrantService:
    return UploadGrantService(s3, store, policy, clock)


def get_confirm_service(
        s3: S3Client = Depends(get_s3_client),
        store: MongoRecordStore = Depends(get_record_store),
        policy: UploadPolicy = Depends(get_upload_policy),
        clock: Callable[[], datetime] = Depends(get_clock),
        producer: Optional[RabbitMQProducer] = Depends(get_producer)
) -> UploadConfirmService:
    return UploadConfirmService(s3, store, policy, clock, producer)


def get_direct_upload_service(
        grants: UploadGrantService = Depends(get_grant_service),
        confirmations: UploadConfirmService = Depends(get_confirm_service)
) -> DirectUploadService:
    return DirectUploadService(grants, confirmations)


def get_album_catalog(s3: S3Client = Depends(get_s3_client)) -> AlbumCatalog:
    return AlbumCatalog(s3)
