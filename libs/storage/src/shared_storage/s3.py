import boto3
from botocore.config import Config
from botocore.exceptions import ClientError
from dataclasses import dataclass, field
from datetime import datetime
import json
import logging
from typing import Any, BinaryIO, Optional
import asyncio

logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


@dataclass
class ObjectInfo:
    key: str
    size: int
    content_type: Optional[str] = None
    last_modified: Optional[datetime] = None
    metadata: dict[str, str] = field(default_factory=dict)


def is_missing(error: ClientError) -> bool:
    return str(error.response.get('Error', {}).get('Code')) in _MISSING_CODES


class S3Client:
    def __init__(self, bucket: str, endpoint: Optional[str], access_key: str, secret_key: str,
                 region: Optional[str] = None):
        self.bucket = bucket
        self.region = region
        self.client = boto3.client('s3', endpoint_url=endpoint,
                                   region_name=region,
                                   aws_access_key_id=access_key,
                                   aws_secret_access_key=secret_key,
                                   config=Config(signature_version='s3v4'))

    def generate_presigned_url(self, object_key: str, content_type: str, expires_in: int = 900,
                               metadata: Optional[dict[str, str]] = None) -> str:
        # ContentType and Metadata are part of the signature, a PUT that differs is refused by S3
        params = {'Bucket': self.bucket, 'Key': object_key, 'ContentType': content_type}
        if metadata:
            params['Metadata'] = metadata
        return self.client.generate_presigned_url(
            ClientMethod='put_object',
            Params=params,
            ExpiresIn=expires_in
        )

    async def head_object(self, object_key: str) -> Optional[ObjectInfo]:
        try:
            response = await asyncio.to_thread(self.client.head_object, Bucket=self.bucket, Key=object_key)
        except ClientError as e:
            if is_missing(e):
                return None
            logger.error(f"Failed to stat s3://{self.bucket}/{object_key}: {e}")
            raise
        return ObjectInfo(
            key=object_key,
            size=int(response.get('ContentLength', 0)),
            content_type=response.get('ContentType'),
            last_modified=response.get('LastModified'),
            metadata=response.get('Metadata') or {}
        )

    async def upload_fileobj(self, fileobj: BinaryIO, object_key: str, content_type: str,
                             metadata: Optional[dict[str, str]] = None) -> None:
        extra_args = {'ContentType': content_type}
        if metadata:
            extra_args['Metadata'] = metadata
        try:
            await asyncio.to_thread(
                self.client.upload_fileobj,
                Fileobj=fileobj,
                Bucket=self.bucket,
                Key=object_key,
                ExtraArgs=extra_args
            )
            logger.info(f"Uploaded stream -> s3://{self.bucket}/{object_key}")
        except ClientError as e:
            logger.error(f"Failed to upload stream to {object_key}: {e}")
            raise

    async def list_objects(self, prefix: str) -> list[ObjectInfo]:
        def _list_sync():
            paginator = self.client.get_paginator('list_objects_v2')
            found = []
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get('Contents', []):
                    if obj['Key'].endswith('/'):
                        continue
                    found.append(ObjectInfo(
                        key=obj['Key'],
                        size=int(obj.get('Size', 0)),
                        last_modified=obj.get('LastModified')
                    ))
            return found
        try:
            return await asyncio.to_thread(_list_sync)
        except ClientError as e:
            logger.error(f"Failed to list objects in {prefix}: {e}")
            raise

    async def list_folders(self, prefix: str) -> list[str]:
        """Immediate sub-prefixes of `prefix`, e.g. music/ -> ['music/alpha/', ...]."""
        def _list_sync():
            paginator = self.client.get_paginator('list_objects_v2')
            folders = []
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix, Delimiter='/'):
                folders.extend(entry['Prefix'] for entry in page.get('CommonPrefixes', []))
            return folders
        try:
            return await asyncio.to_thread(_list_sync)
        except ClientError as e:
            logger.error(f"Failed to list folders in {prefix}: {e}")
            raise

    async def read_json(self, object_key: str) -> Optional[dict[str, Any]]:
        def _read():
            response = self.client.get_object(Bucket=self.bucket, Key=object_key)
            content = response['Body'].read().decode('utf-8')
            return json.loads(content)
        try:
            return await asyncio.to_thread(_read)
        except ClientError as e:
            logger.warning(f"Could not read JSON at {object_key}: {e}")
            return None
        except ValueError as e:
            logger.warning(f"Invalid JSON at {object_key}: {e}")
            return None

    async def delete_objects(self, object_keys: list[str]) -> None:
        def _delete_sync():
            for start in range(0, len(object_keys), 1000):
                batch = [{'Key': key} for key in object_keys[start:start + 1000]]
                self.client.delete_objects(Bucket=self.bucket, Delete={'Objects': batch})
        try:
            await asyncio.to_thread(_delete_sync)
            logger.info(f"Deleted {len(object_keys)} objects from s3://{self.bucket}")
        except ClientError as e:
            logger.error(f"Failed to delete objects: {e}")
            raise
