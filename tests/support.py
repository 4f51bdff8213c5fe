import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import quote
from uuid import uuid4

import httpx
from fastapi import FastAPI

from shared_storage.s3 import ObjectInfo
from shared_uploads.content_types import DEFAULT_ALLOWED_CONTENT_TYPES
from upload_api.cores.security import create_access_token
from upload_api.services.upload_policy import UploadPolicy

BUCKET = "test-bucket"
PUBLIC_BASE = "https://test-bucket.s3.us-east-1.amazonaws.com"
API_BASE = "http://api.test"
STORAGE_HOST = "storage.test"
OWNER = "user-1"

POLICY = UploadPolicy(
    bucket=BUCKET,
    public_base_url=PUBLIC_BASE,
    max_file_size_bytes=100 * 1024 * 1024,
    grant_lifetime_seconds=900,
    allowed_content_types=DEFAULT_ALLOWED_CONTENT_TYPES,
)


def token_for(user_id: str = OWNER) -> str:
    return create_access_token(user_id)


def auth(user_id: str = OWNER) -> dict:
    return {"Authorization": f"Bearer {token_for(user_id)}"}


class FakeClock:
    def __init__(self, start: datetime = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@dataclass
class _SignedPut:
    key: str
    content_type: str
    expires_at: datetime
    metadata: dict[str, str] = field(default_factory=dict)
    used: bool = False


class FakeObjectStore:
    """
    In-memory bucket with the S3Client interface. Presigned URLs point at
    STORAGE_HOST and are honoured by handle_put, which refuses a PUT the way
    S3 does when the type, the key or the expiry does not match.
    """

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.bucket = BUCKET
        self.objects: dict[str, tuple[bytes, ObjectInfo]] = {}
        self.signed: dict[str, _SignedPut] = {}
        self.write_order: list[str] = []
        self.put_attempts: list[str] = []
        self.reject_keys: dict[str, int] = {}
        self.invisible_heads = 0
        self.stall: Optional[asyncio.Event] = None
        self.put_started = asyncio.Event()

    def put(self, key: str, data: bytes, content_type: str, last_modified: Optional[datetime] = None,
            metadata: Optional[dict[str, str]] = None) -> None:
        self.objects[key] = (data, ObjectInfo(
            key=key,
            size=len(data),
            content_type=content_type,
            last_modified=last_modified or self.clock(),
            metadata=dict(metadata or {})
        ))
        self.write_order.append(key)

    def data(self, key: str) -> bytes:
        return self.objects[key][0]

    def generate_presigned_url(self, object_key: str, content_type: str, expires_in: int = 900,
                               metadata: Optional[dict[str, str]] = None) -> str:
        signature = uuid4().hex
        expires_at = self.clock() + timedelta(seconds=expires_in)
        self.signed[signature] = _SignedPut(object_key, content_type, expires_at, dict(metadata or {}))
        return f"https://{STORAGE_HOST}/{quote(object_key)}?X-Amz-Signature={signature}"

    async def head_object(self, object_key: str) -> Optional[ObjectInfo]:
        if self.invisible_heads > 0:
            self.invisible_heads -= 1
            return None
        stored = self.objects.get(object_key)
        return stored[1] if stored else None

    async def upload_fileobj(self, fileobj, object_key: str, content_type: str,
                             metadata: Optional[dict[str, str]] = None) -> None:
        self.put(object_key, fileobj.read(), content_type, metadata=metadata)

    async def list_objects(self, prefix: str) -> list[ObjectInfo]:
        return [info for key, (_, info) in sorted(self.objects.items()) if key.startswith(prefix)]

    async def list_folders(self, prefix: str) -> list[str]:
        folders = {prefix + key[len(prefix):].split("/", 1)[0] + "/"
                   for key in self.objects if key.startswith(prefix) and "/" in key[len(prefix):]}
        return sorted(folders)

    async def read_json(self, object_key: str):
        stored = self.objects.get(object_key)
        if stored is None:
            return None
        try:
            return json.loads(stored[0])
        except ValueError:
            return None

    async def delete_objects(self, object_keys: list[str]) -> None:
        for key in object_keys:
            self.objects.pop(key, None)

    async def handle_put(self, request: httpx.Request) -> httpx.Response:
        key = request.url.path.lstrip("/")
        self.put_attempts.append(key)
        if self.stall is not None:
            self.put_started.set()
            await self.stall.wait()

        signed = self.signed.get(request.url.params.get("X-Amz-Signature", ""))
        if request.method != "PUT" or signed is None or signed.key != key:
            return httpx.Response(403, text="SignatureDoesNotMatch")
        if self.clock() > signed.expires_at:
            return httpx.Response(403, text="Request has expired")
        if signed.used:
            return httpx.Response(403, text="Request was already used")
        if request.headers.get("content-type") != signed.content_type:
            return httpx.Response(403, text="SignatureDoesNotMatch")
        for name, value in signed.metadata.items():
            if request.headers.get(f"x-amz-meta-{name}") != value:
                return httpx.Response(403, text="SignatureDoesNotMatch")
        if key in self.reject_keys:
            return httpx.Response(self.reject_keys[key], text="InternalError")

        body = request.content
        if int(request.headers.get("content-length", -1)) != len(body):
            return httpx.Response(400, text="IncompleteBody")
        signed.used = True
        self.put(key, body, signed.content_type, metadata=signed.metadata)
        return httpx.Response(200)


class InMemoryRecordStore:
    def __init__(self):
        self.records = []
        self.claims: dict[str, str] = {}
        self.fail = False

    async def insert(self, record) -> None:
        if self.fail:
            raise RuntimeError("database unavailable")
        self.records.append(record)

    async def find_keys(self, object_keys) -> set[str]:
        wanted = set(object_keys)
        return {record.object_key for record in self.records if record.object_key in wanted}

    async def claim_folder(self, prefix: str, owner_id: str, now: datetime, take_over: bool = False) -> str:
        if take_over:
            self.claims[prefix] = owner_id
        return self.claims.setdefault(prefix, owner_id)

    async def folder_owner(self, prefix: str) -> Optional[str]:
        return self.claims.get(prefix)


class RecordingProducer:
    def __init__(self):
        self.published = []

    async def publish(self, routing_key: str, message) -> None:
        self.published.append((routing_key, message))


class RoutingTransport(httpx.AsyncBaseTransport):
    """Sends storage traffic to the fake bucket and everything else to the app."""

    def __init__(self, app: FastAPI, storage: FakeObjectStore):
        self.api = httpx.ASGITransport(app=app)
        self.storage = httpx.MockTransport(storage.handle_put)

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == STORAGE_HOST:
            return await self.storage.handle_async_request(request)
        return await self.api.handle_async_request(request)
