from dataclasses import dataclass
from typing import FrozenSet, Optional

from shared_uploads.content_types import normalize_content_type, resolve_content_type
from shared_uploads.errors import InvalidArgumentError
from shared_uploads.keys import (
    KeyPlacement,
    check_content_type_for,
    classify_key,
    default_public_base,
    public_url,
)


@dataclass(frozen=True)
class UploadPolicy:
    bucket: str
    public_base_url: str
    max_file_size_bytes: int
    grant_lifetime_seconds: int
    allowed_content_types: FrozenSet[str]

    @classmethod
    def from_settings(cls, settings) -> "UploadPolicy":
        return cls(
            bucket=settings.S3_BUCKET_NAME,
            public_base_url=settings.S3_PUBLIC_BASE_URL or default_public_base(settings.S3_BUCKET_NAME, settings.S3_REGION),
            max_file_size_bytes=settings.MAX_FILE_SIZE_BYTES,
            grant_lifetime_seconds=settings.GRANT_LIFETIME_SECONDS,
            allowed_content_types=frozenset(normalize_content_type(t) for t in settings.ALLOWED_CONTENT_TYPES),
        )

    def retrieval_url(self, object_key: str) -> str:
        return public_url(self.public_base_url, object_key)

    def object_key_from_url(self, url: str) -> Optional[str]:
        base = self.public_base_url.rstrip("/") + "/"
        if not url.startswith(base):
            return None
        return url[len(base):]

    def is_allowed(self, content_type: Optional[str]) -> bool:
        return normalize_content_type(content_type) in self.allowed_content_types

    def accepted_content_type(self, file_name: str, declared: Optional[str]) -> str:
        content_type = resolve_content_type(file_name, declared)
        if not content_type or content_type not in self.allowed_content_types:
            raise InvalidArgumentError("Unsupported file type")
        return content_type

    def check_size(self, size: Optional[int]) -> None:
        if size is None:
            return
        if size < 0:
            raise InvalidArgumentError("fileSize must not be negative")
        if size > self.max_file_size_bytes:
            limit_mb = self.max_file_size_bytes // (1024 * 1024)
            raise InvalidArgumentError(f"File size exceeds maximum allowed ({limit_mb}MB)")

    def placement_for(self, owner_id: str, object_key: str, content_type: str) -> KeyPlacement:
        placement = classify_key(owner_id, object_key)
        check_content_type_for(placement, content_type)
        return placement
