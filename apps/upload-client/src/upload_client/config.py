from typing import FrozenSet

from pydantic import BaseModel, ConfigDict, Field

from shared_uploads.content_types import DEFAULT_ALLOWED_CONTENT_TYPES


class UploadClientConfig(BaseModel):
    """Everything the orchestrator needs to know, handed over at construction time."""

    model_config = ConfigDict(frozen=True)

    api_base_url: str = "http://localhost:8000"
    # False sends the bytes through the API instead of straight to storage
    use_object_storage_upload: bool = True
    max_file_size_bytes: int = Field(100 * 1024 * 1024, gt=0)
    allowed_content_types: FrozenSet[str] = DEFAULT_ALLOWED_CONTENT_TYPES
    grant_lifetime_seconds: int = Field(900, gt=0)

    grant_endpoint: str = "/api/music/upload-url"
    confirm_endpoint: str = "/api/music/upload-complete"
    direct_upload_endpoint: str = "/api/music/upload"

    request_timeout_seconds: float = 30.0
    upload_timeout_seconds: float = 5 * 60.0
    confirm_attempts: int = Field(4, ge=1)
    confirm_backoff_seconds: float = 0.5
    chunk_size: int = Field(256 * 1024, gt=0)

    def url_for(self, path: str) -> str:
        return f"{self.api_base_url.rstrip('/')}/{path.lstrip('/')}"
