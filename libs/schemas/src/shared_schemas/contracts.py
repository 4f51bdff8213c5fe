from datetime import datetime
from typing import Dict, List, Optional

from pydantic import AliasChoices, Field

from shared_schemas.base import CamelModel


class GrantRequest(CamelModel):
    file_name: str = Field(..., description="Original file name, e.g. track.mp3")
    file_type: str = Field(..., description="Declared MIME type, e.g. audio/mpeg")
    file_size: Optional[int] = Field(None, ge=0, description="Size in bytes")
    explicit_key: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("explicitKey", "explicit_key", "s3Key"),
        serialization_alias="explicitKey",
        description="Deterministic destination for album objects",
    )


class GrantResponse(CamelModel):
    upload_url: str = Field(..., description="Presigned URL the client PUTs the bytes to")
    key: str
    expires_in: int = 900
    expires_at: int = Field(..., description="Epoch seconds after which the URL is useless")
    content_type: str = Field(..., description="Exact Content-Type header the PUT must carry")
    headers: Dict[str, str] = Field(default_factory=dict, description="Further signed headers the PUT must carry")


class ConfirmRequest(CamelModel):
    key: str
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    title: Optional[str] = None
    artist: Optional[str] = None


class MusicPayload(CamelModel):
    id: str
    title: str
    artist: Optional[str] = None
    url: str
    uploaded_at: datetime
    key: str
    size: int
    content_type: str


class ConfirmResponse(CamelModel):
    success: bool = True
    music: MusicPayload


class ErrorResponse(CamelModel):
    error: str


class ManifestSong(CamelModel):
    title: str
    url: str


class AlbumManifest(CamelModel):
    title: str
    artist: str
    cover_url: str = Field(..., alias="cover")
    songs: List[ManifestSong] = []

    def to_json_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")


class AlbumSummary(CamelModel):
    id: str = Field(..., description="Album slug, e.g. an-evening-with-silk-sonic")
    title: str
    artist: str
    cover_url: str
    songs: List[ManifestSong] = []
