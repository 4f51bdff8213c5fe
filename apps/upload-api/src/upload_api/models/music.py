from datetime import datetime
from typing import Optional

from beanie import Document, Indexed
from pydantic import BaseModel

from shared_schemas.contracts import MusicPayload


class UploadRecord(BaseModel):
    id: str
    owner_id: str
    title: str
    artist: Optional[str] = None
    original_file_name: str
    object_key: str
    bucket: str
    retrieval_url: str
    size_bytes: int
    content_type: str
    uploaded_at: datetime
    status: str = "active"

    def to_payload(self) -> MusicPayload:
        return MusicPayload(
            id=self.id,
            title=self.title,
            artist=self.artist,
            url=self.retrieval_url,
            uploaded_at=self.uploaded_at,
            key=self.object_key,
            size=self.size_bytes,
            content_type=self.content_type
        )


class Music(Document):
    music_id: Indexed(str, unique=True)
    owner_id: Indexed(str)
    title: str
    artist: Optional[str] = None
    original_file_name: str
    object_key: Indexed(str)
    bucket: str
    retrieval_url: str
    size_bytes: int = 0
    content_type: str
    uploaded_at: datetime
    status: str = "active"

    class Settings:
        name = "music"
        indexes = [
            "uploaded_at"
        ]

    @classmethod
    def from_record(cls, record: UploadRecord) -> "Music":
        return cls(music_id=record.id, **record.model_dump(exclude={"id"}))
