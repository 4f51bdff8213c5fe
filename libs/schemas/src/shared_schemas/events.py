from pydantic import BaseModel


class MusicUploadedEvent(BaseModel):
    music_id: str
    owner_id: str
    object_key: str
    content_type: str
    size_bytes: int
    url: str


class AlbumPublishedEvent(BaseModel):
    """Published once the manifest of an album upload is confirmed"""
    album_id: str
    owner_id: str
    manifest_key: str
    url: str
