import logging
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from shared_schemas.contracts import AlbumManifest, AlbumSummary
from shared_storage.s3 import S3Client
from shared_uploads.errors import InternalError, NotFoundError
from shared_uploads.keys import MANIFEST_NAME, MUSIC_ROOT, manifest_key

logger = logging.getLogger(__name__)


def album_id_for_manifest(object_key: str) -> Optional[str]:
    parts = object_key.split("/")
    if len(parts) == 3 and parts[0] == MUSIC_ROOT and parts[2] == MANIFEST_NAME:
        return parts[1]
    return None


class AlbumCatalog:
    """Published albums. An album exists for readers only once its manifest does."""

    def __init__(self, s3: S3Client):
        self.s3 = s3

    async def list_albums(self) -> list[AlbumSummary]:
        try:
            folders = await self.s3.list_folders(f"{MUSIC_ROOT}/")
        except (ClientError, BotoCoreError) as e:
            logger.exception(f"Failed to list albums: {e}")
            raise InternalError("Could not load albums") from e
        albums = []
        for folder in folders:
            album_id = folder.rstrip("/").rsplit("/", 1)[-1]
            album = await self._load(album_id)
            if album is not None:
                albums.append(album)
        return sorted(albums, key=lambda a: a.id)

    async def get_album(self, album_id: str) -> AlbumSummary:
        album = None
        if album_id and "/" not in album_id:
            album = await self._load(album_id)
        if album is None:
            raise NotFoundError("Album not found")
        return album

    async def _load(self, album_id: str) -> Optional[AlbumSummary]:
        data = await self.s3.read_json(manifest_key(f"{MUSIC_ROOT}/{album_id}"))
        if data is None:
            return None
        try:
            manifest = AlbumManifest.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Skipping album {album_id} with malformed manifest: {e}")
            return None
        return AlbumSummary(
            id=album_id,
            title=manifest.title,
            artist=manifest.artist,
            cover_url=manifest.cover_url,
            songs=manifest.songs
        )
