import logging
from datetime import datetime, timedelta
from typing import Callable

from shared_schemas.contracts import AlbumManifest
from shared_storage.s3 import ObjectInfo, S3Client
from shared_uploads.keys import MUSIC_ROOT
from upload_api.services.album_catalog import album_id_for_manifest
from upload_api.services.upload_policy import UploadPolicy

logger = logging.getLogger(__name__)


class OrphanReconciler:
    """
    Finds objects nobody points at: no UploadRecord for the key and no album
    manifest referencing it. Abandoned grants and half-finished albums end up
    here. Objects younger than the grace period are left alone since their
    upload may still be in flight.
    """

    def __init__(self, s3: S3Client, store, policy: UploadPolicy, clock: Callable[[], datetime],
                 grace_seconds: int):
        self.s3 = s3
        self.store = store
        self.policy = policy
        self.clock = clock
        self.grace = timedelta(seconds=grace_seconds)

    async def find_orphans(self) -> list[ObjectInfo]:
        objects = await self.s3.list_objects(f"{MUSIC_ROOT}/")
        referenced = await self._manifest_references(objects)
        cutoff = self.clock() - self.grace
        candidates = [
            obj for obj in objects
            if obj.key not in referenced and (obj.last_modified is None or obj.last_modified <= cutoff)
        ]
        recorded = await self.store.find_keys(obj.key for obj in candidates)
        orphans = [obj for obj in candidates if obj.key not in recorded]
        logger.info(f"Scanned {len(objects)} objects, {len(orphans)} orphaned")
        return orphans

    async def sweep(self, delete: bool = False) -> list[ObjectInfo]:
        orphans = await self.find_orphans()
        if delete and orphans:
            await self.s3.delete_objects([obj.key for obj in orphans])
        return orphans

    async def _manifest_references(self, objects: list[ObjectInfo]) -> set[str]:
        referenced = set()
        for obj in objects:
            if album_id_for_manifest(obj.key) is None:
                continue
            data = await self.s3.read_json(obj.key)
            if data is None:
                continue
            try:
                manifest = AlbumManifest.model_validate(data)
            except ValueError:
                logger.warning(f"Unreadable manifest {obj.key}, its objects count as unreferenced")
                continue
            referenced.add(obj.key)
            for url in [manifest.cover_url] + [song.url for song in manifest.songs]:
                key = self.policy.object_key_from_url(url)
                if key:
                    referenced.add(key)
        return referenced
