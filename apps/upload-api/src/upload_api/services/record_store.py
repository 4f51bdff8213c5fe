import logging
from datetime import datetime
from typing import Iterable, Optional

from beanie.operators import In, Set
from pymongo.errors import DuplicateKeyError

from upload_api.models.folder_claim import FolderClaim
from upload_api.models.music import Music, UploadRecord

logger = logging.getLogger(__name__)


class MongoRecordStore:
    """Write-once sink for confirmed uploads, plus the folder claims that guard album keys."""

    async def insert(self, record: UploadRecord) -> None:
        await Music.from_record(record).insert()
        logger.info(f"Saved music record {record.id} for {record.object_key}")

    async def find_keys(self, object_keys: Iterable[str]) -> set[str]:
        keys = list(object_keys)
        if not keys:
            return set()
        docs = await Music.find(In(Music.object_key, keys)).to_list()
        return {doc.object_key for doc in docs}

    async def claim_folder(self, prefix: str, owner_id: str, now: datetime, take_over: bool = False) -> str:
        """
        Returns the owner of `prefix` after the attempt. An unclaimed folder goes
        to the caller; with take_over the caller gets it regardless.
        """
        if take_over:
            await FolderClaim.find_one(FolderClaim.prefix == prefix).upsert(
                Set({FolderClaim.owner_id: owner_id}),
                on_insert=FolderClaim(prefix=prefix, owner_id=owner_id, claimed_at=now)
            )
            return owner_id
        existing = await self.folder_owner(prefix)
        if existing is not None:
            return existing
        try:
            await FolderClaim(prefix=prefix, owner_id=owner_id, claimed_at=now).insert()
            logger.info(f"Folder {prefix} claimed by user {owner_id}")
            return owner_id
        except DuplicateKeyError:
            # Lost the race to another first grant
            return await self.folder_owner(prefix) or owner_id

    async def folder_owner(self, prefix: str) -> Optional[str]:
        claim = await FolderClaim.find_one(FolderClaim.prefix == prefix)
        return claim.owner_id if claim else None
