"""
Orphan sweep for the music bucket.

    python reconcile.py            # report only
    python reconcile.py --delete   # remove what was reported
"""
import argparse
import asyncio
import logging

from upload_api.cores.config import settings
from upload_api.cores.database import init_db
from upload_api.cores.injectable import get_record_store, get_s3_client, get_upload_policy, utc_now
from upload_api.services.orphan_reconciler import OrphanReconciler

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def main(delete: bool, grace_seconds: int):
    mongo = await init_db()
    try:
        reconciler = OrphanReconciler(
            get_s3_client(),
            get_record_store(),
            get_upload_policy(),
            utc_now,
            grace_seconds
        )
        orphans = await reconciler.sweep(delete=delete)
        for obj in orphans:
            logger.info(f"{'Deleted' if delete else 'Orphan'}: {obj.key} ({obj.size} bytes, {obj.last_modified})")
    finally:
        await mongo.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Find objects with no upload record and no album manifest")
    parser.add_argument("--delete", action="store_true", help="delete the orphans instead of only listing them")
    parser.add_argument("--grace-seconds", type=int, default=settings.ORPHAN_GRACE_SECONDS,
                        help="ignore objects younger than this")
    args = parser.parse_args()
    asyncio.run(main(args.delete, args.grace_seconds))
