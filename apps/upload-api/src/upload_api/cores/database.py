from beanie import init_beanie
from pymongo import AsyncMongoClient

from upload_api.cores.config import settings
from upload_api.models.folder_claim import FolderClaim
from upload_api.models.music import Music


async def init_db() -> AsyncMongoClient:
    client = AsyncMongoClient(settings.MONGODB_URL)

    await init_beanie(
        database=client[settings.DATABASE_NAME],
        document_models=[
            Music,
            FolderClaim
        ]
    )
    return client
