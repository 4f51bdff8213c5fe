from typing import List

from fastapi import APIRouter, Depends

from shared_schemas.contracts import AlbumSummary
from upload_api.cores.injectable import get_album_catalog
from upload_api.services.album_catalog import AlbumCatalog

router = APIRouter()


@router.get("", response_model=List[AlbumSummary], summary="Published albums")
async def list_albums(catalog: AlbumCatalog = Depends(get_album_catalog)):
    return await catalog.list_albums()


@router.get("/{album_id}", response_model=AlbumSummary, summary="One published album")
async def get_album(album_id: str, catalog: AlbumCatalog = Depends(get_album_catalog)):
    return await catalog.get_album(album_id)
