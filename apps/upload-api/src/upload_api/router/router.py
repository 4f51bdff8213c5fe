from fastapi import APIRouter
from upload_api.controllers import albums, music

api_router = APIRouter()

api_router.include_router(music.router, prefix="/music", tags=["Upload"])
api_router.include_router(albums.router, prefix="/albums", tags=["Albums"])
