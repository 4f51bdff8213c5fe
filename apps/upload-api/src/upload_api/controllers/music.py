from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from shared_schemas.contracts import ConfirmRequest, ConfirmResponse, GrantRequest, GrantResponse
from upload_api.cores.injectable import (
    get_confirm_service,
    get_current_user_id,
    get_direct_upload_service,
    get_grant_service,
)
from upload_api.services.confirm_service import UploadConfirmService
from upload_api.services.direct_upload import DirectUploadService
from upload_api.services.grant_service import UploadGrantService

router = APIRouter()


@router.post("/upload-url", response_model=GrantResponse)
async def request_upload_url(
        request: GrantRequest,
        user_id: str = Depends(get_current_user_id),
        service: UploadGrantService = Depends(get_grant_service)
):
    """
    Step 1: returns a presigned URL the client PUTs the file to, valid for one
    object and one content type.
    """
    return await service.request_grant(user_id, request)


@router.post("/upload-complete", response_model=ConfirmResponse)
async def upload_complete(
        request: ConfirmRequest,
        user_id: str = Depends(get_current_user_id),
        service: UploadConfirmService = Depends(get_confirm_service)
):
    """
    Step 3: called after the PUT succeeded. The object is checked in storage
    before anything is recorded.
    """
    record = await service.confirm(user_id, request)
    return ConfirmResponse(music=record.to_payload())


@router.post("/upload", response_model=ConfirmResponse)
async def direct_upload(
        file: UploadFile = File(...),
        key: Optional[str] = Form(None),
        title: Optional[str] = Form(None),
        artist: Optional[str] = Form(None),
        user_id: str = Depends(get_current_user_id),
        service: DirectUploadService = Depends(get_direct_upload_service)
):
    record = await service.upload(user_id, file, explicit_key=key, title=title, artist=artist)
    return ConfirmResponse(music=record.to_payload())
