from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import JSONResponse

from educhat.services.upload_service import UploadService
from educhat.utils.dependencies import get_current_user


router = APIRouter(prefix="/chat", tags=["chat"])


def get_upload_service() -> UploadService:
    return UploadService()


@router.post("/upload-image")
async def upload_chat_image(
    image: UploadFile | None = File(default=None),
    current_user: dict = Depends(get_current_user),
    service: UploadService = Depends(get_upload_service),
):
    attachment = await service.store_image(image)
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"success": True, "message": "Image uploaded successfully", "data": {"attachment": attachment}},
    )
