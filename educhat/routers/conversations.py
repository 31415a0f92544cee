from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from educhat.config import Config
from educhat.schemas.chat import CreateConversationRequest
from educhat.services.chat_service import ChatService
from educhat.utils.dependencies import get_chat_service, get_current_user


router = APIRouter(prefix="/conversations", tags=["chat"])


@router.get("")
async def list_conversations(current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    conversations = await service.list_conversations(current_user["user_id"], current_user["role"])
    return {
        "success": True,
        "message": "Conversations retrieved successfully",
        "data": {"conversations": conversations},
    }


@router.post("")
async def create_conversation(body: CreateConversationRequest, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    conversation, created = await service.create_or_get_conversation(current_user["user_id"], current_user["role"], body.other_user_id)
    content = {
        "success": True,
        "message": "Conversation created successfully" if created else "Conversation retrieved successfully",
        "data": {"conversation": conversation, "created": created},
    }
    return JSONResponse(
        status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        content=jsonable_encoder(content),
    )


@router.get("/{conversation_id}/messages")
async def list_messages(
    conversation_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(Config.DEFAULT_PAGE_SIZE, ge=1, le=Config.MAX_PAGE_SIZE),
    current_user: dict = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    result = await service.get_messages(conversation_id, current_user["user_id"], page=page, page_size=limit)
    return {"success": True, "message": "Messages retrieved successfully", "data": result}


@router.patch("/{conversation_id}/read")
async def mark_conversation_read(conversation_id: str, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    result = await service.mark_conversation_read(conversation_id, current_user["user_id"], current_user["role"])
    return {"success": True, "message": "Conversation marked as read", "data": result}
