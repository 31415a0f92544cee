import asyncio
import contextlib
import json
import logging

import jwt
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from educhat.models.participant import map_role
from educhat.schemas.chat import SendMessageRequest
from educhat.services.chat_service import ChatService
from educhat.utils.dependencies import claims_to_user, get_bus, get_chat_service, get_connection_manager, get_current_user
from educhat.utils.realtime_bus import user_channel
from educhat.utils.security import decode_access_token
from educhat.utils.websocket_manager import ConnectionManager


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["chat"])
ws_router = APIRouter(tags=["chat"])


@router.post("")
async def send_message(body: SendMessageRequest, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    message = await service.send_message(
        conversation_id=body.conversation_id,
        sender_id=current_user["user_id"],
        sender_role=current_user["role"],
        receiver_id=body.receiver_id,
        receiver_role=body.receiver_role,
        content=body.content,
        message_type=body.message_type,
        attachments=[a.model_dump() for a in body.attachments],
    )
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content=jsonable_encoder({"success": True, "message": "Message sent successfully", "data": {"message": message}}),
    )


@router.get("/unread-count")
async def get_unread_count(current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    count = await service.unread_count(current_user["user_id"], current_user["role"])
    return {"success": True, "message": "Unread count retrieved successfully", "data": {"unread_count": count}}


@router.patch("/{message_id}/read")
async def mark_message_read(message_id: str, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    message = await service.mark_message_read(message_id, current_user["user_id"])
    return {"success": True, "message": "Message marked as read", "data": {"message": message}}


@ws_router.websocket("/ws/chat")
async def chat_socket(websocket: WebSocket, manager: ConnectionManager = Depends(get_connection_manager)):
    # token comes as ?token=..., browsers cannot set headers on websockets
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=4401)
        return
    try:
        user = claims_to_user(decode_access_token(token))
    except jwt.InvalidTokenError:
        await websocket.close(code=4401)
        return
    if map_role(user["role"]) is None:
        await websocket.close(code=4403)
        return

    user_id = user["user_id"]
    await manager.connect(user_id, websocket)
    logger.info("User %s connected", user_id)

    bus = get_bus(websocket)
    subscriber = None
    sub_task = None
    if getattr(bus, "enabled", False):
        subscriber = await bus.subscribe(user_channel(user_id), websocket.send_text)
        sub_task = asyncio.create_task(subscriber.run())

    try:
        while True:
            data = await websocket.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json({"event": "error", "data": {"message": "Invalid payload"}})
                continue
            if isinstance(msg, dict) and msg.get("event") == "ping":
                await websocket.send_json({"event": "pong", "data": {}})
    except WebSocketDisconnect:
        logger.info("User %s disconnected", user_id)
    finally:
        manager.disconnect(user_id, websocket)
        if subscriber is not None:
            await subscriber.cancel()
        if sub_task is not None:
            sub_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sub_task
