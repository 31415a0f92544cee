import logging

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.requests import HTTPConnection

from educhat.database.connection import mongo_db_dependency
from educhat.repositories.conversation_repository import ConversationRepository
from educhat.repositories.message_repository import MessageRepository
from educhat.repositories.user_repository import UserRepository
from educhat.services.chat_service import ChatService
from educhat.services.delivery import DeliveryDispatcher
from educhat.utils.realtime_bus import NoopBus
from educhat.utils.security import decode_access_token
from educhat.utils.websocket_manager import ConnectionManager


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def claims_to_user(claims: dict) -> dict:
    user_id = claims.get("sub")
    if not user_id:
        raise jwt.InvalidTokenError("missing sub claim")
    return {"user_id": str(user_id), "role": claims.get("role")}


async def get_current_user(credentials: HTTPAuthorizationCredentials | None = Depends(security)) -> dict:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        return claims_to_user(decode_access_token(credentials.credentials))
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError as e:
        logger.info("Rejected token: %s", e)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def get_connection_manager(conn: HTTPConnection) -> ConnectionManager:
    return conn.app.state.connections


def get_bus(conn: HTTPConnection):
    return getattr(conn.app.state, "bus", None) or NoopBus()


def get_chat_service(
    conn: HTTPConnection,
    db=Depends(mongo_db_dependency),
) -> ChatService:
    convo_repo = ConversationRepository(db)
    msg_repo = MessageRepository(db, convo_repo)
    dispatcher = DeliveryDispatcher(get_connection_manager(conn), get_bus(conn))
    return ChatService(msg_repo, convo_repo, UserRepository(db), dispatcher)
