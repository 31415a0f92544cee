import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from educhat.errors import ForbiddenError, NotFoundError, ValidationFailedError
from educhat.models.conversation import LastMessagePreview
from educhat.models.message import AttachmentDocument, MessageDocument, MessagePage
from educhat.models.participant import ParticipantDocument, participant_user_id
from educhat.repositories.conversation_repository import ConversationRepository
from educhat.utils.mongo import stringify_ids, to_object_id, utcnow


logger = logging.getLogger(__name__)

PREVIEW_PROJECTION = {"content": 1, "message_type": 1, "attachments": 1, "created_at": 1}


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase, conversations: Optional[ConversationRepository] = None) -> None:
        self._db = db
        self._conversations = conversations or ConversationRepository(db)

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("conversation_id", ASCENDING), ("created_at", DESCENDING)])
        await self.collection.create_index([("receiver.user_id", ASCENDING), ("read_at", ASCENDING)])

    async def append(
        self,
        conversation_id: Any,
        sender: ParticipantDocument,
        receiver: ParticipantDocument,
        content: str,
        message_type: str = "text",
        attachments: Optional[List[AttachmentDocument]] = None,
    ) -> MessageDocument:
        convo_oid = to_object_id(conversation_id)
        if convo_oid is None or not await self._conversations.exists(convo_oid):
            raise NotFoundError("Conversation not found")

        doc: Dict[str, Any] = {
            "conversation_id": convo_oid,
            "sender": {"user_id": participant_user_id(sender), "role": sender["role"]},
            "receiver": {"user_id": participant_user_id(receiver), "role": receiver["role"]},
            "content": content,
            "message_type": message_type,
            "attachments": list(attachments or []),
            "created_at": utcnow(),
            "read_at": None,
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        try:
            await self._conversations.touch_last_message(convo_oid, result.inserted_id, doc["created_at"])
        except PyMongoError:
            logger.exception("Failed to update last message of conversation %s, rolling back message %s", convo_oid, result.inserted_id)
            await self.collection.delete_one({"_id": result.inserted_id})
            raise
        return self._serialize(doc)

    async def page(self, conversation_id: Any, page: int = 1, page_size: int = 50) -> MessagePage:
        """
        Page through a conversation's history.

        Pages are counted from the most recent message: page 1 holds the
        newest ``page_size`` messages. Messages inside a page are returned in
        ascending creation order, so a client renders a page top to bottom and
        prepends older pages above it.
        """
        bad = [name for name, value in (("page", page), ("page_size", page_size)) if not isinstance(value, int) or value < 1]
        if bad:
            raise ValidationFailedError("Invalid pagination parameters", fields=bad)

        convo_oid = to_object_id(conversation_id)
        query: Dict[str, Any] = {"conversation_id": convo_oid}
        total = await self.collection.count_documents(query) if convo_oid is not None else 0
        skip = (page - 1) * page_size
        items: List[Dict[str, Any]] = []
        if skip < total:
            sort = [("created_at", DESCENDING), ("_id", DESCENDING)]
            cur = self.collection.find(query).sort(sort).skip(skip).limit(page_size)
            items = await cur.to_list(length=page_size)
        items.reverse()
        return {
            "messages": [self._serialize(it) for it in items],
            "total_count": total,
            "page": page,
            "page_size": page_size,
            "total_pages": math.ceil(total / page_size) if total else 0,
        }

    async def mark_read(self, message_id: Any, user_id: str) -> Tuple[MessageDocument, bool]:
        """Set read_at once. Returns the message and whether this call changed it."""
        oid = to_object_id(message_id)
        doc = await self.collection.find_one({"_id": oid}) if oid is not None else None
        if not doc:
            raise NotFoundError("Message not found")
        if participant_user_id(doc.get("receiver") or {}) != str(user_id):
            raise ForbiddenError("Only the receiver can mark message as read")
        if doc.get("read_at") is not None:
            return self._serialize(doc), False

        updated = await self.collection.find_one_and_update(
            {"_id": oid, "read_at": None},
            {"$set": {"read_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            # another request marked it in between
            doc = await self.collection.find_one({"_id": oid})
            return self._serialize(doc), False
        return self._serialize(updated), True

    async def mark_all_read_in_conversation(self, conversation_id: Any, user_id: str) -> int:
        convo_oid = to_object_id(conversation_id)
        if convo_oid is None:
            return 0
        result = await self.collection.update_many(
            {"conversation_id": convo_oid, "receiver.user_id": str(user_id), "read_at": None},
            {"$set": {"read_at": utcnow()}},
        )
        return result.modified_count or 0

    async def unread_count(self, user_id: str) -> int:
        return await self.collection.count_documents({"receiver.user_id": str(user_id), "read_at": None})

    async def get_previews(self, message_ids: Iterable[Any]) -> Dict[str, LastMessagePreview]:
        oids = [oid for oid in (to_object_id(m) for m in message_ids if m) if oid is not None]
        if not oids:
            return {}
        items = await self.collection.find({"_id": {"$in": oids}}, PREVIEW_PROJECTION).to_list(length=None)
        return {str(it["_id"]): stringify_ids(it) for it in items}

    @staticmethod
    def _serialize(doc: Dict[str, Any]) -> Dict[str, Any]:
        return stringify_ids(doc, "conversation_id")
