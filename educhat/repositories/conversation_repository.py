import logging
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from educhat.models.conversation import STUDENT_EDUCATOR, ConversationDocument, participant_key
from educhat.models.participant import EDUCATOR, STUDENT, make_participant, participant_user_id
from educhat.utils.mongo import stringify_ids, to_object_id, utcnow


logger = logging.getLogger(__name__)


class ConversationRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["conversations"]

    @property
    def messages(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        # one conversation per unordered pair and type; backs get-or-create races
        await self.collection.create_index(
            [("type", ASCENDING), ("participant_key", ASCENDING)],
            unique=True,
            name="uniq_type_participant_key",
        )
        await self.collection.create_index([("participants.user_id", ASCENDING), ("participants.role", ASCENDING)])
        await self.collection.create_index([("last_message_at", DESCENDING), ("updated_at", DESCENDING)])

    async def get_or_create_student_educator(self, student_id: str, educator_id: str) -> Tuple[ConversationDocument, bool]:
        key = participant_key(student_id, educator_id)
        existing = await self._find_by_key(STUDENT_EDUCATOR, key)
        if existing:
            return await self._reactivate(existing), False

        now = utcnow()
        doc: Dict[str, Any] = {
            "type": STUDENT_EDUCATOR,
            "participants": [make_participant(student_id, STUDENT), make_participant(educator_id, EDUCATOR)],
            "participant_key": key,
            "is_active": True,
            "last_message": None,
            "last_message_at": None,
            "created_at": now,
            "updated_at": now,
        }
        try:
            result = await self.collection.insert_one(doc)
        except DuplicateKeyError:
            logger.info("Concurrent create for conversation %s, resolving as lookup", key)
            existing = await self._find_by_key(STUDENT_EDUCATOR, key)
            if existing is None:
                raise
            return await self._reactivate(existing), False
        doc["_id"] = result.inserted_id
        logger.info("Created %s conversation %s", STUDENT_EDUCATOR, result.inserted_id)
        return self._serialize(doc), True

    async def find_by_id(self, conversation_id: Any) -> Optional[ConversationDocument]:
        oid = to_object_id(conversation_id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid})
        return self._serialize(doc) if doc else None

    async def exists(self, conversation_id: ObjectId) -> bool:
        doc = await self.collection.find_one({"_id": conversation_id}, {"_id": 1})
        return doc is not None

    async def touch_last_message(self, conversation_id: ObjectId, message_id: ObjectId, created_at) -> bool:
        # never move the pointer back to an older message
        result = await self.collection.update_one(
            {
                "_id": conversation_id,
                "$or": [{"last_message_at": None}, {"last_message_at": {"$lte": created_at}}],
            },
            {"$set": {"last_message": message_id, "last_message_at": created_at, "updated_at": utcnow()}},
        )
        return bool(result.matched_count)

    async def list_for_user(self, user_id: str, role: str) -> List[ConversationDocument]:
        query = {
            "participants": {"$elemMatch": {"user_id": str(user_id), "role": role}},
            "is_active": True,
        }
        sort = [("last_message_at", DESCENDING), ("updated_at", DESCENDING), ("_id", DESCENDING)]
        items = await self.collection.find(query).sort(sort).to_list(length=None)
        counts = await self._unread_counts(str(user_id), [it["_id"] for it in items])
        results = []
        for it in items:
            it["unread_count"] = counts.get(it["_id"], 0)
            results.append(self._serialize(it))
        return results

    @staticmethod
    def is_participant(conversation: Dict[str, Any], user_id: Any) -> bool:
        uid = str(user_id)
        return any(participant_user_id(p) == uid for p in conversation.get("participants") or [])

    @staticmethod
    def find_participant(conversation: Dict[str, Any], user_id: Any) -> Optional[Dict[str, Any]]:
        uid = str(user_id)
        for p in conversation.get("participants") or []:
            if participant_user_id(p) == uid:
                return p
        return None

    async def _find_by_key(self, conversation_type: str, key: str) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one({"type": conversation_type, "participant_key": key})

    async def _reactivate(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        if doc.get("is_active", True):
            return self._serialize(doc)
        updated = await self.collection.find_one_and_update(
            {"_id": doc["_id"]},
            {"$set": {"is_active": True, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        logger.info("Reactivated conversation %s", doc["_id"])
        return self._serialize(updated or doc)

    async def _unread_counts(self, user_id: str, conversation_ids: List[ObjectId]) -> Dict[ObjectId, int]:
        if not conversation_ids:
            return {}
        pipeline = [
            {"$match": {"conversation_id": {"$in": conversation_ids}, "receiver.user_id": user_id, "read_at": None}},
            {"$group": {"_id": "$conversation_id", "count": {"$sum": 1}}},
        ]
        rows = await self.messages.aggregate(pipeline).to_list(length=None)
        return {row["_id"]: row["count"] for row in rows}

    @staticmethod
    def _serialize(doc: Dict[str, Any]) -> Dict[str, Any]:
        return stringify_ids(doc, "last_message")
