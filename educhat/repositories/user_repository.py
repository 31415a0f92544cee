from typing import Any, Dict, Iterable

from motor.motor_asyncio import AsyncIOMotorDatabase

from educhat.models.participant import UserProfile
from educhat.utils.mongo import to_object_id


# display fields inlined when a participant is expanded
PROFILE_PROJECTION = {
    "full_name": 1,
    "name": 1,
    "username": 1,
    "email": 1,
    "profile_picture": 1,
    "image": 1,
}


class UserRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("users")

    async def get_profiles(self, user_ids: Iterable[Any]) -> Dict[str, UserProfile]:
        ids = {str(u) for u in user_ids if u}
        if not ids:
            return {}
        # user ids arrive as strings from the auth context; users may be keyed by either form
        keys: list[Any] = list(ids)
        keys.extend(oid for oid in (to_object_id(u) for u in ids) if oid is not None)
        profiles: Dict[str, UserProfile] = {}
        async for doc in self._collection.find({"_id": {"$in": keys}}, PROFILE_PROJECTION):
            doc["_id"] = str(doc["_id"])
            profiles[doc["_id"]] = doc
        return profiles
