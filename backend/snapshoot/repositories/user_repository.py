from typing import Dict, Iterable, List

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from snapshoot.exceptions.base import StorageError
from snapshoot.models.conversation import ParticipantSummary

PROFILE_FIELDS = {"username": 1, "profile_picture": 1}


class UserRepository:
    """Read-only view of the user directory, used to label conversations."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("users")

    async def get_profiles(self, user_ids: Iterable[str]) -> Dict[str, ParticipantSummary]:
        # ids that are not ObjectIds cannot belong to a stored user
        ids: List[str] = [u for u in dict.fromkeys(user_ids) if ObjectId.is_valid(u)]
        if not ids:
            return {}
        try:
            cursor = self._collection.find({"_id": {"$in": [ObjectId(u) for u in ids]}}, PROFILE_FIELDS)
            docs = await cursor.to_list(length=len(ids))
        except PyMongoError as exc:
            raise StorageError() from exc
        profiles: Dict[str, ParticipantSummary] = {}
        for doc in docs:
            user_id = str(doc["_id"])
            profiles[user_id] = {
                "id": user_id,
                "username": doc.get("username"),
                "profile_picture": doc.get("profile_picture"),
            }
        return profiles
