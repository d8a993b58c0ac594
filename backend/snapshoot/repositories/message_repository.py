import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from snapshoot.exceptions.base import NotFoundError, StorageError, ValidationError
from snapshoot.models.message import MediaDocument, MessageDocument
from snapshoot.utils.clock import MonotonicClock, as_utc, message_clock, utc_now_ms


logger = logging.getLogger(__name__)

MEDIA_KINDS = ("image", "video")
NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except PyMongoError as exc:
        logger.error("messages.%s failed: %s", operation, exc)
        raise StorageError() from exc


def serialize_message(doc: MessageDocument) -> Dict[str, Any]:
    return {
        "id": str(doc["_id"]),
        "sender_id": doc["sender_id"],
        "recipients": list(doc.get("recipients", [])),
        "content": doc.get("content"),
        "media": doc.get("media"),
        "is_group_message": bool(doc.get("is_group_message", False)),
        "created_at": as_utc(doc["created_at"]),
        "read_by": [
            {"user_id": r["user_id"], "read_at": as_utc(r["read_at"])}
            for r in doc.get("read_by", [])
        ],
    }


def _normalize_recipients(sender_id: str, recipients: Iterable[str], is_group: bool) -> List[str]:
    ordered: List[str] = []
    for recipient in recipients or []:
        if not isinstance(recipient, str) or not recipient.strip():
            raise ValidationError("Recipient ids must be non-empty strings", fields=["recipients"])
        recipient = recipient.strip()
        if recipient == sender_id:
            raise ValidationError("Cannot send a message to yourself", fields=["recipients"])
        if recipient not in ordered:
            ordered.append(recipient)
    if not ordered:
        raise ValidationError("At least one recipient is required", fields=["recipients"])
    if not is_group and len(ordered) != 1:
        raise ValidationError("A direct message has exactly one recipient", fields=["recipients"])
    return ordered


def _normalize_media(media: Optional[Dict[str, Any]]) -> Optional[MediaDocument]:
    if not media:
        return None
    url, kind = media.get("url"), media.get("kind")
    if not url and not kind:
        return None
    if not url or not kind:
        raise ValidationError("mediaUrl and mediaType must be given together", fields=["mediaUrl", "mediaType"])
    if kind not in MEDIA_KINDS:
        raise ValidationError(f"mediaType must be one of {', '.join(MEDIA_KINDS)}", fields=["mediaType"])
    return {"url": url, "kind": kind}


def _to_object_id(message_id: str) -> ObjectId:
    if isinstance(message_id, ObjectId):
        return message_id
    if not ObjectId.is_valid(message_id):
        raise NotFoundError("Message not found", fields=["messageId"])
    return ObjectId(message_id)


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase, clock: Optional[MonotonicClock] = None) -> None:
        self._db = db
        self._clock = clock or message_clock

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        with storage_errors("ensure_indexes"):
            await self.collection.create_index([("sender_id", ASCENDING), ("created_at", DESCENDING)])
            await self.collection.create_index([("recipients", ASCENDING), ("created_at", DESCENDING)])

    async def create(
        self,
        sender_id: str,
        recipients: Iterable[str],
        content: Optional[str] = None,
        media: Optional[Dict[str, Any]] = None,
        is_group: bool = False,
    ) -> Dict[str, Any]:
        if not sender_id:
            raise ValidationError("Sender is required", fields=["sender"])
        ordered = _normalize_recipients(sender_id, recipients, is_group)
        media_doc = _normalize_media(media)
        text = content.strip() if isinstance(content, str) else None
        if not text and media_doc is None:
            raise ValidationError("Message needs content or media", fields=["content"])

        created_at = self._clock.now()
        doc: MessageDocument = {
            "sender_id": sender_id,
            "recipients": ordered,
            "content": text or None,
            "media": media_doc,
            "is_group_message": is_group,
            "created_at": created_at,
            # the author has read their own message
            "read_by": [{"user_id": sender_id, "read_at": created_at}],
        }
        with storage_errors("create"):
            result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        logger.debug("Stored message %s from %s to %s", doc["_id"], sender_id, ordered)
        return serialize_message(doc)

    async def get(self, message_id: str) -> Dict[str, Any]:
        oid = _to_object_id(message_id)
        with storage_errors("get"):
            doc = await self.collection.find_one({"_id": oid})
        if not doc:
            raise NotFoundError("Message not found", fields=["messageId"])
        return serialize_message(doc)

    async def mark_read(self, message_id: str, user_id: str) -> bool:
        """
        Add a read receipt for `user_id`. Returns True when a receipt was added,
        False when the user had already read the message.
        """
        oid = _to_object_id(message_id)
        with storage_errors("mark_read"):
            # the $ne guard makes the push idempotent and atomic per document
            result = await self.collection.update_one(
                {"_id": oid, "read_by.user_id": {"$ne": user_id}},
                {"$push": {"read_by": {"user_id": user_id, "read_at": utc_now_ms()}}},
            )
            if result.matched_count:
                return True
            existing = await self.collection.find_one({"_id": oid}, {"_id": 1})
        if not existing:
            raise NotFoundError("Message not found", fields=["messageId"])
        return False

    async def find_conversation_between(self, user_a: str, user_b: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        query = {
            "$or": [
                {"sender_id": user_a, "recipients": user_b},
                {"sender_id": user_b, "recipients": user_a},
            ]
        }
        return await self._find(query, "find_conversation_between", limit)

    async def find_unread_for(self, user_id: str, from_user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {"recipients": user_id, "read_by.user_id": {"$ne": user_id}}
        if from_user_id:
            query["sender_id"] = from_user_id
        return await self._find(query, "find_unread_for")

    async def find_all_involving(self, user_id: str) -> List[Dict[str, Any]]:
        query = {"$or": [{"sender_id": user_id}, {"recipients": user_id}]}
        return await self._find(query, "find_all_involving")

    async def _find(self, query: Dict[str, Any], operation: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        with storage_errors(operation):
            cursor = self.collection.find(query).sort(NEWEST_FIRST)
            if limit:
                cursor = cursor.limit(limit)
            items = await cursor.to_list(length=limit)
        return [serialize_message(it) for it in items]
