from datetime import datetime
from typing import List, Literal, Optional, TypedDict

from bson import ObjectId


MediaKind = Literal["image", "video"]


class MediaDocument(TypedDict):
    url: str
    kind: MediaKind


class ReadReceiptDocument(TypedDict):
    user_id: str
    read_at: datetime


class MessageDocument(TypedDict, total=False):
    _id: ObjectId
    sender_id: str
    # ordered set, never contains sender_id
    recipients: List[str]
    content: Optional[str]
    media: Optional[MediaDocument]
    is_group_message: bool
    created_at: datetime
    # append-only, unique by user_id
    read_by: List[ReadReceiptDocument]
