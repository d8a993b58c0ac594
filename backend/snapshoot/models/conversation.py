from datetime import datetime
from typing import List, Optional, TypedDict


class ParticipantSummary(TypedDict):
    id: str
    username: Optional[str]
    profile_picture: Optional[str]


class LastMessageSummary(TypedDict):
    content: Optional[str]
    created_at: datetime
    sender_id: str
    is_group_message: bool


class ConversationSummary(TypedDict):
    # keyed by the peer's id, relative to the viewing user
    id: str
    participants: List[ParticipantSummary]
    last_message: LastMessageSummary
    # 0 or 1: only the latest message is considered
    unread_count: int
