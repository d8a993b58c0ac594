from typing import Any, Dict, List, Optional

from snapshoot.repositories.message_repository import MessageRepository
from snapshoot.repositories.user_repository import UserRepository
from snapshoot.models.conversation import ConversationSummary
from snapshoot.services.conversation_aggregator import aggregate_conversations


class ChatService:
    """Pull side of messaging: history, unread catch-up, receipts, conversation list."""

    def __init__(self, message_repo: MessageRepository, user_repo: UserRepository) -> None:
        self._message_repo = message_repo
        self._user_repo = user_repo

    async def get_history(self, user_id: str, other_user_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return await self._message_repo.find_conversation_between(user_id, other_user_id, limit=limit)

    async def get_unread(self, user_id: str, from_user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return await self._message_repo.find_unread_for(user_id, from_user_id)

    async def mark_read(self, message_id: str, user_id: str) -> bool:
        return await self._message_repo.mark_read(message_id, user_id)

    async def list_conversations(self, user_id: str) -> List[ConversationSummary]:
        messages = await self._message_repo.find_all_involving(user_id)
        conversations = aggregate_conversations(messages, user_id)
        profiles = await self._user_repo.get_profiles(c["id"] for c in conversations)
        for convo in conversations:
            convo["participants"] = [profiles.get(p["id"], p) for p in convo["participants"]]
        return conversations
