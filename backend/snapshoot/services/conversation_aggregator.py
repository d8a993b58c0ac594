"""
Fold a user's message feed into one conversation summary per peer.

The feed must be newest first (as returned by
`MessageRepository.find_all_involving`), so the first message seen for a peer
is that conversation's latest message and later ones are ignored.

Two behaviours are kept on purpose:
  - when the viewer sent the message the peer is `recipients[0]`, which for
    group messages attributes the conversation to the first group member;
  - `unread_count` only looks at the latest message, so it is 0 or 1.
"""

from typing import Any, Dict, Iterable, List

from snapshoot.models.conversation import ConversationSummary


def peer_of(message: Dict[str, Any], user_id: str) -> str:
    if message["sender_id"] != user_id:
        return message["sender_id"]
    return message["recipients"][0]


def has_read(message: Dict[str, Any], user_id: str) -> bool:
    return any(r["user_id"] == user_id for r in message.get("read_by", []))


def aggregate_conversations(messages: Iterable[Dict[str, Any]], user_id: str) -> List[ConversationSummary]:
    conversations: Dict[str, ConversationSummary] = {}
    for message in messages:
        peer = peer_of(message, user_id)
        if peer in conversations:
            continue
        conversations[peer] = {
            "id": peer,
            "participants": [{"id": peer, "username": None, "profile_picture": None}],
            "last_message": {
                "content": message.get("content"),
                "created_at": message["created_at"],
                "sender_id": message["sender_id"],
                "is_group_message": bool(message.get("is_group_message", False)),
            },
            "unread_count": 0 if has_read(message, user_id) else 1,
        }
    # dicts keep insertion order, i.e. recency of each peer's latest message
    return list(conversations.values())
