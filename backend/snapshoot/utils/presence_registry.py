import asyncio
import logging
from typing import Dict, List, Optional, Protocol


logger = logging.getLogger(__name__)


class ConnectionHandle(Protocol):
    connection_id: str
    user_id: Optional[str]


class PresenceRegistry:
    """
    Process-lifetime map of which user is reachable on which connection.

    The primary table is keyed by connection id, with a user -> connection id
    index next to it. Both are only touched under one lock, so a disconnect
    racing a reconnect for the same user cannot drop the newer entry.
    """

    def __init__(self) -> None:
        self._connections: Dict[str, ConnectionHandle] = {}
        self._by_user: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._by_user)

    async def register(self, user_id: str, connection: ConnectionHandle) -> Optional[ConnectionHandle]:
        """Make `connection` the user's live entry. Returns the displaced handle, if any."""
        async with self._lock:
            previous_id = self._by_user.get(user_id)
            previous = None
            if previous_id is not None and previous_id != connection.connection_id:
                previous = self._connections.pop(previous_id, None)
            # same socket re-identifying as someone else
            former_user = connection.user_id
            if former_user not in (None, user_id) and self._by_user.get(former_user) == connection.connection_id:
                del self._by_user[former_user]
            connection.user_id = user_id
            self._connections[connection.connection_id] = connection
            self._by_user[user_id] = connection.connection_id
        if previous is not None:
            logger.info("User %s replaced connection %s with %s", user_id, previous_id, connection.connection_id)
        return previous

    async def lookup(self, user_id: str) -> Optional[ConnectionHandle]:
        async with self._lock:
            connection_id = self._by_user.get(user_id)
            if connection_id is None:
                return None
            return self._connections.get(connection_id)

    async def unregister(self, connection: ConnectionHandle) -> Optional[str]:
        """
        Drop the entry stored for this exact connection. Returns the user that
        went offline, or None when the handle was unknown or already replaced.
        """
        async with self._lock:
            stored = self._connections.pop(connection.connection_id, None)
            if stored is None:
                return None
            user_id = stored.user_id
            if user_id is not None and self._by_user.get(user_id) == connection.connection_id:
                del self._by_user[user_id]
                return user_id
            return None

    async def is_online(self, user_id: str) -> bool:
        return await self.lookup(user_id) is not None

    async def online_user_ids(self) -> List[str]:
        async with self._lock:
            return list(self._by_user)
