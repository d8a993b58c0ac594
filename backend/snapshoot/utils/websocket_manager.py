import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder


logger = logging.getLogger(__name__)


class DeliveryFailed(Exception):
    """A frame could not be written to a connection within the push timeout."""


class WebSocketConnection:
    """
    Handle for one live socket. The registry stores these, and two handles are
    the same connection only if their `connection_id` matches.
    """

    def __init__(self, websocket: WebSocket, send_timeout: float = 5.0) -> None:
        self.websocket = websocket
        self.connection_id = uuid.uuid4().hex
        self.user_id: Optional[str] = None
        self._send_timeout = send_timeout

    def __repr__(self) -> str:
        return f"<WebSocketConnection {self.connection_id} user={self.user_id}>"

    async def accept(self) -> None:
        await self.websocket.accept()

    async def send_event(self, event_type: str, **fields: Any) -> None:
        payload: Dict[str, Any] = {"type": event_type, **fields}
        try:
            await asyncio.wait_for(self.websocket.send_json(jsonable_encoder(payload)), timeout=self._send_timeout)
        except asyncio.TimeoutError as exc:
            raise DeliveryFailed(f"send to {self.connection_id} timed out") from exc
        except (RuntimeError, OSError, WebSocketDisconnect) as exc:
            # RuntimeError after a close was sent, OSError / WebSocketDisconnect once the peer is gone
            raise DeliveryFailed(f"send to {self.connection_id} failed: {exc}") from exc

    async def close(self, code: int = 1011) -> None:
        """Best-effort close; the peer may already be gone."""
        try:
            await asyncio.wait_for(self.websocket.close(code=code), timeout=self._send_timeout)
        except (asyncio.TimeoutError, RuntimeError, OSError, WebSocketDisconnect) as exc:
            logger.debug("Close of %s ignored: %s", self.connection_id, exc)
