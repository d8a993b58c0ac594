import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from snapshoot.exceptions.base import MessagingError, UnreachableRecipientError, ValidationError
from snapshoot.repositories.message_repository import MessageRepository
from snapshoot.schemas.message import SendGroupMessageRequest, SendMessageRequest
from snapshoot.utils.presence_registry import PresenceRegistry
from snapshoot.utils.websocket_manager import DeliveryFailed, WebSocketConnection


logger = logging.getLogger(__name__)


@dataclass
class DeliveryReport:
    message: Dict[str, Any]
    delivered_to: List[str] = field(default_factory=list)
    pending: List[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        if not self.pending:
            return "delivered"
        if not self.delivered_to:
            return "recipient_offline"
        return "partially_delivered"


class DeliveryRouter:
    """
    Persist-then-push for both the REST and the WebSocket send paths.

    The message is always stored first. Pushing is best effort: a recipient
    that is offline, or whose socket fails mid-send, picks the message up later
    through the unread/conversation queries. The sender's connection is told
    which of delivered / recipient offline / rejected happened.
    """

    def __init__(self, message_repo: MessageRepository, presence: PresenceRegistry) -> None:
        self._messages = message_repo
        self._presence = presence

    async def send_direct(
        self,
        sender_id: str,
        request: SendMessageRequest,
        reply_to: Optional[WebSocketConnection] = None,
    ) -> DeliveryReport:
        sender_conn = reply_to or await self._presence.lookup(sender_id)
        try:
            if not request.recipient_id:
                raise ValidationError("recipientId is required", fields=["recipientId"])
            message = await self._messages.create(
                sender_id,
                [request.recipient_id],
                content=request.content,
                media=request.media(),
                is_group=False,
            )
        except MessagingError as exc:
            await self._notify(sender_conn, "message_error", **exc.to_event())
            raise

        report = await self._fan_out(message)
        if report.delivered_to:
            await self._notify(sender_conn, "message_sent", messageId=message["id"], deliveredTo=report.delivered_to)
        else:
            unreachable = UnreachableRecipientError(request.recipient_id, message["id"])
            logger.info("Message %s stored, recipient %s not connected", message["id"], request.recipient_id)
            await self._notify(sender_conn, "message_error", **unreachable.to_event())
        return report

    async def send_group(
        self,
        sender_id: str,
        request: SendGroupMessageRequest,
        reply_to: Optional[WebSocketConnection] = None,
    ) -> DeliveryReport:
        sender_conn = reply_to or await self._presence.lookup(sender_id)
        try:
            if not request.recipient_ids:
                raise ValidationError("recipientIds must contain at least one user", fields=["recipientIds"])
            message = await self._messages.create(
                sender_id,
                request.recipient_ids,
                content=request.content,
                media=request.media(),
                is_group=True,
            )
        except MessagingError as exc:
            await self._notify(sender_conn, "message_error", **exc.to_event())
            raise

        report = await self._fan_out(message)
        await self._notify(
            sender_conn,
            "message_sent",
            messageId=message["id"],
            deliveredTo=report.delivered_to,
            pending=report.pending,
        )
        return report

    async def _fan_out(self, message: Dict[str, Any]) -> DeliveryReport:
        recipients = message["recipients"]
        outcomes: List[Tuple[str, bool]] = await asyncio.gather(
            *(self._push(recipient_id, message) for recipient_id in recipients)
        )
        report = DeliveryReport(message)
        for recipient_id, delivered in outcomes:
            (report.delivered_to if delivered else report.pending).append(recipient_id)
        return report

    async def _push(self, recipient_id: str, message: Dict[str, Any]) -> Tuple[str, bool]:
        connection = await self._presence.lookup(recipient_id)
        if connection is None:
            return recipient_id, False
        try:
            await connection.send_event("new_message", message=message)
        except DeliveryFailed as exc:
            # the socket is gone or stalled: drop and close it, the message waits in the store
            logger.warning("Push of %s to %s failed: %s", message["id"], recipient_id, exc)
            await self._presence.unregister(connection)
            await connection.close()
            return recipient_id, False
        return recipient_id, True

    async def _notify(self, connection: Optional[WebSocketConnection], event_type: str, **fields: Any) -> None:
        if connection is None:
            return
        try:
            await connection.send_event(event_type, **fields)
        except DeliveryFailed as exc:
            logger.warning("Could not notify %s of %s: %s", connection.user_id, event_type, exc)
            await self._presence.unregister(connection)
            await connection.close()
