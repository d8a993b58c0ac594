import json
import logging
from typing import Any, Dict, Optional

import jwt
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError as PayloadError

from snapshoot.core.config import get_settings
from snapshoot.exceptions.base import MessagingError
from snapshoot.schemas.message import MarkReadRequest, MessageList, MessageOut, SendGroupMessageRequest, SendMessageRequest
from snapshoot.services.chat_service import ChatService
from snapshoot.services.delivery_router import DeliveryRouter
from snapshoot.utils.dependencies import get_chat_service, get_current_user, get_delivery_router, get_presence_registry
from snapshoot.utils.presence_registry import PresenceRegistry
from snapshoot.utils.security import decode_access_token
from snapshoot.utils.websocket_manager import DeliveryFailed, WebSocketConnection


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["chat"])


@router.post("/send", status_code=status.HTTP_201_CREATED, response_model=MessageOut)
async def send_message(body: SendMessageRequest, current_user: dict = Depends(get_current_user), delivery: DeliveryRouter = Depends(get_delivery_router)):
    report = await delivery.send_direct(current_user["_id"], body)
    return report.message


@router.post("/group/send", status_code=status.HTTP_201_CREATED, response_model=MessageOut)
async def send_group_message(body: SendGroupMessageRequest, current_user: dict = Depends(get_current_user), delivery: DeliveryRouter = Depends(get_delivery_router)):
    report = await delivery.send_group(current_user["_id"], body)
    return report.message


@router.get("/conversation/{user_id}", response_model=MessageList)
async def get_conversation(user_id: str, limit: Optional[int] = Query(None, ge=1, le=500), current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    messages = await service.get_history(current_user["_id"], user_id, limit=limit)
    return {"messages": messages}


@router.get("/unread", response_model=MessageList)
async def get_unread(from_user_id: Optional[str] = None, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    messages = await service.get_unread(current_user["_id"], from_user_id)
    return {"messages": messages}


@router.put("/read/{message_id}")
async def mark_read(message_id: str, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    await service.mark_read(message_id, current_user["_id"])
    return {"message": "Message marked as read"}


async def _emit(connection: WebSocketConnection, event_type: str, **fields: Any) -> None:
    try:
        await connection.send_event(event_type, **fields)
    except DeliveryFailed as exc:
        logger.warning("Dropping %s event for %s: %s", event_type, connection, exc)


async def _handle_identify(connection: WebSocketConnection, msg: Dict[str, Any], auth_user_id: str, presence: PresenceRegistry) -> None:
    user_id = msg.get("userId")
    if not user_id:
        await _emit(connection, "error", message="userId is required")
        return
    if user_id != auth_user_id:
        await _emit(connection, "error", message="userId does not match the authenticated user")
        return
    await presence.register(user_id, connection)
    logger.info("User %s connected on %s", user_id, connection.connection_id)
    await _emit(connection, "connection_confirmed", userId=user_id, connectionId=connection.connection_id)


async def _handle_send(connection: WebSocketConnection, msg: Dict[str, Any], delivery: DeliveryRouter, group: bool) -> None:
    if connection.user_id is None:
        await _emit(connection, "message_error", error="Send user_connected before sending messages", code="invalid_input")
        return
    try:
        if group:
            request = SendGroupMessageRequest.model_validate(msg)
        else:
            request = SendMessageRequest.model_validate(msg)
    except PayloadError as exc:
        fields = [".".join(str(p) for p in err["loc"]) for err in exc.errors()]
        await _emit(connection, "message_error", error="Invalid message payload", code="invalid_input", fields=fields)
        return
    try:
        if group:
            await delivery.send_group(connection.user_id, request, reply_to=connection)
        else:
            await delivery.send_direct(connection.user_id, request, reply_to=connection)
    except MessagingError as exc:
        # the router has already told the sender
        logger.info("Realtime send from %s rejected: %s", connection.user_id, exc)


async def _handle_mark_read(connection: WebSocketConnection, msg: Dict[str, Any], service: ChatService) -> None:
    if connection.user_id is None:
        await _emit(connection, "error", message="Send user_connected first")
        return
    try:
        request = MarkReadRequest.model_validate(msg)
    except PayloadError:
        request = MarkReadRequest()
    if not request.message_id:
        await _emit(connection, "error", message="messageId is required")
        return
    try:
        await service.mark_read(request.message_id, connection.user_id)
    except MessagingError as exc:
        await _emit(connection, "error", message=exc.message, code=exc.code)
        return
    await _emit(connection, "message_read", messageId=request.message_id)


@router.websocket("/ws")
async def chat_socket(
    websocket: WebSocket,
    delivery: DeliveryRouter = Depends(get_delivery_router),
    service: ChatService = Depends(get_chat_service),
    presence: PresenceRegistry = Depends(get_presence_registry),
):
    # JWT protects the socket: token comes in the query string (?token=...)
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=4401)
        return
    try:
        auth_user_id = decode_access_token(token)["sub"]
    except jwt.InvalidTokenError:
        await websocket.close(code=4401)
        return

    connection = WebSocketConnection(websocket, send_timeout=get_settings().PUSH_TIMEOUT_SECONDS)
    await connection.accept()
    logger.debug("Socket %s opened", connection.connection_id)

    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(frame.get("code", 1000))
            data = frame.get("text")
            if data is None:
                await _emit(connection, "error", message="Binary frames are not supported")
                continue
            try:
                msg = json.loads(data)
            except ValueError:
                await _emit(connection, "error", message="Malformed JSON payload")
                continue
            if not isinstance(msg, dict):
                await _emit(connection, "error", message="Payload must be a JSON object")
                continue

            event_type = msg.get("type")
            if event_type == "user_connected":
                await _handle_identify(connection, msg, auth_user_id, presence)
            elif event_type == "send_message":
                await _handle_send(connection, msg, delivery, group=False)
            elif event_type == "send_group_message":
                await _handle_send(connection, msg, delivery, group=True)
            elif event_type == "mark_read":
                await _handle_mark_read(connection, msg, service)
            else:
                await _emit(connection, "error", message=f"Unknown event type: {event_type}")
    except WebSocketDisconnect:
        pass
    finally:
        user_id = await presence.unregister(connection)
        if user_id:
            logger.info("User %s disconnected from %s", user_id, connection.connection_id)
