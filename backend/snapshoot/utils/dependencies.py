import jwt
from fastapi import Depends, HTTPException, status
from fastapi.requests import HTTPConnection
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from snapshoot.database.connection import mongo_db_dependency
from snapshoot.repositories.message_repository import MessageRepository
from snapshoot.repositories.user_repository import UserRepository
from snapshoot.services.chat_service import ChatService
from snapshoot.services.delivery_router import DeliveryRouter
from snapshoot.utils.presence_registry import PresenceRegistry
from snapshoot.utils.security import decode_access_token


bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)) -> dict:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return {"_id": payload["sub"]}


# HTTPConnection covers both HTTP requests and WebSockets
def get_presence_registry(connection: HTTPConnection) -> PresenceRegistry:
    return connection.app.state.presence


def get_chat_service(db = Depends(mongo_db_dependency)) -> ChatService:
    return ChatService(MessageRepository(db), UserRepository(db))


def get_delivery_router(db = Depends(mongo_db_dependency), presence: PresenceRegistry = Depends(get_presence_registry)) -> DeliveryRouter:
    return DeliveryRouter(MessageRepository(db), presence)
