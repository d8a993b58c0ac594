from fastapi import APIRouter, Depends

from snapshoot.schemas.message import ConversationList
from snapshoot.services.chat_service import ChatService
from snapshoot.utils.dependencies import get_chat_service, get_current_user


router = APIRouter(prefix="/conversations", tags=["chat"])


@router.get("", response_model=ConversationList)
async def list_conversations(current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    items = await service.list_conversations(current_user["_id"])
    return {"items": items}
