from fastapi import APIRouter, Depends

from snapshoot.utils.dependencies import get_current_user, get_presence_registry
from snapshoot.utils.presence_registry import PresenceRegistry


router = APIRouter(prefix="/presence", tags=["chat"])


@router.get("/{user_id}")
async def presence(user_id: str, current_user: dict = Depends(get_current_user), registry: PresenceRegistry = Depends(get_presence_registry)):
    """
    Online status from this process's presence registry.
    """
    return {"user_id": user_id, "online": await registry.is_online(user_id)}
