from typing import Any, Dict

import jwt

from snapshoot.core.config import get_settings


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Verify a bearer token issued by the identity service and return its claims.
    Raises jwt.InvalidTokenError (or a subclass) for bad, expired or unsigned tokens.
    """
    settings = get_settings()
    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    if not payload.get("sub"):
        raise jwt.InvalidTokenError("token has no subject")
    return payload
