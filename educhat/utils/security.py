import time
from typing import Any, Dict

import jwt

from educhat.config import Config


def create_access_token(user_id: str, role: str, expires_in: int | None = None) -> str:
    now = int(time.time())
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + (expires_in if expires_in is not None else Config.JWT_EXPIRE_MINUTES * 60),
    }
    return jwt.encode(payload, Config.JWT_SECRET, algorithm=Config.JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Raises jwt.InvalidTokenError (or a subclass) for bad or expired tokens."""
    return jwt.decode(token, Config.JWT_SECRET, algorithms=[Config.JWT_ALGORITHM])
