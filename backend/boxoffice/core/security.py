"""
Password hashing (bcrypt) and bearer-token authentication (PyJWT).
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from boxoffice.core.config import get_settings
from boxoffice.core.exceptions import Unauthorized
from boxoffice.core.owner import Owner

MIN_BCRYPT_ROUNDS = 10

bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    settings = get_settings()
    cost = max(rounds or settings.BCRYPT_ROUNDS, MIN_BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=cost))
    return hashed.decode("utf-8")


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    settings = get_settings()
    payload = dict(data)
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload["exp"] = int(expire.timestamp())
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError:
        raise Unauthorized("Invalid or expired token")


async def get_current_owner(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Owner:
    if credentials is None:
        raise Unauthorized()
    payload = decode_access_token(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id:
        raise Unauthorized("Invalid token subject")
    return Owner.user(str(user_id), role=payload.get("role", "customer"))
