"""Password hashing and JWT session tokens."""
import datetime
from typing import Any, Dict, Optional

import bcrypt
from fastapi import Header, HTTPException
from jose import JWTError, jwt

from .config import settings

# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES: int = 72


def _password_bytes(password: str) -> bytes:
    return password.encode('utf-8')[:MAX_PASSWORD_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode('utf-8')


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(password), hashed.encode('utf-8'))
    except ValueError:
        return False


def create_token(user_id: str, expires_delta: Optional[datetime.timedelta] = None) -> str:
    """Sign a token carrying ``userId``.

    Args:
        user_id: The user's id.
        expires_delta: Lifetime of the token. Defaults to the session lifetime.
    """
    if expires_delta is None:
        expires_delta = datetime.timedelta(days=settings.TOKEN_EXPIRE_DAYS)
    payload = {
        'userId': str(user_id),
        'exp': datetime.datetime.now(datetime.timezone.utc) + expires_delta,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """Verify a token and return its claims.

    Raises:
        JWTError: If the token is malformed, expired or wrongly signed.
    """
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])


def get_current_user_id(authorization: Optional[str] = Header(None)) -> str:
    """FastAPI dependency resolving the bearer token to a user id.

    Raises:
        HTTPException: 401 if the token is missing or invalid.
    """
    token = None
    if authorization:
        parts = authorization.split(' ')
        if len(parts) == 2 and parts[0].lower() == 'bearer':
            token = parts[1]
    if not token:
        raise HTTPException(status_code=401, detail='No token provided')

    try:
        claims = decode_token(token)
    except JWTError:
        raise HTTPException(status_code=401, detail='Invalid token')

    user_id = claims.get('userId')
    if not user_id:
        raise HTTPException(status_code=401, detail='Invalid token')
    return str(user_id)
