from datetime import datetime, timedelta, timezone

from fastapi import Header
from jose import JWTError, jwt

from marketmatch.config import settings
from marketmatch.core.exceptions import UnauthorizedError


def create_access_token(user_id: str, name: str) -> str:
    """Create a JWT token for a buyer or seller."""
    expire = datetime.now(timezone.utc) + timedelta(hours=settings.jwt_expire_hours)
    payload = {
        "sub": user_id,
        "name": name,
        "exp": expire,
        "iat": datetime.now(timezone.utc),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT token. Returns the payload."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise UnauthorizedError("Invalid or expired token")
    if payload.get("sub") is None:
        raise UnauthorizedError("Token missing subject")
    return payload


def get_current_user_id(authorization: str = Header(None)) -> str:
    """FastAPI dependency that extracts the user id from the Authorization header."""
    if not authorization:
        raise UnauthorizedError("Missing Authorization header")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise UnauthorizedError("Authorization header must be: Bearer <token>")

    payload = decode_token(parts[1])
    return payload["sub"]
