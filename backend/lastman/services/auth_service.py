"""Identity verification for requests.

Tokens are issued by the account service; this side only verifies them and
exposes the caller as ``{"_id": <user id>}``.
"""

import logging

import jwt
from fastapi import HTTPException, Request, status
from jwt.exceptions import InvalidTokenError as JWTError

from lastman.config import settings

logger = logging.getLogger("lastman.auth")

ALGORITHM = "HS256"


def decode_jwt(token: str) -> dict:
    """Decode a JWT, trying the current secret first, then the old one.

    This allows zero-downtime rotation of JWT_SECRET: set JWT_SECRET to the
    new value and JWT_SECRET_OLD to the previous one until old tokens expire.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM])
    except JWTError:
        if settings.JWT_SECRET_OLD:
            return jwt.decode(token, settings.JWT_SECRET_OLD, algorithms=[ALGORITHM])
        raise


def token_from_request(request: Request) -> str | None:
    """Bearer header wins over the access_token cookie."""
    header = request.headers.get("authorization") or ""
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
        if token:
            return token
    return request.cookies.get("access_token")


async def get_current_user(request: Request) -> dict:
    """FastAPI dependency: extract and validate the caller from an access token."""
    token = token_from_request(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated.",
        )

    try:
        payload = decode_jwt(token)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token.",
        )

    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type.",
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token.",
        )

    request.state.user_id = str(user_id)
    return {"_id": str(user_id), "name": payload.get("name")}
