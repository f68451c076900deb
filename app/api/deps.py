# app/api/deps.py
import logging
from typing import Optional

from fastapi import Header, Request
from jose import JWTError, jwt
from pydantic import ValidationError as PydanticValidationError

from app.chat.coordinator import RoomCoordinator
from app.core.config import settings
from app.core.exceptions import AuthenticationError
from app.core.runtime import ChatRuntime
from app.schemas.token import TokenPayload
from app.services.message_log import MessageLog
from app.services.order_store import OrderStore

logger = logging.getLogger(__name__)


def decode_token(token: str) -> TokenPayload:
    """
    Decode and validate a JWT issued by the user service.

    Raises:
        AuthenticationError: If the token is invalid, expired or malformed
    """
    # SECURITY: JWT_SECRET must be configured - fail closed, never open
    if not settings.JWT_SECRET:
        logger.critical("JWT_SECRET not configured; rejecting all tokens")
        raise AuthenticationError("Authentication system unavailable")

    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        return TokenPayload(**payload)
    except (JWTError, PydanticValidationError):
        raise AuthenticationError("Token is not valid")


def _extract_token(x_auth_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
    if x_auth_token:
        return x_auth_token
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token:
            return token.strip()
    return None


async def get_current_user(
    x_auth_token: Optional[str] = Header(None),
    authorization: Optional[str] = Header(None),
) -> TokenPayload:
    """Accepts ``x-auth-token: <jwt>`` or ``Authorization: Bearer <jwt>``."""
    token = _extract_token(x_auth_token, authorization)
    if not token:
        raise AuthenticationError()
    return decode_token(token)


def get_runtime(request: Request) -> ChatRuntime:
    return request.app.state.runtime


def get_order_store(request: Request) -> OrderStore:
    return get_runtime(request).order_store


def get_message_log(request: Request) -> MessageLog:
    return get_runtime(request).message_log


def get_coordinator(request: Request) -> RoomCoordinator:
    return get_runtime(request).coordinator
