"""
Handshake authentication for realtime connections.

The bearer token travels in the connection handshake (query string), not in
an Authorization header. Any failure rejects the attempt before the
connection is registered.
"""
import logging
from typing import Any, Awaitable, Callable, Optional

import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pmhub.core.config import Settings
from pmhub.core.security import decode_access_token
from pmhub.repositories.user_repository import UserRepository
from pmhub.schemas.user import Identity

logger = logging.getLogger(__name__)

UserLookup = Callable[[str], Awaitable[Optional[Any]]]


class AuthenticationError(Exception):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


def db_user_lookup(session_factory: async_sessionmaker[AsyncSession]) -> UserLookup:
    async def lookup(user_id: str):
        async with session_factory() as session:
            return await UserRepository(session).get(user_id)

    return lookup


class AuthenticationGate:
    def __init__(self, user_lookup: UserLookup, settings: Settings):
        self.user_lookup = user_lookup
        self.settings = settings

    async def authenticate(self, token: Optional[str]) -> Identity:
        if not token:
            raise AuthenticationError("Authentication error: No token provided")

        try:
            claims = decode_access_token(token, self.settings)
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Authentication error: Token expired")
        except jwt.InvalidTokenError:
            raise AuthenticationError("Authentication error: Invalid token")

        try:
            user = await self.user_lookup(str(claims["sub"]))
        except Exception as e:
            logger.error(f"User lookup failed during handshake: {e}")
            raise AuthenticationError("Authentication error")

        if user is None:
            raise AuthenticationError("Authentication error: User not found")
        if not getattr(user, "is_active", True):
            raise AuthenticationError("Authentication error: User inactive")

        return Identity(
            id=str(user.id),
            name=user.name,
            email=user.email,
            avatar=getattr(user, "avatar", None),
        )
