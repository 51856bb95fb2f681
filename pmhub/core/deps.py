import logging
from typing import Optional

import jwt
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from pmhub.core.database import get_db
from pmhub.core.exceptions import BusinessException, ErrorCode
from pmhub.core.security import decode_access_token
from pmhub.realtime.hub import SyncHub
from pmhub.repositories.user_repository import UserRepository
from pmhub.schemas.user import Identity

logger = logging.getLogger(__name__)


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> Identity:
    """
    Resolve the Authorization bearer token to an Identity.
    - signature and expiry are verified
    - the subject must exist and be active
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise BusinessException(ErrorCode.UNAUTHORIZED)

    token = authorization[len("Bearer "):]
    try:
        claims = decode_access_token(token, request.app.state.settings)
    except jwt.ExpiredSignatureError:
        raise BusinessException(ErrorCode.TOKEN_EXPIRED)
    except jwt.InvalidTokenError as e:
        logger.warning(f"Token verification failed: {e}")
        raise BusinessException(ErrorCode.UNAUTHORIZED)

    user = await UserRepository(db).get(str(claims["sub"]))
    if not user:
        raise BusinessException(ErrorCode.USER_NOT_FOUND)
    if not user.is_active:
        raise BusinessException(ErrorCode.USER_INACTIVE)

    return Identity(id=user.id, name=user.name, email=user.email, avatar=user.avatar)


def get_sync_hub(request: Request) -> SyncHub:
    return request.app.state.sync_hub


def get_connection_id(x_connection_id: Optional[str] = Header(None)) -> Optional[str]:
    """Socket id of the caller, used to keep it out of the follow-up broadcast."""
    return x_connection_id
