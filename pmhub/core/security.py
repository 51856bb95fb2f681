"""
JWT helpers shared by the HTTP dependencies and the websocket handshake.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from pmhub.core.config import Settings, settings as default_settings


def create_access_token(
    subject: str,
    expires_delta: Optional[timedelta] = None,
    extra_claims: Optional[Dict[str, Any]] = None,
    settings: Optional[Settings] = None,
) -> str:
    cfg = settings or default_settings
    now = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(minutes=cfg.ACCESS_TOKEN_EXPIRE_MINUTES)

    payload: Dict[str, Any] = {"sub": str(subject), "iat": now, "exp": now + expires_delta}
    if extra_claims:
        payload.update(extra_claims)
    return jwt.encode(payload, cfg.SECRET_KEY, algorithm=cfg.ALGORITHM)


def decode_access_token(token: str, settings: Optional[Settings] = None) -> Dict[str, Any]:
    """
    Verify signature and expiry.

    Raises jwt.ExpiredSignatureError / jwt.InvalidTokenError; callers map
    these to their own error type.
    """
    cfg = settings or default_settings
    return jwt.decode(
        token,
        cfg.SECRET_KEY,
        algorithms=[cfg.ALGORITHM],
        options={"require": ["sub", "exp"]},
    )
