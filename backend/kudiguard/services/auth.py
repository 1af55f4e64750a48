from __future__ import annotations

import logging
import os
from typing import Dict, Optional

from fastapi import Header
from jose import JWTError, jwt

from kudiguard.errors import AuthError

logger = logging.getLogger(__name__)


def _get_env(name: str, default: str = "") -> str:
    value = os.getenv(name)
    if value is not None:
        return str(value)
    # Fallback for BOM-prefixed key names in malformed .env files.
    bom_value = os.getenv(f"\ufeff{name}")
    if bom_value is not None:
        return str(bom_value)
    return default


class AuthSettings:
    def __init__(self) -> None:
        self.jwt_secret = _get_env("SUPABASE_JWT_SECRET", "").strip()
        self.audience = _get_env("SUPABASE_JWT_AUDIENCE", "authenticated").strip()
        self.dev_bypass = _get_env("DEV_BYPASS_AUTH", "false").lower() == "true"
        self.dev_user_id = _get_env("DEV_USER_ID", "demo-user").strip() or "demo-user"


def verify_jwt(authorization: Optional[str]) -> Dict:
    settings = AuthSettings()
    if settings.dev_bypass:
        return {"sub": settings.dev_user_id, "email": "demo@kudiguard.local"}

    if not authorization:
        raise AuthError("Missing token")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthError("Invalid token format")

    if not settings.jwt_secret:
        logger.error("auth_misconfigured reason=missing_jwt_secret")
        raise AuthError()

    try:
        claims = jwt.decode(
            parts[1],
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.audience or None,
            options={"verify_aud": bool(settings.audience)},
        )
    except JWTError as exc:
        logger.info("auth_rejected reason=%s", type(exc).__name__)
        raise AuthError("Invalid or expired token") from exc

    if not claims.get("sub"):
        raise AuthError("Token has no subject")
    return claims


def current_user(authorization: Optional[str] = Header(None)) -> Dict:
    return verify_jwt(authorization)
