"""Verification of backend-issued access tokens."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from jwt.exceptions import PyJWTError

from valorwell.core.config import settings


class InvalidTokenError(Exception):
    pass


@dataclass(frozen=True)
class TokenClaims:
    user_id: str  # auth user UUID, equals profiles.id
    email: Optional[str]
    role: Optional[str]
    raw: Dict[str, Any]


def decode_access_token(token: str) -> TokenClaims:
    try:
        payload = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.SUPABASE_JWT_AUDIENCE,
        )
    except PyJWTError as e:
        raise InvalidTokenError(str(e)) from e

    subject = payload.get("sub")
    if not subject:
        raise InvalidTokenError("Token has no subject")

    return TokenClaims(
        user_id=str(subject),
        email=payload.get("email"),
        role=payload.get("role"),
        raw=payload,
    )


def create_access_token(user_id: str, email: Optional[str] = None, expires_delta: Optional[timedelta] = None) -> str:
    """Mint a token shaped like the backend's. Used by tests and local scripts."""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=1))
    to_encode = {
        "sub": user_id,
        "email": email,
        "role": "authenticated",
        "aud": settings.SUPABASE_JWT_AUDIENCE,
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.SUPABASE_JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
