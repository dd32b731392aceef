"""Bearer token verification.

Callers present a JWT issued by the platform's auth service. Only the
signature, expiry, audience, and ``sub`` claim are trusted; any role claim in
the token is ignored because roles are re-resolved from ``profiles`` on every
request.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from credbroker.config import Settings
from credbroker.errors import Unauthorized


@dataclass(frozen=True)
class Caller:
    """Verified caller identity."""

    user_id: str


def verify_token(token: str, settings: Settings) -> Caller:
    """Verify a bearer JWT and return the caller it identifies.

    Raises:
        Unauthorized: If the token is empty, badly signed, expired, issued
            for another audience, or lacks a subject.
    """
    if not token or not settings.jwt_secret:
        raise Unauthorized()

    options = {"verify_aud": bool(settings.jwt_audience)}
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience or None,
            options=options,
        )
    except JWTError as exc:
        raise Unauthorized() from exc

    subject = payload.get("sub")
    if not subject:
        raise Unauthorized()
    return Caller(user_id=str(subject))


def create_access_token(
    user_id: str,
    settings: Settings,
    expires_delta: timedelta = timedelta(hours=1),
) -> str:
    """Issue a token in the platform's format (local tooling and tests)."""
    claims = {
        "sub": user_id,
        "exp": datetime.now(timezone.utc) + expires_delta,
    }
    if settings.jwt_audience:
        claims["aud"] = settings.jwt_audience
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)
