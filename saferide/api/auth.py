"""
Bearer-token identity.

Accounts and sessions are managed elsewhere; this service only verifies
HS256 JWTs signed with the shared secret and reads the user id from
``sub``.  A request without a token resolves to an anonymous identity,
and the services raise ``AuthenticationError`` for anything that needs
a user.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from saferide.config import settings
from saferide.domain.errors import AuthenticationError
from saferide.domain.ports import IdentityProvider

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(user_id: str, expires_minutes: Optional[int] = None) -> str:
    """Sign a JWT with the configured secret (HS256)."""
    claims: dict = {"sub": user_id}
    if expires_minutes is not None:
        claims["exp"] = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


class TokenIdentity(IdentityProvider):
    def __init__(self, user_id: Optional[str]):
        self.user_id = user_id

    def current_user_id(self) -> Optional[str]:
        return self.user_id


async def get_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> TokenIdentity:
    """Decode and validate the JWT Bearer token, if one was sent."""
    if credentials is None:
        return TokenIdentity(None)
    try:
        claims = jwt.decode(
            credentials.credentials,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as exc:
        raise AuthenticationError("Invalid or expired token") from exc
    return TokenIdentity(claims.get("sub"))
