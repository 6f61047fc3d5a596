"""
auth/tokens.py -- Session token codec.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       the user id (sub), display name, auth provider, role set, issued-at
       and expiry. verify() raises TokenInvalid on any failure -- the
       dependency layer turns that into a 401.

  Stateless: there is no server-side token store and no revocation list. A
       token stops working when it expires or when its user is deleted (the
       resolver then reports a stale session).

  SECRET_KEY: a single static key for the process lifetime, handed to the
       codec by api/main.py:wire_components(). Settings rejects short keys.

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from jose import JWTError, jwt

from auth.models import Role, SessionClaims, User

logger = logging.getLogger("bookshelf.auth")

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ("sub", "roles", "iat", "exp")


class TokenInvalid(Exception):
    """Raised when a session token is tampered, malformed, or expired."""


class TokenCodec:
    """Issue and verify signed session tokens.

    Usage:
        codec = TokenCodec(settings.secret_key, expire_seconds=3600)
        token = codec.issue(user)
        claims = codec.verify(token)   # raises TokenInvalid
    """

    def __init__(self, secret_key: str, expire_seconds: int = 3600, algorithm: str = _ALGORITHM) -> None:
        if not secret_key:
            raise ValueError("TokenCodec requires a non-empty secret key")
        self._secret_key = secret_key
        self._algorithm = algorithm
        self.expire_seconds = expire_seconds

    def issue(self, user: User, expire_seconds: int | None = None) -> str:
        """Encode a signed JWT for the given user.

        Args:
            user:           A persisted user (id must be set).
            expire_seconds: Token lifetime. None uses the codec default; the
                            actuator token passes a longer value.
        """
        if user.id is None:
            raise ValueError("Cannot issue a token for a user without an id")
        duration = self.expire_seconds if expire_seconds is None else expire_seconds
        now = int(datetime.now(timezone.utc).timestamp())
        payload = {
            "sub": user.id,
            "name": user.full_name,
            "provider": user.auth_provider,
            "roles": sorted(role.value for role in user.roles),
            "iat": now,
            "exp": now + duration,
        }
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: str) -> SessionClaims:
        """Decode and verify a JWT, returning its claims.

        Raises TokenInvalid for a bad signature, an expired token, a token
        that is not a JWT at all, or a payload missing required claims.
        """
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except JWTError as exc:
            raise TokenInvalid(str(exc)) from exc

        missing = [claim for claim in _REQUIRED_CLAIMS if claim not in payload]
        if missing:
            raise TokenInvalid(f"Token is missing claims: {', '.join(missing)}")
        try:
            roles = frozenset(Role(value) for value in payload["roles"])
        except (TypeError, ValueError) as exc:
            raise TokenInvalid("Token carries an unknown role") from exc

        return SessionClaims(
            user_id=str(payload["sub"]),
            full_name=payload.get("name", ""),
            auth_provider=payload.get("provider", ""),
            roles=roles,
            issued_at=int(payload["iat"]),
            expires_at=int(payload["exp"]),
        )
