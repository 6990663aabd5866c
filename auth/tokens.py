"""
auth/tokens.py -- Access and refresh JWT issuance and verification.

Security design decisions:
  JWT: python-jose with HS256. Two token classes are signed with two
       independently configured keys (ACCESS_SECRET_KEY, REFRESH_SECRET_KEY),
       so a refresh token never verifies as an access token and vice versa.
       Settings refuses identical keys at startup.

  Claims: {id, role, iat, exp}. Access tokens minted from a refresh token
       additionally carry the account email.

  Verification raises instead of returning None: InvalidTokenError for a bad
       signature, a malformed token or missing identity claims, and
       ExpiredTokenError once exp has passed. The Role Gate turns both into
       401; the refresh route turns both into 400.

  There is no revocation store. Possession of an unexpired, correctly signed
       token is the whole proof of authorization.

Layer rule: no imports from api/ or catalog/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from auth.models import Role
from core.config import Settings
from core.errors import ExpiredTokenError, InvalidTokenError

logger = logging.getLogger("storekeep.auth.tokens")

_ALGORITHM = "HS256"


class TokenClass(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenIssuer:
    """Mint and verify the two token classes.

    Usage:
        issuer = TokenIssuer(settings)
        token = issuer.issue_access(user.id, user.role)
        claims = issuer.verify(token, TokenClass.ACCESS)
    """

    def __init__(self, settings: Settings) -> None:
        self._keys = {
            TokenClass.ACCESS: settings.access_secret_key,
            TokenClass.REFRESH: settings.refresh_secret_key,
        }
        self._lifetimes = {
            TokenClass.ACCESS: timedelta(seconds=settings.access_token_expire_seconds),
            TokenClass.REFRESH: timedelta(seconds=settings.refresh_token_expire_seconds),
        }

    def _issue(self, key_class: TokenClass, identity: int, role: Role | str, extra: dict[str, Any]) -> str:
        now = datetime.now(timezone.utc)
        payload: dict[str, Any] = dict(extra)
        payload.update(
            {
                "id": identity,
                "role": Role(role).value,
                "iat": now,
                "exp": now + self._lifetimes[key_class],
            }
        )
        return jwt.encode(payload, self._keys[key_class], algorithm=_ALGORITHM)

    def issue_access(self, identity: int, role: Role | str, **extra: Any) -> str:
        """Encode a short-lived access token (default 15 minutes)."""
        return self._issue(TokenClass.ACCESS, identity, role, extra)

    def issue_refresh(self, identity: int, role: Role | str) -> str:
        """Encode a long-lived refresh token (default 7 days)."""
        return self._issue(TokenClass.REFRESH, identity, role, {})

    def verify(self, token: str, key_class: TokenClass) -> dict[str, Any]:
        """Decode and verify `token` with the key for `key_class`.

        Returns the claim dict. Raises ExpiredTokenError or InvalidTokenError.
        """
        if not token:
            raise InvalidTokenError("Token not provided.")
        try:
            claims = jwt.decode(token, self._keys[key_class], algorithms=[_ALGORITHM])
        except ExpiredSignatureError as exc:
            raise ExpiredTokenError("Token has expired.") from exc
        except JWTError as exc:
            logger.debug("%s token rejected: %s", key_class.value, exc)
            raise InvalidTokenError("Invalid token.") from exc
        if "id" not in claims or "role" not in claims:
            raise InvalidTokenError("Invalid token.")
        try:
            claims["role"] = Role(claims["role"])
        except ValueError as exc:
            raise InvalidTokenError("Invalid token.") from exc
        return claims
