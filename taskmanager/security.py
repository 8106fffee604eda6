"""Token issuing and the bearer-token guard for protected routes."""
from __future__ import annotations

import base64
import binascii
import hashlib
import json
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import anyio
from cryptography.fernet import Fernet, InvalidToken
from fastapi import Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import DEFAULT_TOKEN_TTL
from .errors import Unauthorized
from .models import User
from .protocols import UserStore


def _build_cipher(secret: str) -> Fernet:
    if not secret:
        raise ValueError("A token secret must be provided")
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


class TokenService:
    """Issue and verify stateless bearer tokens.

    A token is a Fernet message (AES-CBC + HMAC-SHA256) whose plaintext is
    ``{"sub": <user id>, "exp": <unix seconds>}``. Verification needs only the
    secret, so there is no server-side revocation.
    """

    def __init__(
        self,
        secret: str,
        *,
        ttl: timedelta = DEFAULT_TOKEN_TTL,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if ttl.total_seconds() <= 0:
            raise ValueError("Token lifetime must be positive")
        self._cipher = _build_cipher(secret)
        self._ttl = ttl
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, user_id: str) -> str:
        expires_at = self._clock() + self._ttl
        payload = json.dumps({"sub": user_id, "exp": int(expires_at.timestamp())})
        return self._cipher.encrypt(payload.encode("utf-8")).decode("ascii")

    def verify(self, token: str) -> str:
        """Return the user id bound to *token* or raise :class:`Unauthorized`."""

        try:
            plaintext = self._cipher.decrypt(token.encode("ascii"))
            claims = json.loads(plaintext)
        except (InvalidToken, UnicodeError, binascii.Error, ValueError) as exc:
            raise Unauthorized("Invalid token") from exc

        if not isinstance(claims, dict):
            raise Unauthorized("Invalid token")
        subject = claims.get("sub")
        expires = claims.get("exp")
        if not isinstance(subject, str) or not subject or not isinstance(expires, int):
            raise Unauthorized("Invalid token")
        if expires <= self._clock().timestamp():
            raise Unauthorized("Token has expired")
        return subject


class BearerAuth:
    """Resolve the ``Authorization`` header to a stored :class:`User`.

    Used as a FastAPI dependency; the resolved user is also attached to
    ``request.state.user``.
    """

    def __init__(self, tokens: TokenService, users: UserStore) -> None:
        self._tokens = tokens
        self._users = users
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> User:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
            raise Unauthorized("No token provided")

        user_id = self._tokens.verify(credentials.credentials)
        user = await anyio.to_thread.run_sync(self._users.get_user, user_id)
        if user is None:
            raise Unauthorized("User not found")

        request.state.user = user
        return user


__all__ = ["BearerAuth", "TokenService"]
