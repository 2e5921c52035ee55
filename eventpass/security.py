"""Staff authentication: Google identity verification and bearer tokens."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import jwt
from fastapi import Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from google.auth import exceptions as google_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from .errors import ConfigurationError, ForbiddenError, InvalidCredentialError, UnauthorizedError


@dataclass(frozen=True)
class GoogleIdentity:
    """Verified identity extracted from a Google ID token."""

    email: str
    name: Optional[str] = None


@dataclass(frozen=True)
class StaffClaims:
    """Claims carried by a staff session token."""

    id: int
    email: str
    name: Optional[str]

    def as_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "email": self.email, "name": self.name}


class GoogleIdentityVerifier:
    """Verify Google Sign-In credentials against the configured client id."""

    def __init__(self, client_id: Optional[str]) -> None:
        self._client_id = client_id
        self._request = google_requests.Request()

    def __call__(self, credential: str) -> GoogleIdentity:
        if not self._client_id:
            raise ConfigurationError("EVENTPASS_GOOGLE_CLIENT_ID must be set to verify Google credentials")

        try:
            claims = id_token.verify_oauth2_token(credential, self._request, self._client_id)
        except google_exceptions.TransportError:
            raise
        except (ValueError, google_exceptions.GoogleAuthError) as exc:
            raise InvalidCredentialError("Invalid Google token") from exc

        email = claims.get("email")
        if not email or claims.get("email_verified") is False:
            raise InvalidCredentialError("Invalid Google token")

        name = claims.get("name")
        return GoogleIdentity(email=str(email).strip().lower(), name=str(name) if name else None)


IdentityVerifier = Callable[[str], GoogleIdentity]


class TokenIssuer:
    """Mint and validate HS256-signed staff session tokens."""

    algorithm = "HS256"

    def __init__(
        self,
        secret: Optional[str],
        *,
        ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if not secret:
            raise ConfigurationError("EVENTPASS_JWT_SECRET must be set to issue session tokens")
        self._secret = secret
        self._ttl = ttl
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, claims: StaffClaims) -> str:
        now = self._clock()
        payload = {
            **claims.as_dict(),
            "iat": now,
            "exp": now + self._ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def decode(self, token: str) -> StaffClaims:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "id", "email"]},
            )
        except jwt.PyJWTError as exc:
            raise ForbiddenError("Invalid or expired token") from exc

        try:
            staff_id = int(payload["id"])
        except (TypeError, ValueError) as exc:
            raise ForbiddenError("Invalid or expired token") from exc

        name = payload.get("name")
        return StaffClaims(id=staff_id, email=str(payload["email"]), name=str(name) if name else None)


class BearerAuth:
    """FastAPI dependency that resolves the staff member behind a bearer token."""

    def __init__(self, issuer: TokenIssuer) -> None:
        self._issuer = issuer
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> StaffClaims:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)
        if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
            raise UnauthorizedError("Access token required")

        return self._issuer.decode(credentials.credentials)


__all__ = [
    "BearerAuth",
    "GoogleIdentity",
    "GoogleIdentityVerifier",
    "IdentityVerifier",
    "StaffClaims",
    "TokenIssuer",
]
