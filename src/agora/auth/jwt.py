"""
Signed bearer tokens.

The stores never look inside these tokens; the calling layer verifies them
and hands the resolved ``Actor`` to the operations it invokes.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from agora.config import Settings


class Authenticator:
    """Issue and verify signed access tokens."""

    def __init__(
        self,
        secret: str,
        *,
        issuer: str,
        audience: str,
        algorithm: str = "HS256",
        ttl: timedelta = timedelta(hours=1),
    ) -> None:
        self._secret = secret
        self.issuer = issuer
        self.audience = audience
        self.algorithm = algorithm
        self.ttl = ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> Authenticator:
        return cls(
            settings.jwt_secret,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            algorithm=settings.jwt_algorithm,
            ttl=timedelta(minutes=settings.jwt_access_token_expire_minutes),
        )

    def issue(self, claims: dict[str, Any]) -> str:
        """Sign the given claims as-is."""
        return jwt.encode(claims, self._secret, algorithm=self.algorithm)

    def issue_access_token(self, user_id: int) -> str:
        """Create an access token for ``user_id`` valid for ``ttl``."""
        now = datetime.now(timezone.utc)
        return self.issue({
            "sub": str(user_id),
            "iss": self.issuer,
            "aud": self.audience,
            "iat": now,
            "nbf": now,
            "exp": now + self.ttl,
        })

    def verify(self, token: str) -> dict[str, Any]:
        """
        Verify signature, issuer, audience and expiry.

        Raises:
            jwt.InvalidTokenError: If the token is invalid or expired.
        """
        payload: dict[str, Any] = jwt.decode(
            token,
            self._secret,
            algorithms=[self.algorithm],
            issuer=self.issuer,
            audience=self.audience,
            options={"require": ["sub", "exp"]},
        )
        return payload
