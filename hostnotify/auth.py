"""Bearer token verification and admin detection."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

import jwt

from .config import Settings

logger = logging.getLogger("uvicorn.error")

_fallback_warning_logged = False


class AuthenticationError(Exception):
    """The bearer token is missing, malformed, expired or not ours."""


@dataclass(frozen=True)
class Identity:
    subject: str
    email: str | None = None
    claims: dict[str, Any] = field(default_factory=dict)


class TokenVerifier:
    """Verify signed JWTs issued for this deployment."""

    def __init__(
        self, secret: str, *, algorithm: str = "HS256", audience: str | None = None
    ) -> None:
        self.secret = secret
        self.algorithm = algorithm
        self.audience = audience or None

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenVerifier":
        return cls(
            settings.auth_secret,
            algorithm=settings.auth_algorithm,
            audience=settings.auth_audience,
        )

    @property
    def configured(self) -> bool:
        return bool(self.secret)

    def verify(self, token: str) -> Identity:
        if not token:
            raise AuthenticationError("Missing token")
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                options={"require": ["sub", "exp"], "verify_aud": bool(self.audience)},
            )
        except jwt.PyJWTError as exc:
            raise AuthenticationError(str(exc)) from exc
        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise AuthenticationError("Token has no subject")
        email = claims.get("email")
        return Identity(
            subject=subject,
            email=email if isinstance(email, str) else None,
            claims=claims,
        )

    def issue(
        self,
        subject: str,
        *,
        email: str | None = None,
        admin: bool = False,
        ttl_seconds: int = 3600,
    ) -> str:
        """Mint a token the verifier accepts; used by the CLI and tests."""
        now = int(time.time())
        claims: dict[str, Any] = {"sub": subject, "iat": now, "exp": now + ttl_seconds}
        if email:
            claims["email"] = email
        if admin:
            claims["admin"] = True
        if self.audience:
            claims["aud"] = self.audience
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)


class AdminPolicy:
    """Decide whether a verified identity may act on any reservation.

    Order: an ``admin`` claim on the token, then the configured email
    allow-list. Without an allow-list, a single legacy email is accepted and a
    warning is logged once per process.
    """

    def __init__(self, allowlist: list[str], *, fallback_email: str | None = None) -> None:
        self.allowlist = [email.strip().lower() for email in allowlist if email.strip()]
        self.fallback_email = (fallback_email or "").strip().lower() or None

    @classmethod
    def from_settings(cls, settings: Settings) -> "AdminPolicy":
        return cls(settings.admin_emails, fallback_email=settings.fallback_admin_email)

    def is_admin(self, identity: Identity) -> bool:
        global _fallback_warning_logged
        if identity.claims.get("admin") is True:
            return True
        email = (identity.email or "").lower()
        if self.allowlist:
            return bool(email) and email in self.allowlist
        if not _fallback_warning_logged:
            logger.warning(
                "No admin allow-list configured; falling back to the legacy admin email. "
                "Set HOSTNOTIFY_ADMIN_EMAIL_ALLOWLIST or issue tokens with an admin claim."
            )
            _fallback_warning_logged = True
        return bool(email) and email == self.fallback_email
