from __future__ import annotations

import logging

import jwt
import pytest

from conftest import AUTH_SECRET
from hostnotify import auth
from hostnotify.auth import AdminPolicy, AuthenticationError, Identity, TokenVerifier


def test_issue_and_verify(verifier):
    token = verifier.issue("user-1", email="User@example.com")
    identity = verifier.verify(token)
    assert identity.subject == "user-1"
    assert identity.email == "User@example.com"
    assert "admin" not in identity.claims


def test_token_without_expiry_is_rejected(verifier):
    token = jwt.encode({"sub": "user-1"}, AUTH_SECRET, algorithm="HS256")
    with pytest.raises(AuthenticationError):
        verifier.verify(token)


def test_algorithm_is_pinned(verifier):
    token = jwt.encode({"sub": "user-1", "exp": 9999999999}, AUTH_SECRET, algorithm="HS512")
    with pytest.raises(AuthenticationError):
        verifier.verify(token)


def test_audience_is_checked_when_configured():
    issuer = TokenVerifier(AUTH_SECRET, audience="popera")
    token = issuer.issue("user-1")
    assert issuer.verify(token).subject == "user-1"
    with pytest.raises(AuthenticationError):
        TokenVerifier(AUTH_SECRET, audience="someone-else").verify(token)


def test_empty_token_is_rejected(verifier):
    with pytest.raises(AuthenticationError):
        verifier.verify("")


def test_admin_claim_wins():
    policy = AdminPolicy([])
    assert policy.is_admin(Identity(subject="x", claims={"admin": True}))
    assert not AdminPolicy(["ops@example.com"]).is_admin(
        Identity(subject="x", claims={"admin": "yes"})
    )


def test_allowlist_replaces_fallback():
    policy = AdminPolicy([" Ops@Example.com "], fallback_email="legacy@example.com")
    assert policy.is_admin(Identity(subject="x", email="ops@example.com"))
    assert not policy.is_admin(Identity(subject="x", email="legacy@example.com"))
    assert not policy.is_admin(Identity(subject="x"))


def test_fallback_email_warns_once(monkeypatch, caplog):
    monkeypatch.setattr(auth, "_fallback_warning_logged", False)
    policy = AdminPolicy([], fallback_email="legacy@example.com")

    with caplog.at_level(logging.WARNING, logger="uvicorn.error"):
        assert policy.is_admin(Identity(subject="x", email="Legacy@example.com"))
        assert not policy.is_admin(Identity(subject="y", email="other@example.com"))

    warnings = [r for r in caplog.records if "legacy admin email" in r.getMessage()]
    assert len(warnings) == 1
