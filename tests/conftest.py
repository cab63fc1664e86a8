"""Shared pytest fixtures for hostnotify."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from hostnotify import database
from hostnotify.auth import AdminPolicy, TokenVerifier
from hostnotify.crud import EVENTS, RESERVATIONS, USERS, DocumentStore
from hostnotify.dispatcher import HostNotifier
from hostnotify.gate import HostRsvpGate
from hostnotify.models import Base
from hostnotify.providers import InAppSink, SendResult
from hostnotify.ratelimit import FixedWindowRateLimiter, RateLimiters

AUTH_SECRET = "test-secret-with-at-least-thirty-two-bytes"
NOW_MS = 1_700_000_000_000

RESERVATION_ID = "resv_0123456789"
EVENT_ID = "event_0123456789"
HOST_ID = "host-uid"
ATTENDEE_ID = "attendee-uid"


@pytest.fixture(scope="session", autouse=True)
def configure_in_memory_db():
    """Reuse a single in-memory SQLite database for fast, isolated tests."""

    engine = database.create_db_engine("sqlite+pysqlite:///:memory:")
    session_factory = database.create_session_factory(engine)
    database.engine = engine
    database.SessionLocal = session_factory
    Base.metadata.create_all(bind=engine)
    yield
    session_factory.remove()


@pytest.fixture(autouse=True)
def clean_database():
    """Reset all tables between tests to guarantee isolation."""

    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    yield


class FakeEmailSender:
    def __init__(self, *, configured: bool = True, results=None) -> None:
        self.configured = configured
        self.results = list(results or [])
        self.sent: list[dict] = []

    def send(self, *, to: str, subject: str, html: str) -> SendResult:
        self.sent.append({"to": to, "subject": subject, "html": html})
        outcome = self.results.pop(0) if self.results else SendResult(id="email-1")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeSmsSender:
    def __init__(self, *, configured: bool = True, results=None) -> None:
        self.configured = configured
        self.results = list(results or [])
        self.sent: list[dict] = []

    def send(self, *, to: str, body: str) -> SendResult:
        self.sent.append({"to": to, "body": body})
        outcome = self.results.pop(0) if self.results else SendResult(id="SM123")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeClock:
    """Millisecond wall clock that only moves when told to."""

    def __init__(self, start: int = NOW_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeMonotonic:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def store() -> DocumentStore:
    return DocumentStore()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture()
def sms_sender() -> FakeSmsSender:
    return FakeSmsSender()


@pytest.fixture()
def notifier(store, email_sender, sms_sender, clock) -> HostNotifier:
    return HostNotifier(
        store,
        in_app=InAppSink(),
        email=email_sender,
        sms=sms_sender,
        base_url="https://example.test/",
        clock=clock,
    )


@pytest.fixture()
def verifier() -> TokenVerifier:
    return TokenVerifier(AUTH_SECRET)


@pytest.fixture()
def limiters() -> RateLimiters:
    return RateLimiters(
        per_ip=FixedWindowRateLimiter(limit=30, window=60),
        per_reservation=FixedWindowRateLimiter(limit=5, window=60),
        per_event=FixedWindowRateLimiter(limit=10, window=300, max_keys=200),
    )


@pytest.fixture()
def gate(store, notifier, limiters, verifier, clock) -> HostRsvpGate:
    return HostRsvpGate(
        store=store,
        notifier=notifier,
        limiters=limiters,
        verifier=verifier,
        admin_policy=AdminPolicy(["ops@example.com"]),
        cooldown_ms=15_000,
        clock=clock,
    )


@pytest.fixture()
def seeded(store):
    """A host with email and phone, an event, and an active reservation."""

    store.put(
        USERS,
        HOST_ID,
        {
            "displayName": "Hana Host",
            "email": "hana@example.com",
            "phone_number": "+14165551234",
            "notification_settings": {"email_opt_in": True, "sms_opt_in": True},
        },
    )
    store.put(USERS, ATTENDEE_ID, {"displayName": "Ari Attendee"})
    store.put(EVENTS, EVENT_ID, {"hostId": HOST_ID, "title": "Rooftop Jazz"})
    store.put(
        RESERVATIONS,
        RESERVATION_ID,
        {
            "eventId": EVENT_ID,
            "userId": ATTENDEE_ID,
            "attendeeName": "Ari Attendee",
            "attendeeEmail": "ari@example.com",
            "status": "reserved",
            "isGuestCreated": False,
            "hostNotify": {},
        },
    )
    return store
