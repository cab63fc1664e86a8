"""Demo documents for trying the notification endpoint locally."""

from __future__ import annotations

import random
import secrets
import string

from faker import Faker

from .crud import EVENTS, RESERVATIONS, USERS, DocumentStore

_id_alphabet = string.ascii_letters + string.digits
_event_types = ("Meetup", "Supper Club", "Run Club", "Jam Session", "Workshop")


def _doc_id(length: int = 20) -> str:
    return "".join(secrets.choice(_id_alphabet) for _ in range(length))


def _event_title(fake: Faker) -> str:
    return f"{fake.city()} {random.choice(_event_types)}"


def seed_demo(
    store: DocumentStore,
    *,
    host_email: str | None = "host@example.com",
    host_phone: str | None = None,
    attendee_name: str | None = None,
    attendee_email: str | None = None,
) -> dict[str, str]:
    """Create a host, an attendee, an event and an active reservation."""
    fake = Faker()
    attendee_name = attendee_name or fake.name_nonbinary()
    attendee_email = attendee_email or fake.email()
    host_id = _doc_id(28)
    attendee_id = _doc_id(28)
    event_id = _doc_id()
    reservation_id = _doc_id()

    host: dict = {"displayName": fake.name_nonbinary(), "notification_settings": {}}
    if host_email:
        host["email"] = host_email
    if host_phone:
        host["phone_number"] = host_phone
    store.put(USERS, host_id, host)
    store.put(USERS, attendee_id, {"displayName": attendee_name, "email": attendee_email})
    store.put(
        EVENTS,
        event_id,
        {"hostId": host_id, "title": _event_title(fake), "pricingType": "free"},
    )
    store.put(
        RESERVATIONS,
        reservation_id,
        {
            "eventId": event_id,
            "userId": attendee_id,
            "attendeeName": attendee_name,
            "attendeeEmail": attendee_email,
            "status": "reserved",
            "isGuestCreated": False,
            "hostNotify": {},
        },
    )
    return {
        "host_id": host_id,
        "attendee_id": attendee_id,
        "event_id": event_id,
        "reservation_id": reservation_id,
    }
