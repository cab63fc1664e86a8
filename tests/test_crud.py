from __future__ import annotations

import pytest

from hostnotify import database
from hostnotify.crud import (
    RESERVATIONS,
    DocumentNotFoundError,
    create_in_app_notification,
    get_document,
    list_in_app_notifications,
    update_document,
)
from hostnotify.providers import InAppSink


def test_put_and_get_round_trip(store):
    store.put(RESERVATIONS, "resv_abcdefghij", {"status": "reserved", "hostNotify": {}})
    assert store.get(RESERVATIONS, "resv_abcdefghij") == {
        "status": "reserved",
        "hostNotify": {},
    }
    assert store.get(RESERVATIONS, "resv_unknown000") is None
    assert store.get(RESERVATIONS, "") is None


def test_update_merges_top_level_fields(store):
    store.put(RESERVATIONS, "resv_abcdefghij", {"status": "reserved", "eventId": "e1"})
    store.update(RESERVATIONS, "resv_abcdefghij", {"hostNotify": {"lastAttemptAt": 1}})
    assert store.get(RESERVATIONS, "resv_abcdefghij") == {
        "status": "reserved",
        "eventId": "e1",
        "hostNotify": {"lastAttemptAt": 1},
    }


def test_update_replaces_nested_maps(store):
    store.put(
        RESERVATIONS,
        "resv_abcdefghij",
        {"hostNotify": {"inAppAt": 1, "lastError": "x"}},
    )
    store.update(RESERVATIONS, "resv_abcdefghij", {"hostNotify": {"inAppAt": 1}})
    assert store.get(RESERVATIONS, "resv_abcdefghij")["hostNotify"] == {"inAppAt": 1}


def test_update_missing_document_raises(store):
    with pytest.raises(DocumentNotFoundError) as excinfo:
        store.update(RESERVATIONS, "resv_unknown000", {"status": "cancelled"})
    assert excinfo.value.collection == RESERVATIONS
    with database.get_session() as session:
        assert get_document(session, RESERVATIONS, "resv_unknown000") is None


def test_failed_update_rolls_back(store):
    store.put(RESERVATIONS, "resv_abcdefghij", {"status": "reserved"})
    with pytest.raises(RuntimeError):
        with database.get_session() as session:
            update_document(session, RESERVATIONS, "resv_abcdefghij", {"status": "x"})
            raise RuntimeError("abort")
    assert store.get(RESERVATIONS, "resv_abcdefghij") == {"status": "reserved"}


def test_in_app_notifications_are_listed_per_user():
    with database.get_session() as session:
        create_in_app_notification(
            session, user_id="host", type="new-rsvp", title="New RSVP", body="first"
        )
    sink = InAppSink()
    second_id = sink.create(
        "host", type="new-rsvp", title="New RSVP", body="second", event_id="e1"
    )
    sink.create("other", type="new-rsvp", title="New RSVP", body="elsewhere")

    with database.get_session() as session:
        rows = list_in_app_notifications(session, "host")
        limited = list_in_app_notifications(session, "host", limit=1)

    assert sorted(row.body for row in rows) == ["first", "second"]
    assert second_id in {row.id for row in rows}
    assert all(row.read is False for row in rows)
    assert len(limited) == 1
