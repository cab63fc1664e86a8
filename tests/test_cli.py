from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from conftest import HOST_ID, RESERVATION_ID
from hostnotify import cli
from hostnotify.crud import RESERVATIONS, USERS

runner = CliRunner()


@pytest.fixture(autouse=True)
def skip_migrations(monkeypatch):
    monkeypatch.setattr(cli, "init_db", lambda: None)


def test_config_masks_secrets():
    result = runner.invoke(cli.app, ["config"])
    assert result.exit_code == 0
    values = json.loads(result.stdout)
    assert "notification_cooldown_seconds" in values
    assert values["auth_secret"] in ("", "***")


def test_show_state(seeded):
    seeded.update(
        RESERVATIONS, RESERVATION_ID, {"hostNotify": {"lastAttemptAt": 5, "inAppAt": 5}}
    )
    result = runner.invoke(cli.app, ["show-state", RESERVATION_ID])
    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"lastAttemptAt": 5, "inAppAt": 5}


def test_show_state_unknown_reservation():
    result = runner.invoke(cli.app, ["show-state", "resv_missing00"])
    assert result.exit_code == 1


def test_dispatch_runs_notifier_directly(seeded):
    seeded.update(USERS, HOST_ID, {"phone_number": None})

    result = runner.invoke(cli.app, ["dispatch", RESERVATION_ID])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["inApp"]["success"] is True
    assert payload["sms"]["reason"] == "no_host_phone"
    assert "inAppAt" in seeded.get(RESERVATIONS, RESERVATION_ID)["hostNotify"]


def test_seed_demo_creates_active_reservation(store):
    result = runner.invoke(cli.app, ["seed-demo", "--host-email", "demo@example.com"])
    assert result.exit_code == 0
    ids = json.loads(result.stdout)
    reservation = store.get(RESERVATIONS, ids["reservation_id"])
    assert reservation["status"] == "reserved"
    assert store.get(USERS, ids["host_id"])["email"] == "demo@example.com"
