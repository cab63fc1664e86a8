"""Typer CLI for hostnotify."""

from __future__ import annotations

import json

from sqlalchemy.exc import OperationalError
import typer
import uvicorn

from .api import build_gate
from .auth import TokenVerifier
from .config import settings, settings_as_dict
from .crud import EVENTS, RESERVATIONS, DocumentStore
from .dispatcher import NotifyHostParams
from .gate import event_pricing_type
from .seed import seed_demo
from .state import HostNotifyState
from .storage import init_db, upgrade_database

app = typer.Typer(help="hostnotify command-line interface")


def _fail(message: str) -> None:
    typer.secho(message, err=True, fg=typer.colors.RED)
    raise typer.Exit(code=1)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command("init-db")
def init_database() -> None:
    """Create the schema on a fresh database."""
    init_db()
    typer.echo(f"Database ready at {settings.database_path}")


@app.command("upgrade-db")
def upgrade_db(
    no_backup: bool = typer.Option(
        False,
        "--no-backup",
        help="Skip creating a .bak copy of the database before upgrading",
    ),
) -> None:
    """Upgrade the SQLite database schema if needed."""
    try:
        actions = upgrade_database(make_backup=not no_backup)
    except OperationalError as exc:
        message = str(getattr(exc, "orig", exc)).lower()
        if "readonly" in message or "read-only" in message:
            _fail(
                "Unable to upgrade because the database is read-only. "
                f"Ensure write access to {settings.database_path}."
            )
        raise

    if not actions:
        typer.echo("Database already up to date.")
        return
    typer.echo("Database upgrade complete:")
    for action in actions:
        typer.echo(f"- {action}")


@app.command("serve")
def serve(
    host: str = typer.Option(settings.app_host, "--host", help="Host to bind"),
    port: int = typer.Option(settings.app_port, "--port", help="Port to bind"),
):
    """Start the FastAPI app (the scheduler starts with it)."""
    config = uvicorn.Config(
        "hostnotify.api:app",
        host=host,
        port=port,
        reload=False,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
    typer.echo(f"Starting hostnotify on {host}:{port}")
    uvicorn.Server(config).run()


@app.command("config")
def show_config(
    reveal_secrets: bool = typer.Option(
        False, "--reveal-secrets", help="Print secrets instead of masking them"
    ),
) -> None:
    """Print the effective configuration."""
    typer.echo(
        json.dumps(settings_as_dict(settings, reveal_secrets=reveal_secrets), indent=2)
    )


@app.command("issue-token")
def issue_token(
    subject: str = typer.Argument(..., help="User id to put in the sub claim"),
    email: str | None = typer.Option(None, "--email", help="Email claim"),
    admin: bool = typer.Option(False, "--admin", help="Add an admin claim"),
    ttl: int = typer.Option(3600, "--ttl", min=60, help="Lifetime in seconds"),
) -> None:
    """Mint a bearer token signed with the configured secret."""
    verifier = TokenVerifier.from_settings(settings)
    if not verifier.configured:
        _fail("HOSTNOTIFY_AUTH_SECRET is not set.")
    typer.echo(verifier.issue(subject, email=email, admin=admin, ttl_seconds=ttl))


@app.command("seed-demo")
def seed_demo_command(
    host_email: str | None = typer.Option("host@example.com", "--host-email"),
    host_phone: str | None = typer.Option(None, "--host-phone"),
) -> None:
    """Create a demo host, event and reservation."""
    init_db()
    ids = seed_demo(DocumentStore(), host_email=host_email, host_phone=host_phone)
    typer.echo(json.dumps(ids, indent=2))


@app.command("show-state")
def show_state(reservation_id: str = typer.Argument(...)) -> None:
    """Print the stored hostNotify map of a reservation."""
    init_db()
    reservation = DocumentStore().get(RESERVATIONS, reservation_id)
    if reservation is None:
        _fail(f"Reservation {reservation_id} not found.")
    state = HostNotifyState.from_dict(reservation.get("hostNotify"))
    typer.echo(json.dumps(state.to_dict(), indent=2))


@app.command("dispatch")
def dispatch(reservation_id: str = typer.Argument(...)) -> None:
    """Run the notifier for a reservation without auth, limits or cooldown."""
    init_db()
    gate = build_gate(settings)
    reservation = gate.store.get(RESERVATIONS, reservation_id)
    if reservation is None:
        _fail(f"Reservation {reservation_id} not found.")
    event = gate.store.get(EVENTS, reservation.get("eventId") or "")
    if event is None or not event.get("hostId"):
        _fail("Reservation has no event or the event has no host.")
    result = gate.notifier.notify(
        NotifyHostParams(
            reservation_id=reservation_id,
            event_id=reservation["eventId"],
            host_id=event["hostId"],
            attendee_name=reservation.get("attendeeName") or "Someone",
            attendee_email=reservation.get("attendeeEmail") or "",
            event_title=event.get("title") or "Event",
            pricing_type=event_pricing_type(event),
            is_guest=bool(reservation.get("isGuestCreated")),
        )
    )
    typer.echo(json.dumps(result.to_dict(), indent=2))


if __name__ == "__main__":
    app()
