"""Render host notification content from the bundled Jinja2 templates."""

from __future__ import annotations

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

templates = Environment(
    loader=FileSystemLoader(Path(__file__).parent / "templates"),
    autoescape=select_autoescape(["html"]),
)


def event_url(base_url: str, event_id: str) -> str:
    return f"{base_url.rstrip('/')}/event/{event_id}"


def in_app_body(attendee_name: str, event_title: str) -> str:
    return f"{attendee_name or 'Someone'} RSVP'd to {event_title}"


def email_subject(event_title: str) -> str:
    return f"New RSVP: {event_title}"


def render_email_html(
    *,
    host_name: str,
    attendee_name: str,
    attendee_email: str,
    event_title: str,
    event_url: str,
) -> str:
    return templates.get_template("host_rsvp_email.html").render(
        host_name=host_name,
        attendee_name=attendee_name or "Someone",
        attendee_email=attendee_email,
        event_title=event_title,
        event_url=event_url,
    )


def render_sms_body(*, attendee_name: str, event_title: str) -> str:
    return templates.get_template("host_rsvp_sms.txt").render(
        attendee_name=attendee_name or "Someone",
        event_title=event_title,
    )
