"""Outbound channel clients: in-app records, Resend email, Twilio SMS."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

from . import database
from .config import Settings
from .crud import create_in_app_notification
from .utils import truncate

logger = logging.getLogger("uvicorn.error")


@dataclass
class SendResult:
    id: str | None = None
    error: str | None = None
    code: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class InAppSink:
    """Store in-app notifications in the local database."""

    def __init__(self, session_factory=None) -> None:
        self._session_factory = session_factory

    def create(
        self,
        user_id: str,
        *,
        type: str,
        title: str,
        body: str,
        event_id: str | None = None,
    ) -> str:
        with database.session_scope(self._session_factory) as session:
            notification = create_in_app_notification(
                session,
                user_id=user_id,
                type=type,
                title=title,
                body=body,
                event_id=event_id,
            )
            return notification.id


class ResendEmailSender:
    """Send HTML email through the Resend HTTP API."""

    def __init__(
        self,
        *,
        api_key: str,
        api_url: str,
        sender: str,
        reply_to: str | None = None,
        timeout: float = 8.0,
        session: requests.Session | None = None,
    ) -> None:
        self.api_key = api_key
        self.api_url = api_url
        self.sender = sender
        self.reply_to = reply_to
        self.timeout = timeout
        self._http = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResendEmailSender":
        return cls(
            api_key=settings.resend_api_key,
            api_url=settings.resend_api_url,
            sender=settings.email_from,
            reply_to=settings.email_reply_to,
            timeout=settings.provider_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def send(self, *, to: str, subject: str, html: str) -> SendResult:
        """POST one message. Transport errors and timeouts propagate."""
        payload = {
            "from": self.sender,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        if self.reply_to:
            payload["reply_to"] = self.reply_to
        response = self._http.post(
            self.api_url,
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
        )
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not response.ok:
            message = data.get("message") or data.get("name") or response.reason
            return SendResult(error=str(message or f"HTTP {response.status_code}"))
        return SendResult(id=data.get("id"))


class TwilioSmsSender:
    """Send SMS through Twilio's Messages REST resource."""

    api_base = "https://api.twilio.com/2010-04-01/Accounts"

    def __init__(
        self,
        *,
        account_sid: str,
        auth_token: str,
        from_number: str | None = None,
        messaging_service_sid: str | None = None,
        timeout: float = 8.0,
        session: requests.Session | None = None,
    ) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.messaging_service_sid = messaging_service_sid
        self.timeout = timeout
        self._http = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "TwilioSmsSender":
        return cls(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_phone_number or None,
            messaging_service_sid=settings.twilio_messaging_service_sid or None,
            timeout=settings.provider_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(
            self.account_sid
            and self.auth_token
            and (self.messaging_service_sid or self.from_number)
        )

    @property
    def messages_url(self) -> str:
        return f"{self.api_base}/{self.account_sid}/Messages.json"

    def send(self, *, to: str, body: str) -> SendResult:
        form = {"To": to, "Body": body}
        # A messaging service wins over a bare sender number.
        if self.messaging_service_sid:
            form["MessagingServiceSid"] = self.messaging_service_sid
        else:
            form["From"] = self.from_number
        response = self._http.post(
            self.messages_url,
            data=form,
            auth=(self.account_sid, self.auth_token),
            timeout=self.timeout,
        )
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not response.ok:
            code = data.get("code") or data.get("error_code")
            message = data.get("message") or data.get("error_message") or "Unknown error"
            logger.error(
                "Twilio rejected message: code=%s message=%r", code, truncate(message, 100)
            )
            return SendResult(error=f"twilio_{code}", code=str(code))
        if not data.get("sid"):
            return SendResult(error="twilio_no_sid")
        return SendResult(id=data["sid"])
