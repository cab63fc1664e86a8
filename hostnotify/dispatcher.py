"""Tell a host that someone reserved a spot at their event.

Each channel (in-app, email, SMS) is tried only while its delivery marker on
the reservation is unset, so retried or duplicated requests do not notify the
host twice through a channel that already worked. ``HostNotifier.notify``
never raises; failures are folded into per-channel reasons and ``lastError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from . import messages
from .crud import RESERVATIONS, USERS, DocumentStore
from .providers import InAppSink, ResendEmailSender, TwilioSmsSender
from .state import (
    EMAIL,
    IN_APP,
    SMS,
    ChannelResult,
    HostNotifyState,
    NotificationResult,
    is_channel_done,
    record_channel_success,
    record_failures,
)
from .utils import (
    KeyedLock,
    epoch_ms,
    generate_request_id,
    is_valid_e164,
    mask_phone,
    normalize_phone,
    truncate,
)

logger = logging.getLogger("uvicorn.error")

REASON_LIMIT = 50
ERROR_LIMIT = 100
IN_APP_TYPE = "new-rsvp"


@dataclass
class NotifyHostParams:
    reservation_id: str
    event_id: str
    host_id: str
    attendee_name: str = "Someone"
    attendee_email: str = ""
    event_title: str = "Event"
    pricing_type: str = "free"
    is_guest: bool = False
    request_id: str | None = None


@dataclass
class HostProfile:
    name: str
    email: str | None
    phone: str | None
    email_opt_in: bool
    sms_opt_in: bool

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "HostProfile":
        prefs = data.get("notification_settings") or {}
        return cls(
            name=data.get("displayName") or data.get("name") or "Host",
            email=data.get("email") or None,
            phone=data.get("phone_number") or data.get("hostPhoneNumber") or None,
            # Opt-ins default to True; only an explicit False opts out.
            email_opt_in=prefs.get("email_opt_in") is not False,
            sms_opt_in=prefs.get("sms_opt_in") is not False,
        )


def _reason(exc: BaseException, limit: int = REASON_LIMIT) -> str:
    return truncate(str(exc), limit) or type(exc).__name__


class HostNotifier:
    def __init__(
        self,
        store: DocumentStore,
        *,
        in_app: InAppSink,
        email: ResendEmailSender,
        sms: TwilioSmsSender,
        base_url: str,
        clock: Callable[[], int] = epoch_ms,
        locks: KeyedLock | None = None,
    ) -> None:
        self.store = store
        self.in_app = in_app
        self.email = email
        self.sms = sms
        self.base_url = base_url
        self._clock = clock
        self._locks = locks or KeyedLock()

    def notify(self, params: NotifyHostParams) -> NotificationResult:
        # Serialise dispatches for one reservation within this process so two
        # overlapping requests cannot both see a channel as unsent.
        with self._locks.hold(params.reservation_id):
            return self._notify(params)

    def _notify(self, params: NotifyHostParams) -> NotificationResult:
        request_id = params.request_id or generate_request_id()
        result = NotificationResult(
            host_notify=HostNotifyState(last_attempt_at=self._clock())
        )
        logger.info(
            "[HOST_NOTIFY] request_id=%s reservation_id=%s event_id=%s host_id=%s "
            "pricing_type=%s is_guest=%s status=starting",
            request_id,
            params.reservation_id,
            params.event_id,
            params.host_id,
            params.pricing_type,
            params.is_guest,
        )
        try:
            reservation = self.store.get(RESERVATIONS, params.reservation_id) or {}
            existing = HostNotifyState.from_dict(reservation.get("hostNotify"))

            host_data = self.store.get(USERS, params.host_id)
            if host_data is None:
                logger.warning(
                    "[HOST_NOTIFY] request_id=%s status=host_not_found host_id=%s",
                    request_id,
                    params.host_id,
                )
                result.host_notify.last_error = "host_not_found"
                result.host_notify = self._persist(params.reservation_id, result.host_notify)
                return result

            host = HostProfile.from_document(host_data)
            result.in_app = self._send_in_app(params, existing, result, request_id)
            result.email = self._send_email(params, host, existing, result, request_id)
            result.sms = self._send_sms(params, host, existing, result, request_id)

            record_failures(result.host_notify, result.failures())
            result.host_notify = self._persist(params.reservation_id, result.host_notify)
            logger.info(
                "[HOST_NOTIFY] request_id=%s status=complete %s",
                request_id,
                result.summary(),
            )
            return result
        except Exception as exc:
            error = truncate(str(exc), ERROR_LIMIT) or "Unknown error"
            logger.error(
                "[HOST_NOTIFY] request_id=%s status=exception error=%r", request_id, error
            )
            result.host_notify.last_error = error
            try:
                result.host_notify = self._persist(
                    params.reservation_id, result.host_notify
                )
            except Exception:
                logger.debug(
                    "[HOST_NOTIFY] request_id=%s could not save error state", request_id
                )
            return result

    def _persist(self, reservation_id: str, state: HostNotifyState) -> HostNotifyState:
        """Write ``state`` back, keeping markers another writer may have set."""
        current = self.store.get(RESERVATIONS, reservation_id) or {}
        merged = state.merge_stored(HostNotifyState.from_dict(current.get("hostNotify")))
        self.store.update(RESERVATIONS, reservation_id, {"hostNotify": merged.to_dict()})
        return merged

    def _already_sent(
        self,
        channel: str,
        existing: HostNotifyState,
        result: NotificationResult,
        request_id: str,
    ) -> ChannelResult:
        record_channel_success(result.host_notify, channel, existing.sent_at(channel))
        logger.info(
            "[HOST_NOTIFY] request_id=%s channel=%s status=skipped reason=already_sent",
            request_id,
            channel,
        )
        return ChannelResult.skip("already_sent")

    def _skip(self, channel: str, reason: str, request_id: str, **extra) -> ChannelResult:
        details = "".join(f" {key}={value}" for key, value in extra.items())
        logger.info(
            "[HOST_NOTIFY] request_id=%s channel=%s status=skipped reason=%s%s",
            request_id,
            channel,
            reason,
            details,
        )
        return ChannelResult.skip(reason)

    def _sent(self, channel: str, result: NotificationResult, outcome: ChannelResult) -> None:
        outcome.success = True
        record_channel_success(result.host_notify, channel, self._clock())

    def _send_in_app(
        self,
        params: NotifyHostParams,
        existing: HostNotifyState,
        result: NotificationResult,
        request_id: str,
    ) -> ChannelResult:
        if is_channel_done(existing, IN_APP):
            return self._already_sent(IN_APP, existing, result, request_id)
        outcome = ChannelResult(attempted=True)
        try:
            self.in_app.create(
                params.host_id,
                type=IN_APP_TYPE,
                title="New RSVP",
                body=messages.in_app_body(params.attendee_name, params.event_title),
                event_id=params.event_id,
            )
        except Exception as exc:
            outcome.reason = _reason(exc)
            logger.error(
                "[HOST_NOTIFY] request_id=%s channel=inApp status=failed error=%r",
                request_id,
                outcome.reason,
            )
            return outcome
        self._sent(IN_APP, result, outcome)
        logger.info("[HOST_NOTIFY] request_id=%s channel=inApp status=sent", request_id)
        return outcome

    def _send_email(
        self,
        params: NotifyHostParams,
        host: HostProfile,
        existing: HostNotifyState,
        result: NotificationResult,
        request_id: str,
    ) -> ChannelResult:
        if is_channel_done(existing, EMAIL):
            return self._already_sent(EMAIL, existing, result, request_id)
        if not host.email:
            return self._skip(EMAIL, "no_host_email", request_id)
        if not host.email_opt_in:
            return self._skip(EMAIL, "email_opt_out", request_id)
        if not self.email.configured:
            return self._skip(EMAIL, "provider_not_configured", request_id)

        outcome = ChannelResult(attempted=True)
        try:
            html = messages.render_email_html(
                host_name=host.name,
                attendee_name=params.attendee_name,
                attendee_email=params.attendee_email,
                event_title=params.event_title,
                event_url=messages.event_url(self.base_url, params.event_id),
            )
            sent = self.email.send(
                to=host.email,
                subject=messages.email_subject(params.event_title),
                html=html,
            )
        except Exception as exc:
            outcome.reason = _reason(exc)
        else:
            if sent.ok:
                self._sent(EMAIL, result, outcome)
                logger.info(
                    "[HOST_NOTIFY] request_id=%s channel=email status=sent message_id=%s",
                    request_id,
                    sent.id,
                )
                return outcome
            outcome.reason = truncate(sent.error, REASON_LIMIT)
        logger.error(
            "[HOST_NOTIFY] request_id=%s channel=email status=failed error=%r",
            request_id,
            outcome.reason,
        )
        return outcome

    def _send_sms(
        self,
        params: NotifyHostParams,
        host: HostProfile,
        existing: HostNotifyState,
        result: NotificationResult,
        request_id: str,
    ) -> ChannelResult:
        if is_channel_done(existing, SMS):
            return self._already_sent(SMS, existing, result, request_id)
        if not host.phone:
            return self._skip(SMS, "no_host_phone", request_id)
        if not host.sms_opt_in:
            return self._skip(SMS, "sms_opt_out", request_id)
        phone = normalize_phone(host.phone)
        masked = mask_phone(phone)
        if not is_valid_e164(phone):
            return self._skip(SMS, "invalid_phone_format", request_id, phone=masked)
        if not self.sms.configured:
            return self._skip(SMS, "provider_not_configured", request_id)

        outcome = ChannelResult(attempted=True)
        try:
            sent = self.sms.send(
                to=phone,
                body=messages.render_sms_body(
                    attendee_name=params.attendee_name, event_title=params.event_title
                ),
            )
        except Exception as exc:
            outcome.reason = f"twilio_exception: {_reason(exc)}"
        else:
            if sent.ok:
                self._sent(SMS, result, outcome)
                logger.info(
                    "[HOST_NOTIFY] request_id=%s channel=sms status=sent phone=%s",
                    request_id,
                    masked,
                )
                return outcome
            outcome.reason = truncate(sent.error, REASON_LIMIT)
        logger.error(
            "[HOST_NOTIFY] request_id=%s channel=sms status=failed error=%r phone=%s",
            request_id,
            outcome.reason,
            masked,
        )
        return outcome
