"""Authorization, rate limiting and cooldown in front of the host notifier."""

from __future__ import annotations

import logging
import re
from typing import Any, Callable

from fastapi import HTTPException

from .auth import AdminPolicy, AuthenticationError, TokenVerifier
from .crud import EVENTS, RESERVATIONS, DocumentStore
from .dispatcher import HostNotifier, NotifyHostParams
from .ratelimit import RateLimiters
from .state import HostNotifyState, channels_complete
from .utils import epoch_ms, generate_request_id, truncate

logger = logging.getLogger("uvicorn.error")

ACTIVE_STATUSES = {"reserved", "checked_in"}
PRICING_TYPES = {"free", "online", "door"}
RESERVATION_ID_MIN_LENGTH = 10
RESERVATION_ID_MAX_LENGTH = 100
_reservation_id_pattern = re.compile(r"^[A-Za-z0-9_-]+$")


class InactiveReservationError(Exception):
    """Raised when the reservation is cancelled or otherwise not active."""

    def __init__(self, status: Any) -> None:
        super().__init__("Reservation is not active")
        self.status = status


def validate_reservation_id(raw: Any) -> str:
    if not raw or not isinstance(raw, str):
        raise HTTPException(status_code=400, detail="Missing reservationId")
    cleaned = raw.strip()
    if (
        len(cleaned) < RESERVATION_ID_MIN_LENGTH
        or len(cleaned) > RESERVATION_ID_MAX_LENGTH
        or not _reservation_id_pattern.match(cleaned)
    ):
        raise HTTPException(status_code=400, detail="Invalid reservationId format")
    return cleaned


def event_pricing_type(event: dict[str, Any]) -> str:
    """Classify an event as free, online-paid or pay-at-the-door."""
    declared = event.get("pricingType")
    if declared in PRICING_TYPES:
        return declared
    fee_amount = event.get("feeAmount") or 0
    if event.get("hasFee") is True and isinstance(fee_amount, (int, float)) and fee_amount > 0:
        return "online"
    return "free"


def cooldown_remaining_seconds(
    host_notify: HostNotifyState, *, now: int, cooldown_ms: int
) -> int | None:
    """Seconds left on the cooldown, or None when a dispatch may run.

    The cooldown only holds once the previous attempt finished cleanly; any
    recorded error lets the next request retry straight away.
    """
    elapsed = now - (host_notify.last_attempt_at or 0)
    if elapsed < cooldown_ms and channels_complete(host_notify):
        return -(-(cooldown_ms - elapsed) // 1000)
    return None


class HostRsvpGate:
    def __init__(
        self,
        *,
        store: DocumentStore,
        notifier: HostNotifier,
        limiters: RateLimiters,
        verifier: TokenVerifier,
        admin_policy: AdminPolicy,
        cooldown_ms: int,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.limiters = limiters
        self.verifier = verifier
        self.admin_policy = admin_policy
        self.cooldown_ms = cooldown_ms
        self._clock = clock

    def handle(
        self,
        *,
        reservation_id: Any,
        token: str | None,
        client_ip: str,
        request_id: str | None = None,
    ) -> dict[str, Any]:
        """Run every check and dispatch; unexpected errors become a 200 payload."""
        request_id = request_id or generate_request_id()
        try:
            return self._handle(reservation_id, token, client_ip, request_id)
        except (HTTPException, InactiveReservationError):
            raise
        except Exception as exc:
            error = truncate(str(exc), 100) or "Unknown error"
            logger.error(
                "[HOST_RSVP_API] request_id=%s status=exception error=%r", request_id, error
            )
            return {"success": False, "error": error}

    def _handle(
        self, raw_reservation_id: Any, token: str | None, client_ip: str, request_id: str
    ) -> dict[str, Any]:
        reservation_id = validate_reservation_id(raw_reservation_id)

        if not self.limiters.per_ip.allow(client_ip):
            logger.warning(
                "[HOST_RSVP_API] request_id=%s status=rate_limited reason=ip_limit ip=%s",
                request_id,
                client_ip,
            )
            raise HTTPException(status_code=429, detail="Too many requests")
        if not self.limiters.per_reservation.allow(reservation_id):
            logger.warning(
                "[HOST_RSVP_API] request_id=%s status=rate_limited "
                "reason=reservation_limit reservation_id=%s",
                request_id,
                reservation_id,
            )
            raise HTTPException(
                status_code=429, detail="Too many requests for this reservation"
            )

        if not self.verifier.configured:
            logger.error(
                "[HOST_RSVP_API] request_id=%s status=error reason=verifier_not_configured",
                request_id,
            )
            raise HTTPException(status_code=500, detail="Server configuration error")
        if not token:
            raise HTTPException(status_code=401, detail="Authorization required")
        try:
            identity = self.verifier.verify(token)
        except AuthenticationError as exc:
            logger.warning(
                "[HOST_RSVP_API] request_id=%s status=unauthorized error=%r",
                request_id,
                truncate(exc, 50),
            )
            raise HTTPException(status_code=401, detail="Invalid or expired token") from exc
        caller = identity.subject
        is_admin = self.admin_policy.is_admin(identity)

        reservation = self.store.get(RESERVATIONS, reservation_id)
        if reservation is None:
            raise HTTPException(status_code=404, detail="Reservation not found")
        status = reservation.get("status")
        if status not in ACTIVE_STATUSES:
            logger.warning(
                "[HOST_RSVP_API] request_id=%s caller=%s status=rejected "
                "reason=inactive_reservation reservation_status=%s",
                request_id,
                caller,
                status,
            )
            raise InactiveReservationError(status)
        event_id = reservation.get("eventId")
        if not event_id:
            raise HTTPException(status_code=400, detail="Invalid reservation data")

        event = self.store.get(EVENTS, event_id)
        if event is None:
            raise HTTPException(status_code=404, detail="Event not found")
        host_id = event.get("hostId")
        if not host_id:
            raise HTTPException(status_code=400, detail="Event has no host")

        attendee_id = reservation.get("userId")
        if caller not in (attendee_id, host_id) and not is_admin:
            logger.warning(
                "[HOST_RSVP_API] request_id=%s caller=%s status=forbidden "
                "reservation_id=%s user_id=%s host_id=%s",
                request_id,
                caller,
                reservation_id,
                attendee_id,
                host_id,
            )
            raise HTTPException(status_code=403, detail="Access denied")

        if attendee_id == host_id:
            logger.info(
                "[HOST_RSVP_API] request_id=%s status=skipped reason=self_rsvp "
                "reservation_id=%s",
                request_id,
                reservation_id,
            )
            return {"success": True, "skipped": True, "reason": "self_rsvp"}

        host_notify = HostNotifyState.from_dict(reservation.get("hostNotify"))
        remaining = cooldown_remaining_seconds(
            host_notify, now=self._clock(), cooldown_ms=self.cooldown_ms
        )
        if remaining is not None:
            logger.info(
                "[HOST_RSVP_API] request_id=%s status=skipped reason=cooldown "
                "reservation_id=%s remaining_seconds=%s",
                request_id,
                reservation_id,
                remaining,
            )
            return {
                "success": True,
                "skipped": True,
                "reason": "cooldown",
                "remainingSeconds": remaining,
            }

        logger.info(
            "[HOST_RSVP_API] request_id=%s caller=%s reservation_id=%s event_id=%s "
            "host_id=%s status=invoking_notify",
            request_id,
            caller,
            reservation_id,
            event_id,
            host_id,
        )
        result = self.notifier.notify(
            NotifyHostParams(
                reservation_id=reservation_id,
                event_id=event_id,
                host_id=host_id,
                attendee_name=reservation.get("attendeeName") or "Someone",
                attendee_email=reservation.get("attendeeEmail") or "",
                event_title=event.get("title") or "Event",
                pricing_type=event_pricing_type(event),
                is_guest=bool(reservation.get("isGuestCreated")),
                request_id=request_id,
            )
        )
        return {
            "success": True,
            "inApp": result.in_app.to_dict(),
            "email": result.email.to_dict(),
            "sms": result.sms.to_dict(),
        }
