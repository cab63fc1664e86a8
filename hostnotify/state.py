"""Per-reservation, per-channel delivery markers.

A channel timestamp is set the first time that channel succeeds and is never
cleared afterwards. ``last_error`` only describes the most recent dispatch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

IN_APP = "inApp"
EMAIL = "email"
SMS = "sms"
CHANNELS = (IN_APP, EMAIL, SMS)

_TIMESTAMP_KEYS = {
    IN_APP: "inAppAt",
    EMAIL: "emailAt",
    SMS: "smsAt",
}


def _as_timestamp(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value) if value > 0 else None


@dataclass
class HostNotifyState:
    last_attempt_at: int | None = None
    in_app_at: int | None = None
    email_at: int | None = None
    sms_at: int | None = None
    last_error: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> "HostNotifyState":
        """Read the stored map; unknown or malformed fields count as absent."""
        raw = raw if isinstance(raw, dict) else {}
        last_error = raw.get("lastError")
        return cls(
            last_attempt_at=_as_timestamp(raw.get("lastAttemptAt")),
            in_app_at=_as_timestamp(raw.get("inAppAt")),
            email_at=_as_timestamp(raw.get("emailAt")),
            sms_at=_as_timestamp(raw.get("smsAt")),
            last_error=last_error if isinstance(last_error, str) and last_error else None,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.last_attempt_at is not None:
            payload["lastAttemptAt"] = self.last_attempt_at
        for channel, key in _TIMESTAMP_KEYS.items():
            value = self.sent_at(channel)
            if value is not None:
                payload[key] = value
        if self.last_error:
            payload["lastError"] = self.last_error
        return payload

    def sent_at(self, channel: str) -> int | None:
        if channel == IN_APP:
            return self.in_app_at
        if channel == EMAIL:
            return self.email_at
        if channel == SMS:
            return self.sms_at
        raise ValueError(f"Unknown channel {channel!r}")

    def merge_stored(self, stored: "HostNotifyState") -> "HostNotifyState":
        """Return this state with any timestamp already persisted kept in place."""
        merged = HostNotifyState(
            last_attempt_at=self.last_attempt_at,
            last_error=self.last_error,
        )
        for channel in CHANNELS:
            for value in (stored.sent_at(channel), self.sent_at(channel)):
                if value is not None:
                    record_channel_success(merged, channel, value)
        return merged


def is_channel_done(state: HostNotifyState, channel: str) -> bool:
    return state.sent_at(channel) is not None


def record_channel_success(state: HostNotifyState, channel: str, at: int) -> None:
    """Mark ``channel`` delivered; an existing marker is left untouched."""
    if is_channel_done(state, channel):
        return
    if channel == IN_APP:
        state.in_app_at = at
    elif channel == EMAIL:
        state.email_at = at
    elif channel == SMS:
        state.sms_at = at
    else:
        raise ValueError(f"Unknown channel {channel!r}")


def record_failures(
    state: HostNotifyState, failures: Iterable[tuple[str, str | None]]
) -> None:
    """Overwrite ``last_error`` with ``channel:reason`` pairs from this pass."""
    parts = [f"{channel}:{reason}" for channel, reason in failures]
    state.last_error = "; ".join(parts) if parts else None


def channels_complete(state: HostNotifyState) -> bool:
    """Whether the last dispatch left nothing worth retrying.

    Only in-app and email are consulted; SMS is treated as best effort.
    """
    return (
        state.last_attempt_at is not None
        and not state.last_error
        and (state.in_app_at is not None or state.email_at is not None)
    )


@dataclass
class ChannelResult:
    attempted: bool = False
    success: bool = False
    skipped: bool = False
    reason: str | None = None

    @classmethod
    def skip(cls, reason: str) -> "ChannelResult":
        return cls(skipped=True, reason=reason)

    @property
    def outcome(self) -> str:
        if self.success:
            return "sent"
        if self.skipped:
            return "skipped"
        if self.attempted:
            return "failed"
        return "pending"

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "attempted": self.attempted,
            "success": self.success,
            "skipped": self.skipped,
        }
        if self.reason is not None:
            payload["reason"] = self.reason
        return payload


@dataclass
class NotificationResult:
    in_app: ChannelResult = field(default_factory=ChannelResult)
    email: ChannelResult = field(default_factory=ChannelResult)
    sms: ChannelResult = field(default_factory=ChannelResult)
    host_notify: HostNotifyState = field(default_factory=HostNotifyState)

    def channel(self, name: str) -> ChannelResult:
        return {IN_APP: self.in_app, EMAIL: self.email, SMS: self.sms}[name]

    def failures(self) -> list[tuple[str, str | None]]:
        return [
            (name, self.channel(name).reason)
            for name in CHANNELS
            if self.channel(name).attempted and not self.channel(name).success
        ]

    def summary(self) -> str:
        return " ".join(f"{name}={self.channel(name).outcome}" for name in CHANNELS)

    def to_dict(self) -> dict[str, Any]:
        return {
            "inApp": self.in_app.to_dict(),
            "email": self.email.to_dict(),
            "sms": self.sms.to_dict(),
            "hostNotify": self.host_notify.to_dict(),
        }
