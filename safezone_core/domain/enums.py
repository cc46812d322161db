"""Controlled enumerations for the safezone-core domain.

Every categorical field in the domain MUST reference an enum defined here.
Free-form strings are not acceptable for classification fields.
"""

from __future__ import annotations

from enum import Enum, IntEnum


class Zone(str, Enum):
    """Where a position sits relative to its farm's fence."""

    SAFE = "safe"
    WARNING = "warning"
    DANGER = "danger"
    UNKNOWN = "unknown"

    @property
    def severity(self) -> int:
        return _ZONE_SEVERITY[self]

    @property
    def is_known(self) -> bool:
        return self is not Zone.UNKNOWN

    @property
    def is_unsafe(self) -> bool:
        """True for Warning and Danger.  Unknown is neither safe nor unsafe."""
        return self in (Zone.WARNING, Zone.DANGER)


_ZONE_SEVERITY = {
    Zone.UNKNOWN: -1,
    Zone.SAFE: 0,
    Zone.WARNING: 1,
    Zone.DANGER: 2,
}


class AlarmLevel(IntEnum):
    """The three rungs of the alarm ladder."""

    AUDIO = 1
    WARNING = 2
    DANGER = 3


class FireReason(str, Enum):
    """Outcome of an attempt to fire an alarm slot."""

    FIRED = "fired"
    ALREADY_FIRED = "already_fired"
    NOT_ARMED = "not_armed"


class SlotState(str, Enum):
    """Observable state of a single alarm slot."""

    NOT_APPLICABLE = "not_applicable"
    ARMED = "armed"
    FIRED = "fired"


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class NotificationKind(str, Enum):
    """What kind of notification an alarm level produces."""

    AUDIO_ALARM = "audio_alarm"
    WARNING_ZONE_BREACH = "warning_zone_breach"
    DANGER_ZONE_BREACH = "danger_zone_breach"


class ProducerKind(str, Enum):
    """Who emitted a position event."""

    COLLAR = "collar"
    SIMULATOR = "simulator"
    RECOVERY_AGENT = "recovery_agent"
    UNSPECIFIED = "unspecified"


def notification_kind_for(level: AlarmLevel) -> NotificationKind:
    """Map an alarm level to the notification it produces."""
    match level:
        case AlarmLevel.AUDIO:
            return NotificationKind.AUDIO_ALARM
        case AlarmLevel.WARNING:
            return NotificationKind.WARNING_ZONE_BREACH
        case AlarmLevel.DANGER:
            return NotificationKind.DANGER_ZONE_BREACH
    raise ValueError(f"unhandled alarm level: {level!r}")
