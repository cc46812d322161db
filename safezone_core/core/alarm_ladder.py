"""Alarm ladder — three idempotent alarm slots per tracked entity.

Every level follows the same rule shape, parameterised by the zones it
accepts and a dwell time measured on the actual-in-zone counter:

    Level 1 (audio)    Warning or Danger, no dwell, caller-triggered only
    Level 2 (warning)  Warning for at least ``warning_dwell_seconds``
    Level 3 (danger)   Danger, no dwell

A slot fires at most once per breach cycle.  ``triggered_at`` is
write-once until a return to Safe clears every slot.  The engine never
expires a slot by time.

The ladder is stateless: it accepts an entity and returns an updated
copy together with a FireResult.  It never dispatches notifications.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from safezone_core.domain.entity import TrackedEntity
from safezone_core.domain.enums import AlarmLevel, FireReason, Zone
from safezone_core.domain.results import FireResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlarmRule:
    """Arming condition of one alarm level."""

    level: AlarmLevel
    zones: frozenset[Zone]
    dwell_seconds: float = 0.0
    position_driven: bool = True


def default_rules(warning_dwell_seconds: float = 25.0) -> dict[AlarmLevel, AlarmRule]:
    return {
        AlarmLevel.AUDIO: AlarmRule(
            level=AlarmLevel.AUDIO,
            zones=frozenset({Zone.WARNING, Zone.DANGER}),
            position_driven=False,
        ),
        AlarmLevel.WARNING: AlarmRule(
            level=AlarmLevel.WARNING,
            zones=frozenset({Zone.WARNING}),
            dwell_seconds=warning_dwell_seconds,
        ),
        AlarmLevel.DANGER: AlarmRule(
            level=AlarmLevel.DANGER,
            zones=frozenset({Zone.DANGER}),
        ),
    }


class AlarmLadder:
    """Try-fire and reset logic for the three alarm slots.

    Args:
        warning_dwell_seconds: Default Level-2 dwell threshold.
        dwell_lookup: Optional per-farm Level-2 dwell threshold.  Called
            with a farm id; returning None falls back to the default.
    """

    def __init__(
        self,
        warning_dwell_seconds: float = 25.0,
        dwell_lookup: Callable[[str], float | None] | None = None,
    ) -> None:
        self._rules = default_rules(warning_dwell_seconds)
        self._dwell_lookup = dwell_lookup

    # ── Configuration ────────────────────────────────────────────────────

    def rule(self, level: AlarmLevel, farm_id: str | None = None) -> AlarmRule:
        rule = self._rules[level]
        if level != AlarmLevel.WARNING or farm_id is None or self._dwell_lookup is None:
            return rule
        dwell = self._dwell_lookup(farm_id)
        if dwell is None:
            return rule
        return AlarmRule(
            level=rule.level,
            zones=rule.zones,
            dwell_seconds=dwell,
            position_driven=rule.position_driven,
        )

    @property
    def position_driven_levels(self) -> tuple[AlarmLevel, ...]:
        return tuple(lvl for lvl, rule in self._rules.items() if rule.position_driven)

    # ── Fire ─────────────────────────────────────────────────────────────

    def try_fire(
        self,
        entity: TrackedEntity,
        level: AlarmLevel,
        now: datetime,
    ) -> tuple[TrackedEntity, FireResult]:
        """Attempt to fire *level* for *entity* at *now*.

        Returns the (possibly) updated entity and the outcome.  A refused
        attempt returns the entity unchanged.
        """
        if not entity.is_assigned:
            return entity, self._refuse(entity, level, FireReason.NOT_ARMED, "entity has no farm assignment")

        existing = entity.slot_timestamp(level)
        if existing is not None:
            return entity, self._refuse(
                entity, level, FireReason.ALREADY_FIRED,
                "already fired this breach cycle", triggered_at=existing,
            )

        rule = self.rule(level, entity.farm_id)
        if entity.current_zone not in rule.zones:
            return entity, self._refuse(
                entity, level, FireReason.NOT_ARMED,
                f"zone {entity.current_zone.value} does not arm level {int(level)}",
            )

        dwell = entity.seconds_in_current_zone(now)
        if dwell < rule.dwell_seconds:
            return entity, self._refuse(
                entity, level, FireReason.NOT_ARMED,
                f"dwell {dwell:.1f}s below {rule.dwell_seconds:.1f}s",
            )

        updated = entity.with_slot(level, now)
        logger.info(
            "Alarm level %d fired for entity %s in zone %s",
            int(level),
            entity.entity_id,
            entity.current_zone.value,
        )
        return updated, FireResult(
            entity_id=entity.entity_id,
            level=level,
            fired=True,
            reason=FireReason.FIRED,
            triggered_at=now,
        )

    def evaluate(
        self,
        entity: TrackedEntity,
        now: datetime,
        levels: tuple[AlarmLevel, ...] | None = None,
    ) -> tuple[TrackedEntity, list[FireResult]]:
        """Try every position-driven level; return only the ones that fired."""
        fired: list[FireResult] = []
        for level in levels or self.position_driven_levels:
            entity, result = self.try_fire(entity, level, now)
            if result.fired:
                fired.append(result)
        return entity, fired

    # ── Reset ────────────────────────────────────────────────────────────

    @staticmethod
    def reset_cycle(entity: TrackedEntity) -> TrackedEntity:
        """Clear every slot: a new breach cycle begins."""
        if all(ts is None for ts in entity.triggered_at.values()):
            return entity
        logger.info("Alarm slots reset for entity %s (back to safe)", entity.entity_id)
        return entity.with_cleared_slots()

    # ── Helpers ──────────────────────────────────────────────────────────

    @staticmethod
    def _refuse(
        entity: TrackedEntity,
        level: AlarmLevel,
        reason: FireReason,
        detail: str,
        triggered_at: datetime | None = None,
    ) -> FireResult:
        logger.debug(
            "Alarm level %d not fired for entity %s: %s (%s)",
            int(level),
            entity.entity_id,
            reason.value,
            detail,
        )
        return FireResult(
            entity_id=entity.entity_id,
            level=level,
            fired=False,
            reason=reason,
            detail=detail,
            triggered_at=triggered_at,
        )
