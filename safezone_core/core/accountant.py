"""Zone-time accountant — pure bookkeeping of time-in-zone and breaches.

advance(entity, new_zone, now) returns an updated copy of the entity and,
when the zone changed, a ZoneTransition describing what happened.

Rules:
    - Same zone: the actual counter of the current zone's class is
      recomputed as ``now - last_zone_change`` (never incremented), and
      never moves backwards.
    - Zone change: the time spent in the old zone is added to the
      cumulative counter of the old zone's class; both actual counters
      restart at zero; a Safe → Warning/Danger change is a breach.
    - Elapsed time is clamped at zero.  Re-delivered or out-of-order
      events can therefore never decrement a counter.
    - Unknown is not a zone anyone accrues time in.  Transitions into
      Unknown are ignored; transitions out of Unknown start the clock.
"""

from __future__ import annotations

import logging
from datetime import datetime

from safezone_core.domain.entity import TrackedEntity
from safezone_core.domain.enums import Zone
from safezone_core.domain.results import ZoneTransition

logger = logging.getLogger(__name__)


def _clamped_elapsed(entity: TrackedEntity, now: datetime) -> float:
    if entity.last_zone_change is None:
        return 0.0
    elapsed = (now - entity.last_zone_change).total_seconds()
    if elapsed < 0:
        logger.debug(
            "StaleClockSkew: entity %s event at %s precedes last zone change %s; clamped to 0",
            entity.entity_id,
            now.isoformat(),
            entity.last_zone_change.isoformat(),
        )
        return 0.0
    return elapsed


def advance(
    entity: TrackedEntity,
    new_zone: Zone,
    now: datetime,
) -> tuple[TrackedEntity, ZoneTransition | None]:
    """Apply a classification at *now* to *entity*."""
    if not new_zone.is_known:
        return entity, None

    old_zone = entity.current_zone
    elapsed = _clamped_elapsed(entity, now)

    # ── First known zone ─────────────────────────────────────────────────
    if not old_zone.is_known:
        updated = entity.model_copy(update={
            "current_zone": new_zone,
            "last_zone_change": now,
            "actual_safe_seconds": 0.0,
            "actual_unsafe_seconds": 0.0,
        })
        return updated, None

    # ── No transition: recompute the actual counter ──────────────────────
    if new_zone == old_zone:
        if old_zone == Zone.SAFE:
            update = {"actual_safe_seconds": max(entity.actual_safe_seconds, elapsed)}
        else:
            update = {"actual_unsafe_seconds": max(entity.actual_unsafe_seconds, elapsed)}
        return entity.model_copy(update=update), None

    # ── Transition ───────────────────────────────────────────────────────
    cumulative_safe = entity.cumulative_safe_seconds
    cumulative_unsafe = entity.cumulative_unsafe_seconds
    if old_zone == Zone.SAFE:
        cumulative_safe += elapsed
        final_actual = max(entity.actual_safe_seconds, elapsed)
    else:
        cumulative_unsafe += elapsed
        final_actual = max(entity.actual_unsafe_seconds, elapsed)

    breach = old_zone == Zone.SAFE and new_zone.is_unsafe
    last_change = entity.last_zone_change
    if last_change is None or now > last_change:
        last_change = now

    updated = entity.model_copy(update={
        "current_zone": new_zone,
        "last_zone_change": last_change,
        "cumulative_safe_seconds": cumulative_safe,
        "cumulative_unsafe_seconds": cumulative_unsafe,
        "actual_safe_seconds": 0.0,
        "actual_unsafe_seconds": 0.0,
        "breach_count": entity.breach_count + (1 if breach else 0),
    })

    transition = ZoneTransition(
        entity_id=entity.entity_id,
        from_zone=old_zone,
        to_zone=new_zone,
        at=last_change,
        elapsed_seconds=elapsed,
        final_actual_seconds=final_actual,
        breach=breach,
    )
    if breach:
        logger.info(
            "Breach: entity %s left safe zone for %s (breach #%d)",
            entity.entity_id,
            new_zone.value,
            updated.breach_count,
        )
    else:
        logger.info(
            "Zone transition: entity %s %s → %s after %.1fs",
            entity.entity_id,
            old_zone.value,
            new_zone.value,
            elapsed,
        )
    return updated, transition
