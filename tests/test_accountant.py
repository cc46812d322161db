"""Tests for the zone-time accountant."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from safezone_core.core.accountant import advance
from safezone_core.domain.entity import TrackedEntity
from safezone_core.domain.enums import Zone


# ── Helpers ──────────────────────────────────────────────────────────────────

_BASE = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _at(seconds: float) -> datetime:
    return _BASE + timedelta(seconds=seconds)


def _entity(**overrides) -> TrackedEntity:
    base = {"entity_id": "cow-1", "farm_id": "farm-1", "owner_id": "owner-1"}
    base.update(overrides)
    return TrackedEntity(**base)


def _run(zones: list[tuple[float, Zone]], entity: TrackedEntity | None = None) -> TrackedEntity:
    entity = entity or _entity()
    for seconds, zone in zones:
        entity, _ = advance(entity, zone, _at(seconds))
    return entity


# ── First classification ─────────────────────────────────────────────────────


class TestFirstZone:
    def test_first_known_zone_starts_clock(self) -> None:
        entity, transition = advance(_entity(), Zone.SAFE, _at(0))
        assert transition is None
        assert entity.current_zone == Zone.SAFE
        assert entity.last_zone_change == _at(0)
        assert entity.breach_count == 0

    def test_first_zone_unsafe_is_not_a_breach(self) -> None:
        entity, transition = advance(_entity(), Zone.WARNING, _at(0))
        assert transition is None
        assert entity.breach_count == 0

    def test_unknown_is_ignored(self) -> None:
        start = _run([(0, Zone.SAFE)])
        entity, transition = advance(start, Zone.UNKNOWN, _at(10))
        assert transition is None
        assert entity == start


# ── Same zone ────────────────────────────────────────────────────────────────


class TestSameZone:
    def test_actual_is_recomputed_from_last_change(self) -> None:
        entity = _run([(0, Zone.SAFE), (10, Zone.SAFE), (25, Zone.SAFE)])
        assert entity.actual_safe_seconds == pytest.approx(25.0)
        assert entity.cumulative_safe_seconds == 0.0

    def test_duplicate_event_does_not_double_count(self) -> None:
        entity = _run([(0, Zone.WARNING), (12, Zone.WARNING), (12, Zone.WARNING)])
        assert entity.actual_unsafe_seconds == pytest.approx(12.0)

    def test_older_event_does_not_decrease_actual(self) -> None:
        entity = _run([(0, Zone.SAFE), (20, Zone.SAFE), (5, Zone.SAFE)])
        assert entity.actual_safe_seconds == pytest.approx(20.0)


# ── Transitions ──────────────────────────────────────────────────────────────


class TestTransitions:
    def test_safe_to_warning_is_breach(self) -> None:
        start = _run([(0, Zone.SAFE)])
        entity, transition = advance(start, Zone.WARNING, _at(10))
        assert transition is not None
        assert transition.breach
        assert transition.from_zone == Zone.SAFE
        assert transition.to_zone == Zone.WARNING
        assert transition.elapsed_seconds == pytest.approx(10.0)
        assert transition.final_actual_seconds == pytest.approx(10.0)
        assert entity.breach_count == 1
        assert entity.cumulative_safe_seconds == pytest.approx(10.0)
        assert entity.actual_safe_seconds == 0.0
        assert entity.actual_unsafe_seconds == 0.0
        assert entity.last_zone_change == _at(10)

    def test_warning_to_danger_is_not_breach(self) -> None:
        start = _run([(0, Zone.SAFE), (10, Zone.WARNING)])
        entity, transition = advance(start, Zone.DANGER, _at(15))
        assert transition is not None
        assert not transition.breach
        assert entity.breach_count == 1
        assert entity.cumulative_unsafe_seconds == pytest.approx(5.0)

    def test_return_to_safe(self) -> None:
        start = _run([(0, Zone.SAFE), (10, Zone.DANGER)])
        entity, transition = advance(start, Zone.SAFE, _at(40))
        assert transition.returned_to_safe
        assert entity.cumulative_unsafe_seconds == pytest.approx(30.0)
        assert entity.cumulative_safe_seconds == pytest.approx(10.0)

    def test_breach_sequence_counts_two(self) -> None:
        zones = [Zone.SAFE, Zone.WARNING, Zone.DANGER, Zone.WARNING, Zone.SAFE, Zone.WARNING]
        entity = _run([(i * 10, z) for i, z in enumerate(zones)])
        assert entity.breach_count == 2

    def test_cumulative_counters_never_decrease(self) -> None:
        zones = [Zone.SAFE, Zone.WARNING, Zone.SAFE, Zone.DANGER, Zone.DANGER, Zone.SAFE, Zone.WARNING]
        entity = _entity()
        prev_safe = prev_unsafe = 0.0
        for i, zone in enumerate(zones):
            entity, _ = advance(entity, zone, _at(i * 7))
            assert entity.cumulative_safe_seconds >= prev_safe
            assert entity.cumulative_unsafe_seconds >= prev_unsafe
            prev_safe = entity.cumulative_safe_seconds
            prev_unsafe = entity.cumulative_unsafe_seconds

    def test_at_most_one_actual_counter_is_nonzero(self) -> None:
        zones = [Zone.SAFE, Zone.SAFE, Zone.WARNING, Zone.WARNING, Zone.SAFE, Zone.DANGER, Zone.DANGER]
        entity = _entity()
        for i, zone in enumerate(zones):
            entity, _ = advance(entity, zone, _at(i * 4))
            assert not (entity.actual_safe_seconds > 0 and entity.actual_unsafe_seconds > 0)


# ── Clock skew ───────────────────────────────────────────────────────────────


class TestClockSkew:
    def test_out_of_order_transition_is_clamped(self) -> None:
        start = _run([(0, Zone.SAFE), (20, Zone.SAFE)])
        start = start.model_copy(update={"last_zone_change": _at(20)})
        entity, transition = advance(start, Zone.WARNING, _at(5))
        assert transition.elapsed_seconds == 0.0
        assert entity.cumulative_safe_seconds == 0.0
        assert entity.last_zone_change == _at(20)


# ── Reported zone time ───────────────────────────────────────────────────────


class TestSummaryZoneTime:
    def test_safe_time_grows_without_new_fixes(self) -> None:
        entity = _run([(0, Zone.SAFE)])
        assert entity.actual_safe_seconds == 0.0
        summary = entity.summary(now=_at(100))
        assert summary["actual_safe_seconds"] == pytest.approx(100.0)
        assert summary["actual_unsafe_seconds"] == 0.0
        assert summary["seconds_in_zone"] == pytest.approx(100.0)

    def test_unsafe_time_grows_without_new_fixes(self) -> None:
        entity = _run([(0, Zone.SAFE), (10, Zone.WARNING), (15, Zone.WARNING)])
        summary = entity.summary(now=_at(70))
        assert summary["actual_unsafe_seconds"] == pytest.approx(60.0)
        assert summary["actual_safe_seconds"] == 0.0

    def test_defaults_to_wall_clock(self) -> None:
        entity = _run([(0, Zone.SAFE)])
        with patch("safezone_core.domain.entity.utc_now", return_value=_at(45)):
            summary = entity.summary()
        assert summary["actual_safe_seconds"] == pytest.approx(45.0)

    def test_unclassified_entity_reports_zero(self) -> None:
        summary = _entity().summary(now=_at(100))
        assert summary["actual_safe_seconds"] == 0.0
        assert summary["actual_unsafe_seconds"] == 0.0
        assert summary["seconds_in_zone"] == 0.0
