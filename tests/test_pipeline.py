"""End-to-end tests for the position ingestion pipeline.

Positions are ingested with explicit producer timestamps, so zone time
and alarm dwell are deterministic without clock patching.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from safezone_core.core.alarm_ladder import AlarmLadder
from safezone_core.core.pipeline import PositionPipeline
from safezone_core.domain.enums import AlarmLevel, FireReason, ProducerKind, Zone
from safezone_core.domain.geometry import FarmPolicy
from safezone_core.domain.position import PositionEvent
from safezone_core.services.fences import InMemoryFenceSource, dwell_lookup
from safezone_core.services.subscribers import SubscriberHub
from safezone_core.store.entity_store import (
    StoreUnavailableError,
    TrackedEntityStore,
    UnknownEntityError,
)

from tests.test_geofence import _east_of_fence, _inside, _square_fence
from tests.test_store import FlakyRepository


# ── Helpers ──────────────────────────────────────────────────────────────────

_BASE = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _at(seconds: float) -> datetime:
    return _BASE + timedelta(seconds=seconds)


class RecordingNotifier:
    """Collects notify() calls instead of delivering them."""

    def __init__(self) -> None:
        self.calls: list[tuple[str | None, AlarmLevel, str, dict[str, Any]]] = []

    def notify(self, owner_id, level, entity_id, context) -> None:
        self.calls.append((owner_id, level, entity_id, context))

    @property
    def levels(self) -> list[AlarmLevel]:
        return [c[1] for c in self.calls]


class RecordingSocket:
    def __init__(self) -> None:
        self.frames: list[dict] = []

    async def send_text(self, data: str) -> None:
        self.frames.append(json.loads(data))


def _fences() -> InMemoryFenceSource:
    fences = InMemoryFenceSource()
    fences.put_fence(_square_fence("farm-1"))
    return fences


def _pipeline(
    store: TrackedEntityStore | None = None,
    fences: InMemoryFenceSource | None = None,
    notifier: RecordingNotifier | None = None,
    hub: SubscriberHub | None = None,
) -> PositionPipeline:
    fences = fences or _fences()
    return PositionPipeline(
        store or TrackedEntityStore(),
        fences,
        ladder=AlarmLadder(warning_dwell_seconds=25.0, dwell_lookup=dwell_lookup(fences)),
        notifier=notifier,
        hub=hub,
    )


async def _assigned_store(store: TrackedEntityStore | None = None) -> TrackedEntityStore:
    store = store or TrackedEntityStore()
    await store.assign("cow-1", "farm-1", "owner-1")
    return store


# ── Scenario ─────────────────────────────────────────────────────────────────


class TestBreachScenario:
    @pytest.mark.asyncio
    async def test_full_breach_cycle(self) -> None:
        store = await _assigned_store()
        notifier = RecordingNotifier()
        pipeline = _pipeline(store, notifier=notifier)

        r0 = await pipeline.ingest("cow-1", _inside(), _at(0))
        assert r0.zone == Zone.SAFE
        assert r0.fired == []

        r10 = await pipeline.ingest("cow-1", _east_of_fence(30), _at(10))
        assert r10.zone == Zone.WARNING
        assert r10.transition.breach
        assert r10.entity.breach_count == 1
        assert r10.entity.cumulative_safe_seconds == pytest.approx(10.0)
        assert r10.fired == []

        r36 = await pipeline.ingest("cow-1", _east_of_fence(30), _at(36))
        assert [f.level for f in r36.fired] == [AlarmLevel.WARNING]
        assert r36.entity.actual_unsafe_seconds == pytest.approx(26.0)
        assert r36.entity.alarm_triggered(AlarmLevel.WARNING)

        r40 = await pipeline.ingest("cow-1", _east_of_fence(200), _at(40))
        assert r40.zone == Zone.DANGER
        assert not r40.transition.breach
        assert [f.level for f in r40.fired] == [AlarmLevel.DANGER]
        assert r40.entity.slot_timestamp(AlarmLevel.WARNING) == _at(36)

        r50 = await pipeline.ingest("cow-1", _inside(), _at(50))
        assert r50.zone == Zone.SAFE
        assert r50.transition.returned_to_safe
        assert r50.entity.breach_count == 1
        assert r50.entity.cumulative_unsafe_seconds == pytest.approx(40.0)
        assert all(r50.entity.slot_timestamp(lvl) is None for lvl in AlarmLevel)

        assert notifier.levels == [AlarmLevel.WARNING, AlarmLevel.DANGER]
        owner, _, entity_id, context = notifier.calls[1]
        assert owner == "owner-1"
        assert entity_id == "cow-1"
        assert context["zone"] == "danger"
        assert context["farm_id"] == "farm-1"

    @pytest.mark.asyncio
    async def test_second_breach_cycle_refires(self) -> None:
        store = await _assigned_store()
        notifier = RecordingNotifier()
        pipeline = _pipeline(store, notifier=notifier)
        for t, point in [
            (0, _inside()),
            (10, _east_of_fence(200)),
            (20, _inside()),
            (30, _east_of_fence(200)),
        ]:
            result = await pipeline.ingest("cow-1", point, _at(t))
        assert result.entity.breach_count == 2
        assert notifier.levels == [AlarmLevel.DANGER, AlarmLevel.DANGER]

    @pytest.mark.asyncio
    async def test_duplicate_delivery_is_idempotent(self) -> None:
        store = await _assigned_store()
        notifier = RecordingNotifier()
        pipeline = _pipeline(store, notifier=notifier)
        await pipeline.ingest("cow-1", _inside(), _at(0))
        await pipeline.ingest("cow-1", _east_of_fence(30), _at(10))

        first = await pipeline.ingest("cow-1", _east_of_fence(30), _at(36))
        second = await pipeline.ingest("cow-1", _east_of_fence(30), _at(36))

        assert len(first.fired) == 1
        assert second.fired == []
        assert second.entity == first.entity
        assert notifier.levels == [AlarmLevel.WARNING]

    @pytest.mark.asyncio
    async def test_ingest_event_carries_producer(self) -> None:
        store = await _assigned_store()
        pipeline = _pipeline(store)
        point = _inside()
        event = PositionEvent(
            entity_id="cow-1",
            latitude=point.latitude,
            longitude=point.longitude,
            timestamp=_at(0),
            producer=ProducerKind.COLLAR,
        )
        result = await pipeline.ingest_event(event)
        assert result.zone == Zone.SAFE
        assert result.entity.last_position == point
        assert pipeline.ingested_count == 1


# ── Degenerate inputs ────────────────────────────────────────────────────────


class TestDegenerate:
    @pytest.mark.asyncio
    async def test_unknown_entity_raises(self) -> None:
        pipeline = _pipeline()
        with pytest.raises(UnknownEntityError):
            await pipeline.ingest("ghost", _inside(), _at(0))

    @pytest.mark.asyncio
    async def test_farm_without_fence_is_unknown(self) -> None:
        store = TrackedEntityStore()
        await store.assign("cow-1", "farm-without-fence")
        pipeline = _pipeline(store)
        result = await pipeline.ingest("cow-1", _east_of_fence(500), _at(0))
        assert result.zone == Zone.UNKNOWN
        assert result.entity.current_zone == Zone.UNKNOWN
        assert result.fired == []
        assert result.entity.last_position is not None

    @pytest.mark.asyncio
    async def test_unassigned_entity_never_alarms(self) -> None:
        store = await _assigned_store()
        await store.unassign("cow-1")
        notifier = RecordingNotifier()
        pipeline = _pipeline(store, notifier=notifier)
        result = await pipeline.ingest("cow-1", _east_of_fence(500), _at(0))
        assert result.zone == Zone.UNKNOWN
        assert notifier.calls == []

    @pytest.mark.asyncio
    async def test_older_fix_does_not_overwrite_position(self) -> None:
        store = await _assigned_store()
        pipeline = _pipeline(store)
        await pipeline.ingest("cow-1", _inside(), _at(20))
        result = await pipeline.ingest("cow-1", _east_of_fence(10), _at(5))
        assert result.entity.last_position == _inside()
        assert result.entity.last_position_at == _at(20)

    @pytest.mark.asyncio
    async def test_store_failure_applies_nothing(self) -> None:
        repo = FlakyRepository()
        store = await _assigned_store(TrackedEntityStore(repo))
        notifier = RecordingNotifier()
        pipeline = _pipeline(store, notifier=notifier)
        await pipeline.ingest("cow-1", _east_of_fence(200), _at(0))
        before = await store.get("cow-1")
        notifier.calls.clear()

        repo.failing = True
        with pytest.raises(StoreUnavailableError):
            await pipeline.ingest("cow-1", _inside(), _at(10))
        repo.failing = False

        assert await store.get("cow-1") == before
        assert notifier.calls == []

    @pytest.mark.asyncio
    async def test_farm_policy_boundary(self) -> None:
        fences = _fences()
        fences.put_policy("farm-1", FarmPolicy(boundary_distance_m=100.0))
        store = await _assigned_store()
        pipeline = _pipeline(store, fences=fences)
        result = await pipeline.ingest("cow-1", _east_of_fence(80), _at(0))
        assert result.zone == Zone.WARNING


# ── Caller-triggered alarms ──────────────────────────────────────────────────


class TestTrigger:
    @pytest.mark.asyncio
    async def test_audio_alarm_fires_once(self) -> None:
        store = await _assigned_store()
        notifier = RecordingNotifier()
        pipeline = _pipeline(store, notifier=notifier)
        await pipeline.ingest("cow-1", _east_of_fence(30), _at(0))

        first = await pipeline.trigger("cow-1", AlarmLevel.AUDIO, now=_at(2))
        second = await pipeline.trigger("cow-1", AlarmLevel.AUDIO, now=_at(3))

        assert first.fired
        assert second.reason == FireReason.ALREADY_FIRED
        assert second.triggered_at == _at(2)
        assert notifier.levels == [AlarmLevel.AUDIO]

    @pytest.mark.asyncio
    async def test_audio_alarm_refused_while_safe(self) -> None:
        store = await _assigned_store()
        pipeline = _pipeline(store)
        await pipeline.ingest("cow-1", _inside(), _at(0))
        result = await pipeline.trigger("cow-1", AlarmLevel.AUDIO, now=_at(1))
        assert result.reason == FireReason.NOT_ARMED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("trigger_first", [True, False])
    async def test_audio_alarm_racing_return_to_safe(self, trigger_first: bool) -> None:
        for _ in range(20):
            store = await _assigned_store()
            pipeline = _pipeline(store)
            await pipeline.ingest("cow-1", _east_of_fence(30), _at(0))

            trigger = pipeline.trigger("cow-1", AlarmLevel.AUDIO, now=_at(2))
            back_home = pipeline.ingest("cow-1", _inside(), _at(2))
            calls = [trigger, back_home] if trigger_first else [back_home, trigger]
            await asyncio.gather(*calls)

            entity = await store.get("cow-1")
            assert entity.current_zone == Zone.SAFE
            for level in AlarmLevel:
                assert not entity.alarm_triggered(level)
                assert entity.slot_timestamp(level) is None

    @pytest.mark.asyncio
    async def test_trigger_unknown_entity(self) -> None:
        with pytest.raises(UnknownEntityError):
            await _pipeline().trigger("ghost", AlarmLevel.AUDIO, now=_at(0))


# ── Fan-out ──────────────────────────────────────────────────────────────────


class TestFanOut:
    @pytest.mark.asyncio
    async def test_subscribers_receive_updates_and_alarms(self) -> None:
        hub = SubscriberHub()
        socket = RecordingSocket()
        await hub.add(socket)
        store = await _assigned_store()
        pipeline = _pipeline(store, hub=hub)

        await pipeline.ingest("cow-1", _inside(), _at(0))
        await pipeline.ingest("cow-1", _east_of_fence(200), _at(5))
        await pipeline.flush()

        types = [f["type"] for f in socket.frames]
        assert types.count("entity_update") == 2
        assert types.count("alarm") == 1
        alarm = next(f for f in socket.frames if f["type"] == "alarm")
        assert alarm["alarm"]["level"] == 3
        assert alarm["alarm"]["kind"] == "danger_zone_breach"
        assert alarm["entity"]["zone"] == "danger"

    @pytest.mark.asyncio
    async def test_fan_out_failure_does_not_fail_ingest(self) -> None:
        class BrokenSocket:
            async def send_text(self, data: str) -> None:
                raise ConnectionResetError("gone")

        hub = SubscriberHub()
        await hub.add(BrokenSocket())
        store = await _assigned_store()
        pipeline = _pipeline(store, hub=hub)

        result = await pipeline.ingest("cow-1", _inside(), _at(0))
        await pipeline.flush()
        assert result.zone == Zone.SAFE
        assert hub.client_count == 0
