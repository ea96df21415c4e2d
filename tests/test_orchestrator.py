"""Tests for the orchestrator state machine."""

import asyncio
from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from sunsetter.config import Settings
from sunsetter.errors import SensorPermissionError, SensorTimeoutError, SensorUnavailableError
from sunsetter.models import (
    AppState,
    AppStatus,
    FallbackMode,
    OrientationReading,
    RenderMode,
)
from sunsetter.orchestrator import Orchestrator, StreamOwner, plan_graph, select_fallback

from conftest import SOLSTICE_NOON_PST, ScriptedGateway, make_location

UTC = timezone.utc


def _orchestrator(gateway, renderer, clock, **kwargs) -> tuple[Orchestrator, list[AppStatus]]:
    orchestrator = Orchestrator(gateway, renderer, clock=clock, **kwargs)
    statuses: list[AppStatus] = []
    orchestrator.on_status_update(statuses.append)
    return orchestrator, statuses


async def _located(renderer, clock, **gateway_kwargs) -> tuple[Orchestrator, ScriptedGateway]:
    gateway = ScriptedGateway([(0, make_location())], **gateway_kwargs)
    orchestrator = Orchestrator(gateway, renderer, clock=clock)
    assert await orchestrator.request_location()
    return orchestrator, gateway


def test_starts_in_init(renderer, clock) -> None:
    orchestrator = Orchestrator(ScriptedGateway(), renderer, clock=clock)
    status = orchestrator.get_status()
    assert status.state is AppState.INIT
    assert status.confidence == 0


@pytest.mark.asyncio
async def test_initialize_without_cached_location(renderer, clock) -> None:
    orchestrator, statuses = _orchestrator(ScriptedGateway(), renderer, clock)
    await orchestrator.initialize()
    assert [(s.state, s.confidence) for s in statuses] == [
        (AppState.PERMISSIONS, 10),
        (AppState.PERMISSIONS, 20),
    ]
    assert renderer.calls == []


@pytest.mark.asyncio
async def test_initialize_reuses_fresh_cached_location(renderer, clock) -> None:
    """A location younger than five minutes skips sensing entirely."""
    cached = make_location(timestamp=SOLSTICE_NOON_PST - timedelta(minutes=4))
    gateway = ScriptedGateway([(0, cached)])
    await gateway.get_location()

    orchestrator, statuses = _orchestrator(gateway, renderer, clock)
    await orchestrator.initialize()

    assert [(s.state, s.confidence) for s in statuses] == [
        (AppState.PERMISSIONS, 10),
        (AppState.COMPUTING, 60),
        (AppState.COMPUTING, 80),
        (AppState.RENDERING, 90),
        (AppState.RENDERING, 100),
    ]
    assert orchestrator.get_current_location() is cached


@pytest.mark.asyncio
async def test_initialize_ignores_stale_cached_location(renderer, clock) -> None:
    cached = make_location(timestamp=SOLSTICE_NOON_PST - timedelta(minutes=6))
    gateway = ScriptedGateway([(0, cached)])
    await gateway.get_location()

    orchestrator, statuses = _orchestrator(gateway, renderer, clock)
    await orchestrator.initialize()
    assert statuses[-1].state is AppState.PERMISSIONS
    assert statuses[-1].confidence == 20
    assert orchestrator.get_current_location() is None


@pytest.mark.asyncio
async def test_request_location_happy_path(renderer, clock) -> None:
    """permissions 30 -> sensing 70 -> computing 80 -> rendering 90 -> rendering 100."""
    location = make_location()
    orchestrator, statuses = _orchestrator(ScriptedGateway([(0, location)]), renderer, clock)

    assert await orchestrator.request_location() is True

    assert [(s.state, s.confidence) for s in statuses] == [
        (AppState.PERMISSIONS, 30),
        (AppState.SENSING, 70),
        (AppState.COMPUTING, 80),
        (AppState.RENDERING, 90),
        (AppState.RENDERING, 100),
    ]
    final = orchestrator.get_status()
    assert final.location is location
    assert final.samples is not None and len(final.samples) == 289
    assert final.error is None
    assert renderer.calls == [
        "update_data",
        "update_celestial_positions",
        "render_2d",
        "draw",
        "start_animation_loop",
    ]
    assert orchestrator.snapshot is not None
    assert orchestrator.snapshot.sun.t == SOLSTICE_NOON_PST


@pytest.mark.asyncio
async def test_track_shape_comes_from_settings(renderer, clock) -> None:
    settings = Settings(track_hours=2, track_step_min=30)
    orchestrator, _ = _orchestrator(
        ScriptedGateway([(0, make_location())]), renderer, clock, settings=settings
    )
    await orchestrator.request_location()
    assert len(orchestrator.get_status().samples) == 5


@pytest.mark.parametrize(
    "error,fragment",
    [
        (SensorPermissionError("denied"), "permission"),
        (SensorTimeoutError("slow"), "timed out"),
        (SensorUnavailableError("none"), "not available"),
    ],
)
@pytest.mark.asyncio
async def test_location_errors_map_to_messages(renderer, clock, error, fragment) -> None:
    orchestrator, statuses = _orchestrator(ScriptedGateway([(0, error)]), renderer, clock)

    assert await orchestrator.request_location() is False

    status = orchestrator.get_status()
    assert status.state is AppState.ERROR
    assert status.confidence == 0
    assert fragment in status.error.lower()
    assert renderer.calls == []


@pytest.mark.asyncio
async def test_location_timeout_from_settings(renderer, clock) -> None:
    """The configured timeout bounds the wait for a location."""
    gateway = ScriptedGateway([(5.0, make_location())])
    orchestrator, _ = _orchestrator(
        gateway, renderer, clock, settings=Settings(location_timeout_ms=20)
    )
    assert await orchestrator.request_location() is False
    assert "timed out" in orchestrator.get_status().error


@pytest.mark.asyncio
async def test_invalid_location_is_rejected(renderer, clock) -> None:
    gateway = ScriptedGateway([(0, make_location(lat=95.0))])
    orchestrator, _ = _orchestrator(gateway, renderer, clock)

    assert await orchestrator.request_location() is False
    status = orchestrator.get_status()
    assert status.state is AppState.ERROR
    assert status.error == "Failed to compute sun path."
    assert orchestrator.get_current_location() is None


@pytest.mark.asyncio
async def test_error_is_cleared_by_next_success(renderer, clock) -> None:
    gateway = ScriptedGateway([(0, SensorTimeoutError("slow")), (0, make_location())])
    orchestrator, _ = _orchestrator(gateway, renderer, clock)

    await orchestrator.request_location()
    assert orchestrator.get_status().error is not None
    await orchestrator.request_location()
    assert orchestrator.get_status().state is AppState.RENDERING
    assert orchestrator.get_status().error is None


@pytest.mark.asyncio
async def test_error_messages_follow_language(renderer, clock) -> None:
    gateway = ScriptedGateway([(0, SensorPermissionError("denied"))])
    orchestrator, _ = _orchestrator(gateway, renderer, clock, lang="ko")
    await orchestrator.request_location()
    assert "위치 권한" in orchestrator.get_status().error


@pytest.mark.asyncio
async def test_superseded_location_result_is_dropped(renderer, clock) -> None:
    """A slow first request finishing after a second one does not overwrite it."""
    first = make_location(lat=10.0, lon=10.0)
    second = make_location(lat=20.0, lon=20.0)
    gateway = ScriptedGateway([(0.2, first), (0, second)])
    orchestrator, _ = _orchestrator(gateway, renderer, clock)

    results = await asyncio.gather(orchestrator.request_location(), orchestrator.request_location())

    assert results == [False, True]
    assert orchestrator.get_current_location() is second
    assert orchestrator.get_status().location is second
    assert renderer.calls.count("render_2d") == 1


@pytest.mark.asyncio
async def test_superseded_failure_is_dropped(renderer, clock) -> None:
    gateway = ScriptedGateway([(0.2, SensorPermissionError("late")), (0, make_location())])
    orchestrator, _ = _orchestrator(gateway, renderer, clock)

    await asyncio.gather(orchestrator.request_location(), orchestrator.request_location())

    status = orchestrator.get_status()
    assert status.state is AppState.RENDERING
    assert status.confidence == 100
    assert status.error is None


@pytest.mark.asyncio
async def test_heading_defaults_to_north(renderer, clock) -> None:
    await _located(renderer, clock)
    assert renderer.heading == 0.0


@pytest.mark.asyncio
async def test_heading_from_compass(renderer, clock) -> None:
    orchestrator, _ = await _located(
        renderer, clock, orientation=OrientationReading(alpha=45.0, absolute=True)
    )
    assert renderer.heading == 45.0
    assert orchestrator.heading == 45.0


@pytest.mark.asyncio
async def test_render_failure_maps_to_compute_error(renderer, clock, monkeypatch) -> None:
    def broken(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(renderer, "render_2d", broken)
    orchestrator, _ = _orchestrator(ScriptedGateway([(0, make_location())]), renderer, clock)

    assert await orchestrator.request_location() is False
    status = orchestrator.get_status()
    assert status.state is AppState.ERROR
    assert status.error == "Failed to compute sun path."


@pytest.mark.asyncio
async def test_observers_run_in_order_and_unsubscribe(renderer, clock) -> None:
    orchestrator = Orchestrator(ScriptedGateway(), renderer, clock=clock)
    seen: list[str] = []

    def failing(status: AppStatus) -> None:
        seen.append("failing")
        raise RuntimeError("observer bug")

    orchestrator.on_status_update(lambda s: seen.append("first"))
    orchestrator.on_status_update(failing)
    unsubscribe = orchestrator.on_status_update(lambda s: seen.append("last"))

    await orchestrator.initialize()
    assert seen[:3] == ["first", "failing", "last"]

    unsubscribe()
    seen.clear()
    await orchestrator.initialize()
    assert "last" not in seen


def test_status_is_immutable(renderer, clock) -> None:
    status = Orchestrator(ScriptedGateway(), renderer, clock=clock).get_status()
    with pytest.raises(FrozenInstanceError):
        status.confidence = 50  # type: ignore[misc]


@pytest.mark.parametrize(
    "confidence,mode",
    [
        (0, FallbackMode.DEMO),
        (29.9, FallbackMode.DEMO),
        (30, FallbackMode.MANUAL),
        (69.9, FallbackMode.MANUAL),
        (70, FallbackMode.TWO_D),
        (100, FallbackMode.TWO_D),
    ],
)
def test_select_fallback(confidence: float, mode: FallbackMode) -> None:
    assert select_fallback(confidence) is mode


def test_plan_graph() -> None:
    assert plan_graph(location=True, orientation=True, camera=True) == [
        "init",
        "get_location",
        "compute_track",
        "get_orientation",
        "render_ar",
        "monitor",
    ]
    assert plan_graph(location=False, orientation=False, camera=False) == [
        "init",
        "request_manual_location",
        "render_2d",
        "monitor",
    ]


def test_stream_owner_is_single_holder(rear_stream) -> None:
    owner = StreamOwner()
    owner.acquire(rear_stream)
    with pytest.raises(RuntimeError):
        owner.acquire(rear_stream)
    assert owner.release() is rear_stream
    assert not rear_stream.active
    assert owner.release() is None


# Render mode and camera


@pytest.mark.asyncio
async def test_toggle_to_ar_and_back(renderer, clock) -> None:
    orchestrator, gateway = await _located(renderer, clock)

    assert await orchestrator.toggle_render_mode() is RenderMode.AR
    stream = gateway.opened[0]
    assert renderer.stream is stream
    assert renderer.animating
    assert gateway.subscriber_count == 1

    assert await orchestrator.toggle_render_mode() is RenderMode.TWO_D
    assert not stream.active
    assert renderer.stream is None
    assert gateway.subscriber_count == 0


@pytest.mark.asyncio
async def test_orientation_events_update_heading(renderer, clock) -> None:
    orchestrator, gateway = await _located(renderer, clock)
    await orchestrator.toggle_render_mode()

    gateway._emit_orientation(OrientationReading(alpha=123.0))
    assert renderer.heading == 123.0

    gateway._emit_orientation(OrientationReading(alpha=999.0))  # invalid, ignored
    assert renderer.heading == 123.0


@pytest.mark.asyncio
async def test_no_orientation_subscription_without_permission(renderer, clock) -> None:
    orchestrator, gateway = await _located(renderer, clock, orientation_permission=False)
    assert await orchestrator.toggle_render_mode() is RenderMode.AR
    assert gateway.subscriber_count == 0


@pytest.mark.parametrize(
    "script,message",
    [
        ([SensorPermissionError("denied")], "Camera permission denied"),
        ([SensorUnavailableError("no camera")] * 2, "Camera not available"),
    ],
)
@pytest.mark.asyncio
async def test_camera_failure_keeps_2d(renderer, clock, script, message) -> None:
    orchestrator, gateway = await _located(renderer, clock, camera_script=script)

    assert await orchestrator.toggle_render_mode() is RenderMode.TWO_D
    status = orchestrator.get_status()
    assert status.state is AppState.ERROR
    assert message in status.error
    assert renderer.current_mode is RenderMode.TWO_D
    assert gateway.opened == []


@pytest.mark.asyncio
async def test_overlapping_toggle_is_rejected(renderer, clock) -> None:
    orchestrator, gateway = await _located(renderer, clock, camera_delay=0.1)

    first, second = await asyncio.gather(
        orchestrator.toggle_render_mode(), orchestrator.toggle_render_mode()
    )

    assert first is RenderMode.AR
    assert second is RenderMode.TWO_D
    assert len(gateway.opened) == 1


@pytest.mark.asyncio
async def test_switch_camera_requires_ar(renderer, clock) -> None:
    orchestrator, _ = await _located(renderer, clock)
    assert await orchestrator.switch_camera() is False


@pytest.mark.asyncio
async def test_switch_camera(renderer, clock) -> None:
    orchestrator, gateway = await _located(renderer, clock)
    await orchestrator.toggle_render_mode()
    rear = gateway.opened[0]

    assert await orchestrator.switch_camera() is True

    front = gateway.opened[1]
    assert not rear.active
    assert front.active
    assert front.facing_mode.value == "user"
    assert renderer.stream is front
    assert renderer.current_mode is RenderMode.AR


@pytest.mark.asyncio
async def test_switch_camera_failure_drops_to_2d(renderer, clock) -> None:
    orchestrator, gateway = await _located(renderer, clock)
    await orchestrator.toggle_render_mode()
    rear = gateway.opened[0]
    gateway.camera_script = [SensorUnavailableError("gone")] * 3

    assert await orchestrator.switch_camera() is False

    assert not rear.active
    assert renderer.current_mode is RenderMode.TWO_D
    assert gateway.subscriber_count == 0
    # A fresh toggle can acquire a stream again
    assert await orchestrator.toggle_render_mode() is RenderMode.AR


# Time navigation


def test_time_navigation_without_location(renderer, clock) -> None:
    orchestrator = Orchestrator(ScriptedGateway(), renderer, clock=clock)
    assert orchestrator.jump_to_next_sunrise() is None
    assert orchestrator.jump_to_next_sunset() is None

    later = SOLSTICE_NOON_PST + timedelta(hours=3)
    orchestrator.set_time(later)
    assert orchestrator.get_current_timestamp() == later
    assert renderer.calls == []


@pytest.mark.asyncio
async def test_jump_to_next_sunset_moves_displayed_time(renderer, clock) -> None:
    orchestrator, gateway = await _located(renderer, clock)
    status_before = orchestrator.get_status()

    event = orchestrator.jump_to_next_sunset()

    assert event is not None
    assert datetime(2024, 6, 22, 3, 15, tzinfo=UTC) <= event.time <= datetime(
        2024, 6, 22, 3, 55, tzinfo=UTC
    )
    assert orchestrator.get_current_timestamp() == event.time
    assert renderer.snapshot.sun.t == event.time
    # Navigation never re-enters sensing
    assert orchestrator.get_status() is status_before
    assert gateway.locations == []


@pytest.mark.asyncio
async def test_jump_to_next_sunrise_then_return_to_now(renderer, clock) -> None:
    orchestrator, _ = await _located(renderer, clock)

    event = orchestrator.jump_to_next_sunrise()
    assert event is not None
    assert event.time > SOLSTICE_NOON_PST

    orchestrator.return_to_now()
    assert orchestrator.get_current_timestamp() == SOLSTICE_NOON_PST
    assert renderer.snapshot.sun.t == SOLSTICE_NOON_PST


@pytest.mark.asyncio
async def test_jump_returns_none_in_polar_night(renderer) -> None:
    december = datetime(2024, 12, 21, tzinfo=UTC)
    gateway = ScriptedGateway([(0, make_location(lat=80.0, lon=0.0, timestamp=december))])
    orchestrator = Orchestrator(gateway, renderer, clock=lambda: december)
    await orchestrator.request_location()

    assert orchestrator.jump_to_next_sunrise() is None
    assert orchestrator.get_current_timestamp() == december


def test_set_time_rejects_out_of_range(renderer, clock) -> None:
    orchestrator = Orchestrator(ScriptedGateway(), renderer, clock=clock)
    with pytest.raises(ValidationError):
        orchestrator.set_time(datetime(1800, 1, 1, tzinfo=UTC))
    assert orchestrator.get_current_timestamp() == SOLSTICE_NOON_PST


# Teardown


@pytest.mark.asyncio
async def test_dispose_releases_everything(renderer, clock) -> None:
    orchestrator, gateway = await _located(renderer, clock)
    await orchestrator.toggle_render_mode()
    stream = gateway.opened[0]
    seen: list[AppStatus] = []
    orchestrator.on_status_update(seen.append)

    orchestrator.dispose()
    orchestrator.dispose()

    assert not stream.active
    assert gateway.subscriber_count == 0
    assert renderer.dispose_count == 1
    assert renderer.disposed
    assert await orchestrator.toggle_render_mode() is renderer.current_mode
    assert seen == []


@pytest.mark.asyncio
async def test_async_context_manager_disposes(renderer, clock) -> None:
    async with Orchestrator(ScriptedGateway(), renderer, clock=clock) as orchestrator:
        await orchestrator.initialize()
    assert renderer.dispose_count == 1


@pytest.mark.asyncio
async def test_dispose_during_camera_start_stops_new_stream(renderer, clock) -> None:
    orchestrator, gateway = await _located(renderer, clock, camera_delay=0.1)

    task = asyncio.create_task(orchestrator.toggle_render_mode())
    await asyncio.sleep(0.01)
    orchestrator.dispose()
    await task

    assert len(gateway.opened) == 1
    assert not gateway.opened[0].active


@pytest.mark.asyncio
async def test_dispose_during_location_request_drops_result(renderer, clock) -> None:
    gateway = ScriptedGateway([(0.1, make_location())])
    orchestrator = Orchestrator(gateway, renderer, clock=clock)

    task = asyncio.create_task(orchestrator.request_location())
    await asyncio.sleep(0.01)
    orchestrator.dispose()

    assert await task is False
    assert "render_2d" not in renderer.calls


def test_celestial_refresh_without_location_is_a_no_op(renderer, clock) -> None:
    orchestrator = Orchestrator(ScriptedGateway(), renderer, clock=clock)
    orchestrator._update_celestial_data()
    assert orchestrator.snapshot is None
    assert renderer.calls == []
