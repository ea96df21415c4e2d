"""Shared fixtures: a scriptable sensor gateway and a renderer that records calls."""

import asyncio
import os
from collections.abc import Sequence
from datetime import datetime, timezone

os.environ.setdefault("MPLBACKEND", "Agg")

import pytest  # noqa: E402

from sunsetter.models import (  # noqa: E402
    CelestialSnapshot,
    FacingMode,
    LocationCoordinate,
    OrientationReading,
    RenderMode,
    SunSample,
)
from sunsetter.renderers.base import ChartRenderer  # noqa: E402
from sunsetter.sensors import (  # noqa: E402
    BaseSensorGateway,
    CameraConstraints,
    VideoStream,
    VideoTrack,
)

# Noon PST on the June solstice, the sun is high over San Francisco
SOLSTICE_NOON_PST = datetime(2024, 6, 21, 19, 0, tzinfo=timezone.utc)
SF = (37.7749, -122.4194)


class ScriptedGateway(BaseSensorGateway):
    """Gateway whose answers come from scripts instead of hardware.

    locations: (delay_s, LocationCoordinate | Exception) consumed per request.
    orientation: reading returned by every orientation read, or an exception.
    camera_script: per-open outcome (None = success, Exception = failure);
        once exhausted every open succeeds.
    """

    def __init__(
        self,
        locations: Sequence[tuple[float, object]] = (),
        *,
        orientation: OrientationReading | Exception | None = None,
        orientation_permission: bool = True,
        camera_script: Sequence[Exception | None] = (),
        camera_delay: float = 0.0,
        manual_heading: float | None = None,
    ) -> None:
        super().__init__(manual_heading=manual_heading)
        self.locations = list(locations)
        self.orientation = orientation
        self.orientation_permission = orientation_permission
        self.camera_script = list(camera_script)
        self.camera_delay = camera_delay
        self.camera_requests: list[CameraConstraints] = []
        self.opened: list[VideoStream] = []

    async def _acquire_location(self) -> LocationCoordinate:
        delay, outcome = self.locations.pop(0)
        await asyncio.sleep(delay)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome  # type: ignore[return-value]

    async def _read_orientation(self) -> OrientationReading:
        if self.orientation is None:
            return await super()._read_orientation()
        if isinstance(self.orientation, Exception):
            raise self.orientation
        return self.orientation

    async def request_orientation_permission(self) -> bool:
        return self.orientation_permission

    async def _open_camera(self, constraints: CameraConstraints) -> VideoStream:
        self.camera_requests.append(constraints)
        await asyncio.sleep(self.camera_delay)
        if self.camera_script:
            outcome = self.camera_script.pop(0)
            if outcome is not None:
                raise outcome
        stream = VideoStream([VideoTrack(constraints.facing_mode)])
        self.opened.append(stream)
        return stream

    @property
    def subscriber_count(self) -> int:
        return len(self._orientation_callbacks)


class RecordingRenderer(ChartRenderer):
    """Renderer that keeps the order of port calls in `calls`."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[str] = []
        self.dispose_count = 0

    def update_data(self, samples: Sequence[SunSample], heading: float) -> None:
        self.calls.append("update_data")
        super().update_data(samples, heading)

    def render_2d(self, samples: Sequence[SunSample], heading: float) -> None:
        self.calls.append("render_2d")
        super().render_2d(samples, heading)

    def update_celestial_positions(
        self, snapshot: CelestialSnapshot, lat: float, lon: float
    ) -> None:
        self.calls.append("update_celestial_positions")
        super().update_celestial_positions(snapshot, lat, lon)

    def start_animation_loop(self) -> None:
        self.calls.append("start_animation_loop")
        super().start_animation_loop()

    def toggle_mode(self, stream: VideoStream | None = None) -> RenderMode:
        self.calls.append("toggle_mode")
        return super().toggle_mode(stream)

    def dispose(self) -> None:
        self.dispose_count += 1
        super().dispose()

    def _draw(self) -> None:
        self.calls.append("draw")


def make_location(
    lat: float = SF[0], lon: float = SF[1], timestamp: datetime = SOLSTICE_NOON_PST
) -> LocationCoordinate:
    return LocationCoordinate(lat=lat, lon=lon, timestamp=timestamp, accuracy=10.0)


@pytest.fixture
def clock():
    return lambda: SOLSTICE_NOON_PST


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()


@pytest.fixture
def rear_stream() -> VideoStream:
    return VideoStream([VideoTrack(FacingMode.ENVIRONMENT)])
