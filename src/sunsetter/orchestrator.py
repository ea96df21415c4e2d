"""Orchestrator: drives sensing, computing, and rendering through AppState transitions.

Single-threaded asyncio. Every status change replaces the immutable AppStatus
and is broadcast to observers before the mutating call returns. Location
requests carry a sequence number so that results of superseded requests are
dropped. The camera stream is owned here and nowhere else.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime

from pydantic import ValidationError

from sunsetter.config import Settings
from sunsetter.ephemeris import (
    compute_track,
    find_next_sunrise,
    find_next_sunset,
    get_celestial_data,
)
from sunsetter.errors import ComputeError, SensorError, SensorErrorKind
from sunsetter.i18n import t
from sunsetter.models import (
    AppState,
    AppStatus,
    CelestialSnapshot,
    FallbackMode,
    HorizonEvent,
    LocationCoordinate,
    OrientationReading,
    RenderMode,
    TrackParameters,
    utcnow,
)
from sunsetter.renderers.base import RenderingPort
from sunsetter.sensors import SensorGateway, Unsubscribe, VideoStream
from sunsetter.validation import validate_location, validate_orientation, validate_timestamp

log = logging.getLogger(__name__)

StatusCallback = Callable[[AppStatus], None]

_LOCATION_ERRORS = {
    SensorErrorKind.PERMISSION: "error_location_permission",
    SensorErrorKind.TIMEOUT: "error_location_timeout",
    SensorErrorKind.UNAVAILABLE: "error_location_unavailable",
}
_CAMERA_ERRORS = {
    SensorErrorKind.PERMISSION: "error_camera_permission",
    SensorErrorKind.TIMEOUT: "error_camera_unavailable",
    SensorErrorKind.UNAVAILABLE: "error_camera_unavailable",
}


def select_fallback(confidence: float) -> FallbackMode:
    """Fallback mode to offer for a confidence level (0..100)."""
    if confidence < 30:
        return FallbackMode.DEMO
    if confidence < 70:
        return FallbackMode.MANUAL
    return FallbackMode.TWO_D


def plan_graph(*, location: bool, orientation: bool, camera: bool) -> list[str]:
    """Steps the app runs for a given set of device capabilities."""
    plan = ["init"]
    if location:
        plan += ["get_location", "compute_track"]
    else:
        plan.append("request_manual_location")
    if orientation:
        plan.append("get_orientation")
    plan.append("render_ar" if camera else "render_2d")
    plan.append("monitor")
    return plan


class StreamOwner:
    """Holds at most one camera stream. Releasing always stops every track."""

    def __init__(self) -> None:
        self._stream: VideoStream | None = None

    @property
    def stream(self) -> VideoStream | None:
        return self._stream

    def acquire(self, stream: VideoStream) -> None:
        if self._stream is not None:
            raise RuntimeError("A camera stream is already held; release it first")
        self._stream = stream

    def release(self) -> VideoStream | None:
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.stop()
        return stream


class Orchestrator:
    """Application state machine.

    Args:
        sensors: Device gateway.
        renderer: View that receives tracks, snapshots, and the camera stream.
        settings: Timeouts and track shape. Defaults to Settings().
        clock: Source of "now". Injected so tests control time.
        lang: Language of status messages. Defaults to settings.lang.
    """

    def __init__(
        self,
        sensors: SensorGateway,
        renderer: RenderingPort,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
        lang: str | None = None,
    ) -> None:
        self.sensors = sensors
        self.renderer = renderer
        self.settings = settings or Settings()
        self.lang = lang or self.settings.lang
        self._clock = clock

        self._status = AppStatus(state=AppState.INIT, confidence=0)
        self._observers: list[StatusCallback] = []
        self._location: LocationCoordinate | None = None
        self._snapshot: CelestialSnapshot | None = None
        self._heading = 0.0
        self._displayed_override: datetime | None = None
        self._request_seq = 0

        self._stream = StreamOwner()
        self._stream_lock = asyncio.Lock()
        self._unsubscribe_orientation: Unsubscribe | None = None
        self._disposed = False

    async def __aenter__(self) -> "Orchestrator":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.dispose()

    # Status

    def get_status(self) -> AppStatus:
        return self._status

    def on_status_update(self, callback: StatusCallback) -> Callable[[], None]:
        """Register an observer. Returns a function that removes it."""
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _update_status(self, state: AppState, confidence: float, **changes: object) -> None:
        if state is not AppState.ERROR:
            changes.setdefault("error", None)
        self._status = replace(self._status, state=state, confidence=confidence, **changes)
        log.debug("Status: %s (%s)", state.value, confidence)
        for callback in list(self._observers):
            try:
                callback(self._status)
            except Exception:
                log.exception("Status observer %r failed", callback)

    def _fail(self, message: str) -> None:
        self._update_status(AppState.ERROR, 0, error=message)

    def _next_seq(self) -> int:
        self._request_seq += 1
        return self._request_seq

    def _is_stale(self, seq: int) -> bool:
        return self._disposed or seq != self._request_seq

    # Location and compute

    async def initialize(self) -> None:
        """Start up, reusing the gateway's cached location when it is recent."""
        seq = self._next_seq()
        self._update_status(AppState.PERMISSIONS, 10)

        cached = self.sensors.get_cached_location()
        if cached is not None and cached.is_fresh(self._clock(), self.settings.cache_max_age):
            log.info("Using cached location from %s", cached.timestamp.isoformat())
            if not self._accept_location(cached):
                return
            self._update_status(AppState.COMPUTING, 60, location=cached)
            await self._compute_and_render(cached, seq)
            return

        self._update_status(AppState.PERMISSIONS, 20)

    async def request_location(self) -> bool:
        """Acquire a location, then compute and render. Returns True when rendered."""
        seq = self._next_seq()
        self._update_status(AppState.PERMISSIONS, 30)
        try:
            location = await self.sensors.get_location(self.settings.location_timeout_ms)
        except SensorError as e:
            if self._is_stale(seq):
                log.debug("Dropping failure of superseded location request: %s", e)
                return False
            log.warning("Location request failed (%s): %s", e.kind.value, e)
            self._fail(t(_LOCATION_ERRORS[e.kind], self.lang))
            return False
        except Exception:
            if self._is_stale(seq):
                return False
            log.exception("Location request crashed")
            self._fail(t("error_compute", self.lang))
            return False

        if self._is_stale(seq):
            log.debug("Dropping superseded location result")
            return False
        if not self._accept_location(location):
            return False
        self._update_status(AppState.SENSING, 70, location=location)
        return await self._compute_and_render(location, seq)

    def _accept_location(self, location: LocationCoordinate) -> bool:
        try:
            validate_location(location)
        except ValidationError as e:
            log.warning("Rejected location: %s", e)
            self._fail(t("error_compute", self.lang))
            return False
        self._location = location
        return True

    async def _heading_or_north(self) -> float:
        try:
            return await self.sensors.get_heading()
        except SensorError as e:
            log.warning("No heading available, assuming north: %s", e)
            return 0.0

    async def _compute_and_render(self, location: LocationCoordinate, seq: int) -> bool:
        try:
            self._update_status(AppState.COMPUTING, 80)
            params = TrackParameters(
                location=location,
                t0=self._clock(),
                duration_h=self.settings.track_hours,
                step_min=self.settings.track_step_min,
            )
            samples = tuple(compute_track(params))
            snapshot = get_celestial_data(location.lat, location.lon, self.get_current_timestamp())
            self._update_status(AppState.RENDERING, 90, samples=samples)

            heading = await self._heading_or_north()
            if self._is_stale(seq):
                log.debug("Dropping render of superseded request")
                return False

            self._heading = heading
            self._snapshot = snapshot
            self.renderer.update_data(samples, heading)
            self.renderer.update_celestial_positions(snapshot, location.lat, location.lon)
            self.renderer.render_2d(samples, heading)
            self.renderer.start_animation_loop()
        except (ComputeError, ValidationError) as e:
            log.warning("Compute/render rejected: %s", e)
            if not self._is_stale(seq):
                self._fail(t("error_compute", self.lang))
            return False
        except Exception:
            log.exception("Compute/render failed")
            if not self._is_stale(seq):
                self._fail(t("error_compute", self.lang))
            return False

        self._update_status(AppState.RENDERING, 100)
        return True

    # Render mode and camera

    async def toggle_render_mode(self) -> RenderMode:
        """Switch between 2D and AR. Ignored while another stream operation runs."""
        if self._disposed or self._stream_lock.locked():
            log.debug("Stream operation in progress, toggle ignored")
            return self.renderer.current_mode
        async with self._stream_lock:
            if self.renderer.current_mode is RenderMode.TWO_D:
                return await self._enter_ar()
            return self._leave_ar()

    async def _enter_ar(self) -> RenderMode:
        try:
            stream = await self.sensors.start_video_stream()
        except SensorError as e:
            log.warning("Camera start failed (%s): %s", e.kind.value, e)
            self._fail(t(_CAMERA_ERRORS[e.kind], self.lang))
            return self.renderer.current_mode
        if self._disposed:
            stream.stop()
            return self.renderer.current_mode

        self._stream.acquire(stream)
        mode = self.renderer.toggle_mode(stream)
        self.renderer.start_animation_loop()

        try:
            permitted = await self.sensors.request_orientation_permission()
        except SensorError as e:
            log.warning("Orientation permission request failed: %s", e)
            permitted = False
        if permitted and not self._disposed:
            self._unsubscribe_orientation = self.sensors.subscribe_orientation(
                self._on_orientation
            )
        return mode

    def _leave_ar(self) -> RenderMode:
        self._stop_orientation()
        self._stream.release()
        return self.renderer.toggle_mode()

    async def switch_camera(self) -> bool:
        """Swap front and rear cameras while in AR. Falls back to 2D when no camera opens."""
        if self.renderer.current_mode is not RenderMode.AR or self._stream.stream is None:
            return False
        if self._stream_lock.locked():
            log.debug("Stream operation in progress, camera switch ignored")
            return False
        async with self._stream_lock:
            previous = self._stream.release()
            try:
                stream = await self.sensors.switch_camera(previous)
            except SensorError as e:
                log.warning("Camera switch failed, returning to 2D: %s", e)
                self._stop_orientation()
                if self.renderer.current_mode is RenderMode.AR:
                    self.renderer.toggle_mode()
                return False
            if self._disposed:
                stream.stop()
                return False

            self._stream.acquire(stream)
            self.renderer.toggle_mode()
            self.renderer.toggle_mode(stream)
            return True

    def _stop_orientation(self) -> None:
        if self._unsubscribe_orientation is not None:
            self._unsubscribe_orientation()
            self._unsubscribe_orientation = None

    def _on_orientation(self, reading: OrientationReading) -> None:
        try:
            validate_orientation(reading)
        except ValidationError as e:
            log.warning("Ignoring invalid orientation reading: %s", e)
            return
        self._heading = reading.alpha
        if self._status.samples:
            self.renderer.update_data(self._status.samples, reading.alpha)

    # Time navigation

    def get_current_location(self) -> LocationCoordinate | None:
        return self._location

    def get_current_timestamp(self) -> datetime:
        """Displayed time: the value set by navigation, or now."""
        if self._displayed_override is not None:
            return self._displayed_override
        return self._clock()

    @property
    def snapshot(self) -> CelestialSnapshot | None:
        """Sun and moon at the displayed time, once a location is known."""
        return self._snapshot

    @property
    def heading(self) -> float:
        return self._heading

    def set_time(self, t: datetime) -> None:
        """Display another instant. Raises ValidationError outside 1900..2100."""
        self._displayed_override = validate_timestamp(t)
        if self._location is not None:
            self._update_celestial_data()

    def jump_to_next_sunrise(self) -> HorizonEvent | None:
        if self._location is None:
            return None
        event = find_next_sunrise(
            self._location.lat, self._location.lon, self.get_current_timestamp()
        )
        if event is not None:
            self.set_time(event.time)
        return event

    def jump_to_next_sunset(self) -> HorizonEvent | None:
        if self._location is None:
            return None
        event = find_next_sunset(
            self._location.lat, self._location.lon, self.get_current_timestamp()
        )
        if event is not None:
            self.set_time(event.time)
        return event

    def return_to_now(self) -> None:
        self._displayed_override = None
        if self._location is not None:
            self._update_celestial_data()

    def _update_celestial_data(self) -> None:
        location = self._location
        if location is None:
            return
        self._snapshot = get_celestial_data(
            location.lat, location.lon, self.get_current_timestamp()
        )
        self.renderer.update_celestial_positions(self._snapshot, location.lat, location.lon)

    # Teardown

    def dispose(self) -> None:
        """Tear down everything this instance holds. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        try:
            self._stop_orientation()
            self._stream.release()
        finally:
            try:
                self.renderer.dispose()
            finally:
                self._observers.clear()
