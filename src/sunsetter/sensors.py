"""Sensor gateway: location, compass heading, orientation events, and camera streams.

SensorGateway is the interface the orchestrator talks to. BaseSensorGateway
holds the shared policy (timeouts, location cache, heading fallback chain,
camera constraint fallbacks); concrete gateways only supply raw readings
through the _acquire_location / _read_orientation / _open_camera hooks.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any

import httpx

from sunsetter.config import NOMINATIM_URL, USER_AGENT
from sunsetter.errors import (
    SensorError,
    SensorPermissionError,
    SensorTimeoutError,
    SensorUnavailableError,
)
from sunsetter.models import (
    FacingMode,
    HeadingSource,
    LocationCoordinate,
    OrientationReading,
    utcnow,
)
from sunsetter.validation import validate_heading

log = logging.getLogger(__name__)

DEFAULT_HEADING_PRIORITY = (HeadingSource.TRUE, HeadingSource.MAGNETIC, HeadingSource.MANUAL)
ORIENTATION_TIMEOUT_S = 5.0
DEMO_LOCATION = (37.7749, -122.4194)  # San Francisco

OrientationCallback = Callable[[OrientationReading], None]
Unsubscribe = Callable[[], None]
Clock = Callable[[], datetime]


class VideoTrack:
    """One live camera track. stop() is idempotent."""

    kind = "video"

    def __init__(self, facing_mode: FacingMode, label: str = "") -> None:
        self.settings: dict[str, Any] = {"facing_mode": facing_mode}
        self.label = label or f"{facing_mode.value} camera"
        self.ready_state = "live"

    def stop(self) -> None:
        self.ready_state = "ended"

    def __repr__(self) -> str:
        return f"VideoTrack({self.label!r}, {self.ready_state})"


class VideoStream:
    """Camera stream handle. Owned by exactly one holder at a time."""

    def __init__(self, tracks: Iterable[VideoTrack]) -> None:
        self.tracks = tuple(tracks)

    @property
    def active(self) -> bool:
        return any(track.ready_state == "live" for track in self.tracks)

    @property
    def video_tracks(self) -> list[VideoTrack]:
        return [track for track in self.tracks if track.kind == "video"]

    @property
    def facing_mode(self) -> FacingMode | None:
        for track in self.video_tracks:
            mode = track.settings.get("facing_mode")
            if mode is not None:
                return FacingMode(mode)
        return None

    def stop(self) -> None:
        """Stop every track of the stream."""
        for track in self.tracks:
            track.stop()


@dataclass(frozen=True)
class CameraConstraints:
    facing_mode: FacingMode = FacingMode.ENVIRONMENT
    exact: bool = False  # Fail instead of opening another camera
    width: int | None = None
    height: int | None = None
    frame_rate: float | None = None

    def basic(self) -> "CameraConstraints":
        """Same camera request without resolution or frame-rate hints."""
        return replace(self, width=None, height=None, frame_rate=None)


ENHANCED_CONSTRAINTS = CameraConstraints(width=1920, height=1080, frame_rate=30)


class SensorGateway(ABC):
    """Device capabilities as seen by the orchestrator."""

    @abstractmethod
    async def get_location(self, timeout_ms: int = 10000) -> LocationCoordinate:
        """Acquire a fresh location.

        Raises:
            SensorPermissionError: Access was declined.
            SensorTimeoutError: No fix within timeout_ms.
            SensorUnavailableError: No location source.
        """

    @abstractmethod
    def get_cached_location(self) -> LocationCoordinate | None:
        """Last location acquired by this gateway, without touching the device."""

    @abstractmethod
    async def get_heading(
        self, source_priority: Sequence[HeadingSource] = DEFAULT_HEADING_PRIORITY
    ) -> float:
        """Compass heading in degrees from the first source that answers."""

    @abstractmethod
    async def start_video_stream(
        self, constraints: CameraConstraints | None = None
    ) -> VideoStream: ...

    @abstractmethod
    async def switch_camera(self, current: VideoStream | None) -> VideoStream: ...

    @abstractmethod
    async def request_orientation_permission(self) -> bool: ...

    @abstractmethod
    def subscribe_orientation(self, callback: OrientationCallback) -> Unsubscribe: ...


class BaseSensorGateway(SensorGateway):
    """Shared gateway behaviour. Every capability is unavailable until a hook provides it."""

    def __init__(self, manual_heading: float | None = None) -> None:
        self.manual_heading = (
            validate_heading(manual_heading) if manual_heading is not None else None
        )
        self._cached_location: LocationCoordinate | None = None
        self._orientation_callbacks: list[OrientationCallback] = []

    # Device hooks

    async def _acquire_location(self) -> LocationCoordinate:
        raise SensorUnavailableError("Geolocation is not supported")

    async def _read_orientation(self) -> OrientationReading:
        raise SensorUnavailableError("Device orientation is not supported")

    async def _open_camera(self, constraints: CameraConstraints) -> VideoStream:
        raise SensorUnavailableError("Camera is not supported")

    # Location

    async def get_location(self, timeout_ms: int = 10000) -> LocationCoordinate:
        try:
            location = await asyncio.wait_for(self._acquire_location(), timeout_ms / 1000)
        except asyncio.TimeoutError as e:
            raise SensorTimeoutError(f"Location request timed out after {timeout_ms} ms") from e
        self._cached_location = location
        log.debug("Location acquired: lat=%s lon=%s", location.lat, location.lon)
        return location

    def get_cached_location(self) -> LocationCoordinate | None:
        return self._cached_location

    # Orientation and heading

    async def request_orientation_permission(self) -> bool:
        return True

    async def get_orientation(self) -> OrientationReading:
        """Read one orientation event.

        Raises:
            SensorPermissionError: Orientation access was not granted.
            SensorTimeoutError: No event within ORIENTATION_TIMEOUT_S.
            SensorUnavailableError: No orientation source.
        """
        if not await self.request_orientation_permission():
            raise SensorPermissionError("Device orientation permission denied")
        try:
            return await asyncio.wait_for(self._read_orientation(), ORIENTATION_TIMEOUT_S)
        except asyncio.TimeoutError as e:
            raise SensorTimeoutError("Device orientation timed out") from e

    async def get_heading(
        self, source_priority: Sequence[HeadingSource] = DEFAULT_HEADING_PRIORITY
    ) -> float:
        """Walk source_priority and return the first heading obtained.

        ``true`` only accepts absolute (true-north) readings, ``mag`` accepts
        any reading, ``manual`` returns manual_heading when one is set.

        Raises:
            SensorUnavailableError: Every source failed.
        """
        for source in source_priority:
            if source is HeadingSource.MANUAL:
                if self.manual_heading is not None:
                    return self.manual_heading
                continue
            try:
                reading = await self.get_orientation()
            except SensorError as e:
                log.debug("Heading source %s failed: %s", source.value, e)
                continue
            if source is HeadingSource.TRUE and not reading.absolute:
                continue
            return reading.alpha
        raise SensorUnavailableError("No heading source available")

    def subscribe_orientation(self, callback: OrientationCallback) -> Unsubscribe:
        self._orientation_callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._orientation_callbacks:
                self._orientation_callbacks.remove(callback)

        return unsubscribe

    def _emit_orientation(self, reading: OrientationReading) -> None:
        for callback in list(self._orientation_callbacks):
            callback(reading)

    # Camera

    async def start_video_stream(
        self, constraints: CameraConstraints | None = None
    ) -> VideoStream:
        """Open a camera, retrying without resolution hints if the device rejects them.

        Permission errors are not retried.
        """
        requested = constraints or ENHANCED_CONSTRAINTS
        try:
            return await self._open_camera(requested)
        except SensorUnavailableError:
            basic = requested.basic()
            if basic == requested:
                raise
            log.warning("Camera rejected %s, retrying with basic constraints", requested)
            return await self._open_camera(basic)

    async def switch_camera(self, current: VideoStream | None) -> VideoStream:
        """Stop current and open the opposite camera.

        Tries the opposite facing mode as a preference, then as an exact
        requirement, then falls back to the original facing mode.

        Raises:
            SensorUnavailableError: No camera could be opened.
        """
        original = FacingMode.ENVIRONMENT
        if current is not None:
            original = current.facing_mode or FacingMode.ENVIRONMENT
            current.stop()

        target = original.opposite
        attempts = (
            CameraConstraints(facing_mode=target),
            CameraConstraints(facing_mode=target, exact=True),
            CameraConstraints(facing_mode=original),
        )
        last_error: SensorUnavailableError | None = None
        for constraints in attempts:
            try:
                return await self._open_camera(constraints)
            except SensorUnavailableError as e:
                log.debug("Camera %s failed: %s", constraints, e)
                last_error = e
        raise SensorUnavailableError("Unable to switch camera") from last_error


class FixedLocationGateway(BaseSensorGateway):
    """Gateway pinned to one coordinate. No camera or compass."""

    def __init__(
        self,
        lat: float,
        lon: float,
        *,
        alt: float | None = None,
        accuracy: float | None = None,
        manual_heading: float | None = None,
        clock: Clock = utcnow,
    ) -> None:
        super().__init__(manual_heading=manual_heading)
        self.lat = lat
        self.lon = lon
        self.alt = alt
        self.accuracy = accuracy
        self._clock = clock

    @classmethod
    def demo(cls, **kwargs: Any) -> "FixedLocationGateway":
        """Demo mode gateway (San Francisco)."""
        lat, lon = DEMO_LOCATION
        return cls(lat, lon, accuracy=0.0, **kwargs)

    async def _acquire_location(self) -> LocationCoordinate:
        return LocationCoordinate(
            lat=self.lat,
            lon=self.lon,
            timestamp=self._clock(),
            alt=self.alt,
            accuracy=self.accuracy,
        )


class GeocodingGateway(BaseSensorGateway):
    """Manual location mode: resolve a free-text address through Nominatim.

    Args:
        address: Address in any language.
        url: Nominatim search endpoint.
        user_agent: Sent with every request, as the Nominatim usage policy requires.
        client: Shared httpx.AsyncClient. A short-lived client is used when omitted.
    """

    def __init__(
        self,
        address: str,
        *,
        url: str = NOMINATIM_URL,
        user_agent: str = USER_AGENT,
        client: httpx.AsyncClient | None = None,
        manual_heading: float | None = None,
        clock: Clock = utcnow,
    ) -> None:
        super().__init__(manual_heading=manual_heading)
        self.address = address
        self.url = url
        self.user_agent = user_agent
        self.display_name: str | None = None  # Filled on a successful lookup
        self._client = client
        self._clock = clock

    async def _search(self, client: httpx.AsyncClient) -> httpx.Response:
        params = {"q": self.address, "format": "json", "limit": 1}
        headers = {"User-Agent": self.user_agent}
        resp = await client.get(self.url, params=params, headers=headers)
        resp.raise_for_status()
        return resp

    async def _acquire_location(self) -> LocationCoordinate:
        try:
            if self._client is not None:
                resp = await self._search(self._client)
            else:
                async with httpx.AsyncClient(timeout=10) as client:
                    resp = await self._search(client)
        except httpx.TimeoutException as e:
            raise SensorTimeoutError(f"Geocoder timed out for {self.address!r}") from e
        except httpx.HTTPError as e:
            raise SensorUnavailableError(f"Geocoder request failed: {e}") from e

        results = resp.json()
        if not results:
            raise SensorUnavailableError(f"Address not found: {self.address}")
        r = results[0]
        self.display_name = r.get("display_name", self.address)
        return LocationCoordinate(
            lat=float(r["lat"]), lon=float(r["lon"]), timestamp=self._clock()
        )


# Geolocation API PositionError codes
_GEOLOCATION_ERRORS: dict[int, type[SensorError]] = {
    1: SensorPermissionError,
    2: SensorUnavailableError,
    3: SensorTimeoutError,
}


def location_from_geolocation(
    payload: Mapping[str, Any], now: datetime | None = None
) -> LocationCoordinate:
    """Convert a browser Geolocation API result into a LocationCoordinate.

    Args:
        payload: Either ``{"coords": {...}, "timestamp": ms}`` or
            ``{"error": {"code": n, "message": str}}``.
        now: Timestamp to use when the payload carries none.

    Raises:
        SensorError: The subclass matching the error code.
    """
    error = payload.get("error")
    if error is not None:
        code = error.get("code") if isinstance(error, Mapping) else None
        message = (error.get("message") if isinstance(error, Mapping) else str(error)) or (
            "Geolocation failed"
        )
        raise _GEOLOCATION_ERRORS.get(code, SensorUnavailableError)(message)

    coords = payload.get("coords")
    if not coords:
        raise SensorUnavailableError("Geolocation payload has no coordinates")

    ms = payload.get("timestamp")
    if ms is not None:
        timestamp = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    else:
        timestamp = now or utcnow()
    return LocationCoordinate(
        lat=float(coords["latitude"]),
        lon=float(coords["longitude"]),
        timestamp=timestamp,
        alt=coords.get("altitude"),
        accuracy=coords.get("accuracy"),
    )


class GeolocationPayloadGateway(BaseSensorGateway):
    """Location from a browser Geolocation payload returned by provider().

    provider returns None while the browser has not answered yet.
    """

    def __init__(
        self,
        provider: Callable[[], Mapping[str, Any] | None],
        *,
        manual_heading: float | None = None,
        clock: Clock = utcnow,
    ) -> None:
        super().__init__(manual_heading=manual_heading)
        self._provider = provider
        self._clock = clock

    async def _acquire_location(self) -> LocationCoordinate:
        payload = self._provider()
        if payload is None:
            raise SensorTimeoutError("Browser has not returned a location yet")
        return location_from_geolocation(payload, now=self._clock())
