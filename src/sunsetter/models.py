"""Data model definitions — explicit boundaries between sensing, compute, and render layers."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class AppState(str, Enum):
    """Closed set of orchestrator states."""

    INIT = "init"
    PERMISSIONS = "permissions"
    SENSING = "sensing"
    COMPUTING = "computing"
    RENDERING = "rendering"
    ERROR = "error"
    FALLBACK = "fallback"


class RenderMode(str, Enum):
    TWO_D = "2D"
    AR = "AR"


class FallbackMode(str, Enum):
    DEMO = "demo"
    MANUAL = "manual"
    TWO_D = "2d"


class HeadingSource(str, Enum):
    """Compass sources, tried in the order given to get_heading()."""

    TRUE = "true"  # Absolute orientation (true north)
    MAGNETIC = "mag"  # Any orientation reading
    MANUAL = "manual"  # User-supplied heading


class FacingMode(str, Enum):
    ENVIRONMENT = "environment"  # Rear camera
    USER = "user"  # Front camera

    @property
    def opposite(self) -> "FacingMode":
        return FacingMode.USER if self is FacingMode.ENVIRONMENT else FacingMode.ENVIRONMENT


@dataclass(frozen=True)
class LocationCoordinate:
    """Observer position produced by a sensor gateway. Never mutated, only superseded."""

    lat: float  # Latitude (decimal degrees, -90..90)
    lon: float  # Longitude (decimal degrees, -180..180)
    timestamp: datetime  # Acquisition time (UTC)
    alt: float | None = None  # Altitude above sea level (m)
    accuracy: float | None = None  # Accuracy radius (m)

    def is_fresh(self, now: datetime, max_age: timedelta) -> bool:
        """True if the coordinate was acquired less than max_age before now."""
        return now - self.timestamp < max_age


@dataclass(frozen=True)
class TrackParameters:
    """Input to compute_track()."""

    location: LocationCoordinate
    t0: datetime  # First sample time
    duration_h: float  # Track length (hours, <= 168)
    step_min: float  # Sample interval (minutes, 1..1440)


@dataclass(frozen=True)
class SunPosition:
    azimuth: float  # Degrees from North, clockwise (0..360)
    elevation: float  # Degrees above the horizon


@dataclass(frozen=True)
class SunSample:
    """Sun position at one instant."""

    t: datetime
    azimuth: float  # 0=N, 90=E, 180=S, 270=W
    elevation: float  # 0=horizon, 90=zenith
    mass: float | None = None  # Apparent size relative to 1 AU
    error: str | None = None


@dataclass(frozen=True)
class MoonSample:
    """Moon position, phase, and distance at one instant."""

    t: datetime
    azimuth: float
    elevation: float
    phase: float  # 0=new, 0.5=full (0..1)
    illumination: float  # Illuminated fraction (0..1)
    mass: float  # Apparent size relative to mean distance
    distance_km: float  # Geocentric distance


@dataclass(frozen=True)
class CelestialSnapshot:
    """Paired sun and moon samples for one instant. The unit handed to renderers."""

    sun: SunSample
    moon: MoonSample


@dataclass(frozen=True)
class HorizonEvent:
    """A sunrise or sunset found by a forward scan."""

    time: datetime
    azimuth: float  # Where the sun crosses the horizon


@dataclass(frozen=True)
class SunriseSunset:
    sunrise: datetime | None  # None during polar night / polar day
    sunset: datetime | None


@dataclass(frozen=True)
class OrientationReading:
    """Device orientation event."""

    alpha: float  # Compass heading (0..360, 0=North)
    beta: float = 0.0  # Front-to-back tilt (-180..180)
    gamma: float = 0.0  # Left-to-right tilt (-90..90)
    absolute: bool = False  # True when alpha is referenced to true north


@dataclass(frozen=True)
class AppStatus:
    """Orchestrator status. Replaced on every transition and broadcast to observers."""

    state: AppState
    confidence: float  # Progress heuristic (0..100)
    location: LocationCoordinate | None = None
    samples: tuple[SunSample, ...] | None = None
    error: str | None = None  # Human-readable message when state is ERROR
