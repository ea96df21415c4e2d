"""Error taxonomy shared by the sensor, compute, and orchestration layers."""

from enum import Enum


class SensorErrorKind(str, Enum):
    PERMISSION = "permission"  # User declined access
    TIMEOUT = "timeout"  # Sensor did not answer in time
    UNAVAILABLE = "unavailable"  # Capability absent or blocked


class SunsetterError(Exception):
    """Base class for errors raised by this package."""


class SensorError(SunsetterError):
    """Sensor failure. `kind` tells the orchestrator which message to show."""

    kind: SensorErrorKind = SensorErrorKind.UNAVAILABLE

    def __init__(self, message: str, kind: SensorErrorKind | None = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class SensorPermissionError(SensorError):
    kind = SensorErrorKind.PERMISSION


class SensorTimeoutError(SensorError):
    kind = SensorErrorKind.TIMEOUT


class SensorUnavailableError(SensorError):
    kind = SensorErrorKind.UNAVAILABLE


class ComputeError(SunsetterError):
    """Unexpected failure inside the ephemeris or render pipeline."""
