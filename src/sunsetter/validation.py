"""Input validation boundary: pydantic schemas that accept or reject incoming data.

Every validate_* function returns its (possibly normalized) input or raises
pydantic.ValidationError. Dataclass instances from sunsetter.models are read
through from_attributes, so callers pass model objects directly.
"""

from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, TypeAdapter

from sunsetter.models import (
    LocationCoordinate,
    MoonSample,
    OrientationReading,
    SunSample,
    TrackParameters,
)

MIN_TIMESTAMP = datetime(1900, 1, 1, tzinfo=timezone.utc)
MAX_TIMESTAMP = datetime(2100, 1, 1, tzinfo=timezone.utc)


def _in_supported_range(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    if not MIN_TIMESTAMP <= value <= MAX_TIMESTAMP:
        raise ValueError("Timestamp must be between 1900-01-01 and 2100-01-01")
    return value


Timestamp = Annotated[datetime, AfterValidator(_in_supported_range)]
Latitude = Annotated[float, Field(ge=-90, le=90)]
Longitude = Annotated[float, Field(ge=-180, le=180)]
Altitude = Annotated[float, Field(ge=-500, le=10000)]
Azimuth = Annotated[float, Field(ge=0, lt=360)]
Elevation = Annotated[float, Field(ge=-90, le=90)]
Heading = Annotated[float, Field(ge=0, lt=360)]


class _Schema(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)


class LocationSchema(_Schema):
    lat: Latitude
    lon: Longitude
    alt: Altitude | None = None
    accuracy: Annotated[float, Field(ge=0)] | None = None
    timestamp: datetime | None = None


class TrackParamsSchema(_Schema):
    location: LocationSchema
    t0: Timestamp
    duration_h: Annotated[float, Field(gt=0, le=168)]  # At most one week
    step_min: Annotated[float, Field(ge=1, le=1440)]  # At most one day


class OrientationSchema(_Schema):
    alpha: Heading | None
    beta: Annotated[float, Field(ge=-180, le=180)] | None = None
    gamma: Annotated[float, Field(ge=-90, le=90)] | None = None
    absolute: bool = False


class SunSampleSchema(_Schema):
    t: Timestamp
    azimuth: Azimuth
    elevation: Elevation
    mass: Annotated[float, Field(gt=0)] | None = None
    error: str | None = None


class MoonSampleSchema(_Schema):
    t: Timestamp
    azimuth: Azimuth
    elevation: Elevation
    phase: Annotated[float, Field(ge=0, lt=1)]
    illumination: Annotated[float, Field(ge=0, le=1)]
    mass: Annotated[float, Field(gt=0)]
    distance_km: Annotated[float, Field(gt=0)]


_timestamp_adapter: TypeAdapter[datetime] = TypeAdapter(Timestamp)
_heading_adapter: TypeAdapter[float] = TypeAdapter(Heading)


def validate_location(location: LocationCoordinate) -> LocationCoordinate:
    LocationSchema.model_validate(location)
    return location


def validate_timestamp(value: datetime) -> datetime:
    """Return value as an aware UTC-compatible datetime inside 1900..2100."""
    return _timestamp_adapter.validate_python(value)


def validate_track_params(params: TrackParameters) -> TrackParameters:
    TrackParamsSchema.model_validate(params)
    return params


def validate_heading(value: float) -> float:
    return _heading_adapter.validate_python(value)


def validate_orientation(reading: OrientationReading) -> OrientationReading:
    OrientationSchema.model_validate(reading)
    return reading


def validate_sun_sample(sample: SunSample) -> SunSample:
    SunSampleSchema.model_validate(sample)
    return sample


def validate_moon_sample(sample: MoonSample) -> MoonSample:
    MoonSampleSchema.model_validate(sample)
    return sample
