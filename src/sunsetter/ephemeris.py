"""Ephemeris engine: offline sun and moon positions.

Sun: NOAA solar position algorithm (geometric mean longitude, equation of
center, nutation-corrected obliquity). Moon: truncated Meeus series, good to
a fraction of a degree. Every function is pure: the same (lat, lon, time)
always yields the same result, for past and future instants alike.

Angles are degrees at the API boundary and radians inside the trigonometry.
Azimuth is measured from North, clockwise (0=N, 90=E, 180=S, 270=W).
Naive datetimes are treated as UTC.
"""

import logging
import math
from collections.abc import Sequence
from datetime import date, datetime, time, timedelta, timezone, tzinfo

import pytz
from timezonefinder import TimezoneFinder

from sunsetter.models import (
    CelestialSnapshot,
    HorizonEvent,
    MoonSample,
    SunPosition,
    SunriseSunset,
    SunSample,
    TrackParameters,
)
from sunsetter.validation import validate_track_params

log = logging.getLogger(__name__)

_tf = TimezoneFinder()

J2000 = 2451545.0
UNIX_EPOCH_JD = 2440587.5
CIVIL_HORIZON_DEG = -0.833  # Atmospheric refraction + solar radius
SEARCH_WINDOW = timedelta(hours=48)
SEARCH_STEP = timedelta(minutes=1)
DAY_SCAN_STEP = timedelta(minutes=30)
MOON_MEAN_DISTANCE_KM = 385000.56


def _utc(t: datetime) -> datetime:
    if t.tzinfo is None:
        return t.replace(tzinfo=timezone.utc)
    return t.astimezone(timezone.utc)


def _normalize(angle: float) -> float:
    """Wrap an angle in degrees to [0, 360)."""
    wrapped = angle % 360.0
    # -1e-15 % 360.0 rounds to 360.0
    return 0.0 if wrapped >= 360.0 else wrapped


def julian_day(t: datetime) -> float:
    """Julian day (UTC based) for a datetime."""
    return _utc(t).timestamp() / 86400.0 + UNIX_EPOCH_JD


def julian_century(jd: float) -> float:
    """Julian centuries elapsed since J2000.0."""
    return (jd - J2000) / 36525.0


def greenwich_mean_sidereal_time(jd: float) -> float:
    """Greenwich mean sidereal time in degrees (0..360)."""
    T = julian_century(jd)
    gmst = (
        280.46061837
        + 360.98564736629 * (jd - J2000)
        + T * T * (0.000387933 - T / 38710000.0)
    )
    return _normalize(gmst)


def _obliquity(T: float) -> float:
    """Obliquity of the ecliptic corrected for nutation (degrees)."""
    omega = 125.04 - 1934.136 * T  # Longitude of the moon's ascending node
    mean = 23.0 + (26.0 + (21.448 - T * (46.815 + T * (0.00059 - T * 0.001813))) / 60.0) / 60.0
    return mean + 0.00256 * math.cos(math.radians(omega))


def _to_horizontal(
    lat: float, lon: float, jd: float, ra: float, dec: float
) -> tuple[float, float]:
    """Convert right ascension/declination (radians) to (azimuth, elevation) in degrees."""
    hour_angle = math.radians(greenwich_mean_sidereal_time(jd) + lon) - ra
    lat_rad = math.radians(lat)

    sin_el = math.sin(lat_rad) * math.sin(dec) + math.cos(lat_rad) * math.cos(
        dec
    ) * math.cos(hour_angle)
    elevation = math.degrees(math.asin(max(-1.0, min(1.0, sin_el))))

    # atan2 yields an azimuth measured from South; rotate to North-based
    azimuth = math.degrees(
        math.atan2(
            math.sin(hour_angle),
            math.cos(hour_angle) * math.sin(lat_rad) - math.tan(dec) * math.cos(lat_rad),
        )
    )
    return _normalize(azimuth + 180.0), elevation


def _sun_ecliptic(T: float) -> tuple[float, float, float]:
    """Return (apparent longitude, true anomaly, orbital eccentricity) in degrees."""
    mean_longitude = (280.46646 + T * (36000.76983 + T * 0.0003032)) % 360.0
    mean_anomaly = 357.52911 + T * (35999.05029 - 0.0001537 * T)
    eccentricity = 0.016708634 - T * (0.000042037 + 0.0000001267 * T)

    m = math.radians(mean_anomaly)
    center = (
        math.sin(m) * (1.914602 - T * (0.004817 + 0.000014 * T))
        + math.sin(2 * m) * (0.019993 - 0.000101 * T)
        + math.sin(3 * m) * 0.000289
    )

    omega = 125.04 - 1934.136 * T
    apparent = mean_longitude + center - 0.00569 - 0.00478 * math.sin(math.radians(omega))
    return apparent, mean_anomaly + center, eccentricity


def sun_distance_au(t: datetime) -> float:
    """Earth–Sun distance in astronomical units."""
    _, true_anomaly, e = _sun_ecliptic(julian_century(julian_day(t)))
    return 1.000001018 * (1 - e * e) / (1 + e * math.cos(math.radians(true_anomaly)))


def sun_mass(t: datetime) -> float:
    """Apparent size of the sun relative to its size at 1 AU (>1 near perihelion)."""
    return 1.0 / sun_distance_au(t)


def compute_sun_position(lat: float, lon: float, t: datetime) -> SunPosition:
    """Compute the sun's azimuth and elevation for an observer.

    Args:
        lat: Observer latitude (degrees, north positive).
        lon: Observer longitude (degrees, east positive).
        t: Instant to evaluate.

    Returns:
        SunPosition with azimuth in [0, 360) and elevation in degrees.
    """
    jd = julian_day(t)
    T = julian_century(jd)
    longitude, _, _ = _sun_ecliptic(T)

    eps = math.radians(_obliquity(T))
    lam = math.radians(longitude)
    ra = math.atan2(math.cos(eps) * math.sin(lam), math.cos(lam))
    dec = math.asin(math.sin(eps) * math.sin(lam))

    azimuth, elevation = _to_horizontal(lat, lon, jd, ra, dec)
    return SunPosition(azimuth=azimuth, elevation=elevation)


def compute_moon_position(lat: float, lon: float, t: datetime) -> MoonSample:
    """Compute the moon's position, phase, illumination, and distance.

    Phase is the normalized mean elongation (0=new, 0.5=full). Illumination
    is (1 + cos i) / 2 with i the phase angle. Mass is the apparent size
    relative to the mean distance.
    """
    t = _utc(t)
    jd = julian_day(t)
    T = julian_century(jd)

    mean_longitude = 218.3164477 + 481267.88123421 * T
    elongation = 297.8501921 + 445267.1114034 * T
    sun_anomaly = 357.5291092 + 35999.0502909 * T
    moon_anomaly = 134.9633964 + 477198.8675055 * T
    arg_latitude = 93.2720950 + 483202.0175233 * T

    d, m, mp, f = (
        math.radians(a) for a in (elongation, sun_anomaly, moon_anomaly, arg_latitude)
    )

    longitude = (
        mean_longitude
        + 6.288774 * math.sin(mp)
        + 1.274027 * math.sin(2 * d - mp)
        + 0.658314 * math.sin(2 * d)
        + 0.213618 * math.sin(2 * mp)
        - 0.185116 * math.sin(m)
        - 0.114332 * math.sin(2 * f)
    )
    latitude = (
        5.128122 * math.sin(f)
        + 0.280602 * math.sin(mp + f)
        + 0.277693 * math.sin(mp - f)
        + 0.173237 * math.sin(2 * d - f)
    )
    distance_km = (
        MOON_MEAN_DISTANCE_KM
        - 20905.355 * math.cos(mp)
        - 3699.111 * math.cos(2 * d - mp)
        - 2955.968 * math.cos(2 * d)
        - 569.925 * math.cos(2 * mp)
    )

    eps = math.radians(_obliquity(T))
    lam = math.radians(longitude)
    beta = math.radians(latitude)
    ra = math.atan2(
        math.sin(lam) * math.cos(eps) - math.tan(beta) * math.sin(eps), math.cos(lam)
    )
    dec = math.asin(
        math.sin(beta) * math.cos(eps) + math.cos(beta) * math.sin(eps) * math.sin(lam)
    )
    azimuth, elevation = _to_horizontal(lat, lon, jd, ra, dec)

    mean_elongation = _normalize(elongation)
    phase = mean_elongation / 360.0
    if phase >= 1.0:
        phase = 0.0

    phase_angle = (
        180.0
        - mean_elongation
        - 6.289 * math.sin(mp)
        + 2.100 * math.sin(m)
        - 1.274 * math.sin(2 * d - mp)
        - 0.658 * math.sin(2 * d)
        - 0.214 * math.sin(2 * mp)
        - 0.110 * math.sin(d)
    )
    illumination = (1.0 + math.cos(math.radians(phase_angle))) / 2.0

    return MoonSample(
        t=t,
        azimuth=azimuth,
        elevation=elevation,
        phase=phase,
        illumination=max(0.0, min(1.0, illumination)),
        mass=MOON_MEAN_DISTANCE_KM / distance_km,
        distance_km=distance_km,
    )


def compute_track(params: TrackParameters) -> list[SunSample]:
    """Sample the sun from t0 to t0 + duration, both endpoints included.

    Yields floor(duration_h * 60 / step_min) + 1 samples with strictly
    increasing timestamps. Each sample carries the sun's apparent mass.

    Raises:
        pydantic.ValidationError: If the parameters are out of range.
    """
    validate_track_params(params)
    lat, lon = params.location.lat, params.location.lon
    t0 = _utc(params.t0)
    step = timedelta(minutes=params.step_min)
    count = math.floor(params.duration_h * 60.0 / params.step_min + 1e-9) + 1

    samples: list[SunSample] = []
    for i in range(count):
        t = t0 + step * i
        position = compute_sun_position(lat, lon, t)
        samples.append(
            SunSample(
                t=t,
                azimuth=position.azimuth,
                elevation=position.elevation,
                mass=sun_mass(t),
            )
        )
    return samples


def local_timezone(lat: float, lon: float) -> tzinfo:
    """IANA time zone at a location, or a whole-hour offset where none is defined."""
    name = _tf.timezone_at(lat=lat, lng=lon)
    if name is None:
        log.debug("No time zone at lat=%s lon=%s, using solar offset", lat, lon)
        return pytz.FixedOffset(round(lon / 15.0) * 60)
    return pytz.timezone(name)


def _localize(zone: tzinfo, naive: datetime) -> datetime:
    localize = getattr(zone, "localize", None)
    if localize is not None:
        return localize(naive)
    return naive.replace(tzinfo=zone)


def solve_sunrise_sunset(
    lat: float, lon: float, day: date, tz: tzinfo | None = None
) -> SunriseSunset:
    """Find sunrise and sunset on a local calendar day at 30-minute resolution.

    Sunrise is the first sample where the elevation turns non-negative,
    sunset the first later sample where it turns negative. Events absent
    from the day (polar day or night) are None.

    Args:
        lat: Observer latitude.
        lon: Observer longitude.
        day: Calendar day, local to the observer.
        tz: Time zone of the day. Looked up from the location when omitted.

    Returns:
        SunriseSunset with datetimes in the day's time zone.
    """
    zone = tz or local_timezone(lat, lon)
    start = _localize(zone, datetime.combine(day, time.min)).astimezone(timezone.utc)

    sunrise: datetime | None = None
    sunset: datetime | None = None
    previous = compute_sun_position(lat, lon, start).elevation
    for i in range(1, 48):
        t = start + DAY_SCAN_STEP * i
        elevation = compute_sun_position(lat, lon, t).elevation
        if sunrise is None and previous < 0 <= elevation:
            sunrise = t
        elif sunrise is not None and sunset is None and previous >= 0 > elevation:
            sunset = t
        previous = elevation

    return SunriseSunset(
        sunrise=sunrise.astimezone(zone) if sunrise else None,
        sunset=sunset.astimezone(zone) if sunset else None,
    )


def _find_horizon_crossing(
    lat: float, lon: float, from_time: datetime, rising: bool
) -> HorizonEvent | None:
    start = _utc(from_time)
    previous = compute_sun_position(lat, lon, start).elevation
    steps = int(SEARCH_WINDOW / SEARCH_STEP)
    for i in range(1, steps + 1):
        t = start + SEARCH_STEP * i
        position = compute_sun_position(lat, lon, t)
        if rising:
            crossed = previous < CIVIL_HORIZON_DEG <= position.elevation
        else:
            crossed = previous >= CIVIL_HORIZON_DEG > position.elevation
        if crossed:
            return HorizonEvent(time=t, azimuth=position.azimuth)
        previous = position.elevation

    log.debug(
        "No %s within %s of %s at lat=%s lon=%s",
        "sunrise" if rising else "sunset",
        SEARCH_WINDOW,
        start.isoformat(),
        lat,
        lon,
    )
    return None


def find_next_sunrise(lat: float, lon: float, from_time: datetime) -> HorizonEvent | None:
    """First sunrise (civil horizon, -0.833°) within 48 hours after from_time, or None."""
    return _find_horizon_crossing(lat, lon, from_time, rising=True)


def find_next_sunset(lat: float, lon: float, from_time: datetime) -> HorizonEvent | None:
    """First sunset (civil horizon, -0.833°) within 48 hours after from_time, or None."""
    return _find_horizon_crossing(lat, lon, from_time, rising=False)


def get_celestial_data(lat: float, lon: float, t: datetime) -> CelestialSnapshot:
    """Sun and moon positions for one instant."""
    t = _utc(t)
    sun = compute_sun_position(lat, lon, t)
    return CelestialSnapshot(
        sun=SunSample(t=t, azimuth=sun.azimuth, elevation=sun.elevation, mass=sun_mass(t)),
        moon=compute_moon_position(lat, lon, t),
    )


def find_closest_sample(samples: Sequence[SunSample], t: datetime) -> SunSample | None:
    """Sample whose timestamp is nearest to t."""
    if not samples:
        return None
    target = _utc(t)
    return min(samples, key=lambda s: abs(s.t - target))


def find_solar_noon(samples: Sequence[SunSample]) -> SunSample | None:
    """Highest sample of a track."""
    if not samples:
        return None
    return max(samples, key=lambda s: s.elevation)
