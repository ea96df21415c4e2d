"""Human-readable status lines for the app and the CLI."""

from datetime import datetime, timedelta

from sunsetter.ephemeris import CIVIL_HORIZON_DEG
from sunsetter.i18n import t
from sunsetter.models import AppState, AppStatus, LocationCoordinate, MoonSample, SunSample

MOON_VISIBLE_DEG = -6.0

_DIRECTIONS = (
    "N", "NNE", "NE", "ENE", "E", "ESE", "SE", "SSE",
    "S", "SSW", "SW", "WSW", "W", "WNW", "NW", "NNW",
)  # fmt: skip

# (upper bound, i18n key), checked in order; the first phase below the bound wins
_PHASES = (
    (0.03, "moon_new"),
    (0.22, "moon_waxing_crescent"),
    (0.28, "moon_first_quarter"),
    (0.47, "moon_waxing_gibbous"),
    (0.53, "moon_full"),
    (0.72, "moon_waning_gibbous"),
    (0.78, "moon_last_quarter"),
    (0.97, "moon_waning_crescent"),
)


def status_text(status: AppStatus, lang: str = "en") -> str:
    if status.state is AppState.RENDERING:
        return t("status_rendering", lang).format(confidence=round(status.confidence))
    if status.state is AppState.ERROR:
        return t("status_error", lang).format(error=status.error or t("unknown_error", lang))
    return t(f"status_{status.state.value}", lang)


def cardinal_direction(azimuth: float) -> str:
    """16-point compass label for an azimuth in degrees (0=N, 90=E)."""
    return _DIRECTIONS[round(azimuth / 22.5) % 16]


def moon_phase_name(phase: float, lang: str = "en") -> str:
    for bound, key in _PHASES:
        if phase < bound:
            return t(key, lang)
    return t("moon_new", lang)


def _age_suffix(sample_time: datetime, reference: datetime | None) -> str:
    if reference is None:
        return ""
    age = abs(reference - sample_time)
    if age > timedelta(hours=1):
        return f" ({round(age / timedelta(hours=1))}h old)"
    if age > timedelta(minutes=5):
        return f" ({round(age / timedelta(minutes=1))}m old)"
    return ""


def describe_sun(
    sample: SunSample | None, lang: str = "en", reference: datetime | None = None
) -> str:
    """One-line sun summary, e.g. ``S 180°, 45.2° elevation - ☀️ visible``.

    Args:
        sample: Sun sample to describe, or None when no data exists.
        lang: Language code.
        reference: Displayed time. Adds an age suffix when the sample is more
            than five minutes away from it.
    """
    if sample is None:
        return t("no_sun_data", lang)
    azimuth = round(sample.azimuth)
    elevation = round(sample.elevation, 1)
    visibility = t("sun_visible" if sample.elevation > CIVIL_HORIZON_DEG else "sun_below", lang)
    return (
        f"{cardinal_direction(azimuth)} {azimuth}°, {elevation}° {t('elevation', lang)}"
        f" - {visibility}{_age_suffix(sample.t, reference)}"
    )


def describe_moon(moon: MoonSample, lang: str = "en") -> str:
    azimuth = round(moon.azimuth)
    elevation = round(moon.elevation, 1)
    visibility = t("moon_visible" if moon.elevation > MOON_VISIBLE_DEG else "moon_below", lang)
    lit = t("moon_lit", lang).format(
        illumination=round(moon.illumination * 100), phase=round(moon.phase * 100)
    )
    return (
        f"{cardinal_direction(azimuth)} {azimuth}°, {elevation}° {t('elevation', lang)}"
        f" - {visibility} ({lit}, {moon_phase_name(moon.phase, lang)})"
    )


def describe_location(location: LocationCoordinate) -> str:
    text = f"{location.lat:.4f}, {location.lon:.4f}"
    if location.accuracy is not None:
        text += f" (±{round(location.accuracy)}m)"
    return text
