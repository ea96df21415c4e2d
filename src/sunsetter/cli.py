"""Command-line entry point: sun and moon report plus a PNG sun-path chart.

Usage:
    sunsetter --demo
    sunsetter --lat 37.7749 --lon -122.4194 --at 2024-06-21T19:00:00Z
    sunsetter --address "Gwangalli Beach, Busan" --output busan.png
"""

import argparse
import asyncio
import sys
from dataclasses import replace
from datetime import datetime, timezone, tzinfo
from pathlib import Path

from dotenv import load_dotenv

from sunsetter.config import Settings, configure_logging
from sunsetter.ephemeris import (
    find_next_sunrise,
    find_next_sunset,
    find_solar_noon,
    local_timezone,
    solve_sunrise_sunset,
)
from sunsetter.i18n import t
from sunsetter.models import utcnow
from sunsetter.orchestrator import Orchestrator
from sunsetter.renderers.static import StaticRenderer
from sunsetter.sensors import FixedLocationGateway, GeocodingGateway, SensorGateway
from sunsetter.status import describe_location, describe_moon, describe_sun, status_text


def _parse_time(value: str) -> datetime:
    """ISO 8601 timestamp; a trailing Z and naive values mean UTC."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not an ISO 8601 timestamp: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sunsetter",
        description="Where is the sun (and the moon)? Prints positions and "
        "sunrise/sunset times, and draws the sun path.",
    )
    where = parser.add_mutually_exclusive_group(required=True)
    where.add_argument("--demo", action="store_true", help="Use the San Francisco demo location")
    where.add_argument("--address", help="Resolve a free-text address with Nominatim")
    where.add_argument("--lat", type=float, help="Latitude in degrees (needs --lon)")
    parser.add_argument("--lon", type=float, help="Longitude in degrees (with --lat)")
    parser.add_argument(
        "--at", type=_parse_time, help="Time to show, ISO 8601 (default: now, naive = UTC)"
    )
    parser.add_argument("--hours", type=float, help="Track length in hours")
    parser.add_argument("--step", type=float, help="Track step in minutes")
    parser.add_argument("--output", type=Path, help="PNG path (default: results/...)")
    parser.add_argument("--lang", choices=("en", "ko"), help="Output language")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def _make_gateway(args: argparse.Namespace, settings: Settings, clock) -> SensorGateway:
    if args.demo:
        return FixedLocationGateway.demo(clock=clock)
    if args.address:
        return GeocodingGateway(
            args.address,
            url=settings.nominatim_url,
            user_agent=settings.user_agent,
            clock=clock,
        )
    return FixedLocationGateway(args.lat, args.lon, clock=clock)


def _default_output(args: argparse.Namespace, when: datetime) -> Path:
    if args.demo:
        place = "demo"
    elif args.address:
        place = args.address
    else:
        place = f"{args.lat:.4f}_{args.lon:.4f}"
    filename = f"{place}__{when.strftime('%Y_%m_%d_%H_%M')}.png".replace(" ", "_")
    return Path("results") / filename


def _format(dt: datetime | None, zone: tzinfo, lang: str) -> str:
    if dt is None:
        return t("none_today", lang)
    return dt.astimezone(zone).strftime("%Y-%m-%d %H:%M %Z")


def _print_report(orchestrator: Orchestrator, lang: str) -> None:
    location = orchestrator.get_current_location()
    snapshot = orchestrator.snapshot
    samples = orchestrator.get_status().samples or ()
    if location is None or snapshot is None:
        raise RuntimeError("No rendered location to report on")

    zone = local_timezone(location.lat, location.lon)
    when = orchestrator.get_current_timestamp()
    local_day = when.astimezone(zone).date()
    day = solve_sunrise_sunset(location.lat, location.lon, local_day, zone)
    sunrise = find_next_sunrise(location.lat, location.lon, when)
    sunset = find_next_sunset(location.lat, location.lon, when)
    noon = find_solar_noon(samples)

    print(f"{t('label_location', lang)}: {describe_location(location)}")
    print(f"{t('label_time', lang)}: {_format(when, zone, lang)}")
    print(f"{t('chart_sun', lang)}: {describe_sun(snapshot.sun, lang)}")
    print(f"{t('chart_moon', lang)}: {describe_moon(snapshot.moon, lang)}")
    print(
        f"{t('label_sunrise', lang)}: {_format(day.sunrise, zone, lang)}  "
        f"{t('label_sunset', lang)}: {_format(day.sunset, zone, lang)}"
    )
    if noon is not None:
        print(
            f"{t('label_solar_noon', lang)}: {_format(noon.t, zone, lang)} "
            f"({noon.elevation:.1f}°)"
        )
    for label, event in (("label_next_sunrise", sunrise), ("label_next_sunset", sunset)):
        if event is None:
            print(f"{t(label, lang)}: {t('none_today', lang)}")
        else:
            print(f"{t(label, lang)}: {_format(event.time, zone, lang)} ({event.azimuth:.0f}°)")


async def run(args: argparse.Namespace, settings: Settings) -> int:
    """Run one report. Returns the process exit code."""
    lang = args.lang or settings.lang
    fixed_time = args.at
    clock = (lambda: fixed_time) if fixed_time is not None else utcnow
    output = args.output or _default_output(args, clock())

    gateway = _make_gateway(args, settings, clock)
    renderer = StaticRenderer(output, lang=lang)
    async with Orchestrator(
        gateway, renderer, settings=settings, clock=clock, lang=lang
    ) as orchestrator:
        await orchestrator.initialize()
        if not await orchestrator.request_location():
            print(status_text(orchestrator.get_status(), lang), file=sys.stderr)
            return 1
        if isinstance(gateway, GeocodingGateway) and gateway.display_name:
            print(f"{t('label_address', lang)}: {gateway.display_name}")
        _print_report(orchestrator, lang)
        print(f"{t('chart_title', lang)}: {renderer.written}")
    return 0


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.lat is not None and args.lon is None:
        parser.error("--lat needs --lon")
    if args.lon is not None and args.lat is None:
        parser.error("--lon needs --lat")

    try:
        settings = Settings.from_env()
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2
    if args.hours is not None or args.step is not None:
        settings = replace(
            settings,
            track_hours=settings.track_hours if args.hours is None else args.hours,
            track_step_min=settings.track_step_min if args.step is None else args.step,
        )

    configure_logging(settings.log_level, verbose=args.verbose)
    return asyncio.run(run(args, settings))


if __name__ == "__main__":
    sys.exit(main())
