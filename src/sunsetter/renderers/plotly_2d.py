"""Plotly sun-path chart renderer.

2D mode: polar chart with the zenith at the centre and the horizon on the
rim (r = 90 - elevation), rotated so the device heading points up.
AR mode: flat overlay of the camera field of view centred on the heading,
meant to sit on top of the video feed.
"""

from collections.abc import Sequence

import numpy as np
import plotly.graph_objects as go

from sunsetter.i18n import t
from sunsetter.models import CelestialSnapshot, RenderMode, SunSample
from sunsetter.renderers.base import ChartRenderer
from sunsetter.sensors import VideoStream
from sunsetter.status import cardinal_direction

_BG = "#050a1a"
_GRID = "#334466"
_TRACK_COLOR = "#ffb347"
_SUN_COLOR = "#ffd700"
_MOON_COLOR = "#dfe6f0"

DEFAULT_FOV_DEG = 60.0  # Horizontal field of view of a phone camera


def _relative_azimuth(azimuth: np.ndarray | float, heading: float) -> np.ndarray:
    """Azimuth relative to heading, wrapped to [-180, 180)."""
    return (np.asarray(azimuth) - heading + 180.0) % 360.0 - 180.0


def _track_arrays(samples: Sequence[SunSample]) -> tuple[np.ndarray, np.ndarray]:
    az = np.array([s.azimuth for s in samples], dtype=float)
    el = np.array([s.elevation for s in samples], dtype=float)
    return az, el


def render_sun_path_figure(
    samples: Sequence[SunSample],
    heading: float = 0.0,
    snapshot: CelestialSnapshot | None = None,
    lang: str = "en",
) -> go.Figure:
    """Render a sun track as a Plotly polar chart.

    Only the part of the track above the horizon is drawn. The sun marker
    scales with the sun's apparent mass, the moon marker with its mass and
    illumination.

    Args:
        samples: Sun track from compute_track().
        heading: Device heading in degrees; this direction is drawn at the top.
        snapshot: Sun and moon at the displayed time.
        lang: Language code for labels.

    Returns:
        Plotly Figure object.
    """
    az, el = _track_arrays(samples)
    # NaN breaks the line below the horizon
    r = np.where(el >= 0, 90.0 - el, np.nan)
    theta = (az - heading) % 360.0

    traces = [
        go.Scatterpolar(
            r=r,
            theta=theta,
            mode="lines",
            line=dict(color=_TRACK_COLOR, width=2),
            hoverinfo="skip",
            name=t("chart_track", lang),
        )
    ]

    if snapshot is not None:
        sun, moon = snapshot.sun, snapshot.moon
        if sun.elevation >= 0:
            traces.append(
                go.Scatterpolar(
                    r=[90.0 - sun.elevation],
                    theta=[(sun.azimuth - heading) % 360.0],
                    mode="markers",
                    marker=dict(size=16 * (sun.mass or 1.0), color=_SUN_COLOR),
                    hovertemplate=f"{t('chart_sun', lang)}: %{{customdata[0]:.1f}}°, %{{customdata[1]:.1f}}°<extra></extra>",
                    customdata=[[sun.azimuth, sun.elevation]],
                    name=t("chart_sun", lang),
                )
            )
        if moon.elevation >= 0:
            traces.append(
                go.Scatterpolar(
                    r=[90.0 - moon.elevation],
                    theta=[(moon.azimuth - heading) % 360.0],
                    mode="markers",
                    marker=dict(
                        size=12 * moon.mass,
                        color=_MOON_COLOR,
                        opacity=0.3 + 0.7 * moon.illumination,
                    ),
                    hovertemplate=f"{t('chart_moon', lang)}: %{{customdata[0]:.1f}}°, %{{customdata[1]:.1f}}°<extra></extra>",
                    customdata=[[moon.azimuth, moon.elevation]],
                    name=t("chart_moon", lang),
                )
            )

    fig = go.Figure(data=traces)
    fig.update_layout(
        paper_bgcolor=_BG,
        showlegend=False,
        margin=dict(l=30, r=30, t=30, b=30),
        title=dict(text=t("chart_title", lang), font=dict(color="#ffffff")),
        polar=dict(
            bgcolor=_BG,
            radialaxis=dict(
                range=[0, 90],
                tickvals=[0, 30, 60, 90],
                ticktext=["90°", "60°", "30°", "0°"],
                gridcolor=_GRID,
                tickfont=dict(color="#8899aa"),
            ),
            angularaxis=dict(
                rotation=90,
                direction="clockwise",
                tickvals=[0, 90, 180, 270],
                ticktext=_compass_labels(heading),
                gridcolor=_GRID,
                tickfont=dict(color="#ffffff"),
            ),
        ),
    )
    fig._config = {"displayModeBar": False}  # type: ignore[attr-defined]
    return fig


def _compass_labels(heading: float) -> list[str]:
    """Directions at the top, right, bottom, and left of the rotated chart."""
    return [cardinal_direction((heading + 90 * i) % 360) for i in range(4)]


def render_ar_overlay_figure(
    samples: Sequence[SunSample],
    heading: float,
    snapshot: CelestialSnapshot | None = None,
    fov_deg: float = DEFAULT_FOV_DEG,
    lang: str = "en",
) -> go.Figure:
    """Render the part of the sky in front of the camera as a transparent overlay.

    x is the azimuth relative to the heading (0 = screen centre), y is the
    elevation. The horizon is drawn at y = 0.
    """
    half = fov_deg / 2.0
    az, el = _track_arrays(samples)
    x = _relative_azimuth(az, heading)
    in_view = np.abs(x) <= half
    fig = go.Figure(
        data=[
            go.Scatter(
                x=np.where(in_view, x, np.nan),
                y=np.where(in_view, el, np.nan),
                mode="lines",
                line=dict(color=_TRACK_COLOR, width=3),
                hoverinfo="skip",
                name=t("chart_track", lang),
            )
        ]
    )

    if snapshot is not None:
        for body, color, size, key in (
            (snapshot.sun, _SUN_COLOR, 30 * (snapshot.sun.mass or 1.0), "chart_sun"),
            (snapshot.moon, _MOON_COLOR, 24 * snapshot.moon.mass, "chart_moon"),
        ):
            rel = float(_relative_azimuth(body.azimuth, heading))
            if abs(rel) <= half:
                fig.add_trace(
                    go.Scatter(
                        x=[rel],
                        y=[body.elevation],
                        mode="markers+text",
                        marker=dict(size=size, color=color),
                        text=[t(key, lang)],
                        textposition="top center",
                        name=t(key, lang),
                    )
                )

    fig.update_layout(
        paper_bgcolor="rgba(0,0,0,0)",
        plot_bgcolor="rgba(0,0,0,0)",
        showlegend=False,
        margin=dict(l=0, r=0, t=0, b=0),
        title=dict(text=t("chart_camera_view", lang)),
        xaxis=dict(range=[-half, half], visible=False, fixedrange=True),
        yaxis=dict(range=[-half / 2, half * 1.5], visible=False, fixedrange=True),
        shapes=[
            dict(
                type="line",
                x0=-half,
                x1=half,
                y0=0,
                y1=0,
                line=dict(color=_GRID, width=1, dash="dot"),
            )
        ],
    )
    return fig


class PlotlyRenderer(ChartRenderer):
    """Keeps a Plotly figure of the current view in `figure`."""

    def __init__(self, lang: str = "en", fov_deg: float = DEFAULT_FOV_DEG) -> None:
        super().__init__(lang=lang)
        self.fov_deg = fov_deg
        self.figure: go.Figure | None = None

    def update_celestial_positions(
        self, snapshot: CelestialSnapshot, lat: float, lon: float
    ) -> None:
        super().update_celestial_positions(snapshot, lat, lon)
        if self.figure is not None:
            self._draw()

    def toggle_mode(self, stream: VideoStream | None = None) -> RenderMode:
        mode = super().toggle_mode(stream)
        if self.figure is not None:
            self._draw()
        return mode

    def dispose(self) -> None:
        super().dispose()
        self.figure = None

    def _draw(self) -> None:
        if self._mode is RenderMode.AR:
            self.figure = render_ar_overlay_figure(
                self.samples, self.heading, self.snapshot, self.fov_deg, self.lang
            )
        else:
            self.figure = render_sun_path_figure(
                self.samples, self.heading, self.snapshot, self.lang
            )
