"""Matplotlib static PNG renderer."""

import logging
from collections.abc import Sequence
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.figure import Figure

from sunsetter.errors import ComputeError
from sunsetter.i18n import t
from sunsetter.models import CelestialSnapshot, SunSample
from sunsetter.renderers.base import ChartRenderer

log = logging.getLogger(__name__)

_BG = "#050a1a"


def render_static_chart(
    samples: Sequence[SunSample],
    heading: float = 0.0,
    snapshot: CelestialSnapshot | None = None,
    chart_size: int = 8,
    lang: str = "en",
) -> Figure:
    """Render a sun track as a static polar chart.

    Zenith at the centre, horizon on the rim, heading at the top.

    Args:
        samples: Sun track from compute_track().
        heading: Direction drawn at the top of the chart (degrees).
        snapshot: Sun and moon at the displayed time.
        chart_size: Output image size in inches.
        lang: Language code for labels.

    Returns:
        matplotlib Figure object.
    """
    fig = plt.figure(figsize=(chart_size, chart_size))
    fig.patch.set_facecolor(_BG)
    ax = fig.add_subplot(projection="polar")
    ax.set_facecolor(_BG)
    ax.set_theta_zero_location("N")
    ax.set_theta_direction(-1)
    ax.set_rlim(0, 90)
    ax.set_rticks([30, 60])
    ax.set_yticklabels(["60°", "30°"], color="#8899aa")
    ax.grid(color="#334466", linewidth=0.5)

    az = np.array([s.azimuth for s in samples], dtype=float)
    el = np.array([s.elevation for s in samples], dtype=float)
    theta = np.radians((az - heading) % 360.0)
    r = np.where(el >= 0, 90.0 - el, np.nan)
    ax.plot(theta, r, color="#ffb347", linewidth=2, label=t("chart_track", lang))

    if snapshot is not None:
        sun, moon = snapshot.sun, snapshot.moon
        if sun.elevation >= 0:
            ax.scatter(
                [np.radians((sun.azimuth - heading) % 360.0)],
                [90.0 - sun.elevation],
                s=200 * (sun.mass or 1.0),
                color="#ffd700",
                zorder=3,
            )
        if moon.elevation >= 0:
            ax.scatter(
                [np.radians((moon.azimuth - heading) % 360.0)],
                [90.0 - moon.elevation],
                s=150 * moon.mass,
                color="#dfe6f0",
                alpha=0.3 + 0.7 * moon.illumination,
                zorder=3,
            )

    ax.set_xticks(np.radians([0, 90, 180, 270]))
    ax.set_xticklabels(
        [f"{(heading + 90 * i) % 360:.0f}°" for i in range(4)], color="white"
    )
    ax.set_title(t("chart_title", lang), color="white")
    return fig


def save_static_chart(
    samples: Sequence[SunSample],
    output_path: Path,
    heading: float = 0.0,
    snapshot: CelestialSnapshot | None = None,
    lang: str = "en",
) -> Path:
    """Save a sun track chart as a PNG file.

    Args:
        samples: Sun track from compute_track().
        output_path: Destination path. Parent directories are created.
        heading: Direction drawn at the top of the chart.
        snapshot: Sun and moon at the displayed time.
        lang: Language code for labels.

    Returns:
        Path to the saved file.
    """
    fig = render_static_chart(samples, heading, snapshot, lang=lang)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, facecolor=_BG)
    finally:
        plt.close(fig)
    return output_path


class StaticRenderer(ChartRenderer):
    """Writes a PNG chart to output_path on every render_2d()."""

    def __init__(self, output_path: Path, lang: str = "en") -> None:
        super().__init__(lang=lang)
        self.output_path = output_path
        self.written: Path | None = None

    def _draw(self) -> None:
        try:
            self.written = save_static_chart(
                self.samples, self.output_path, self.heading, self.snapshot, lang=self.lang
            )
        except OSError as e:
            raise ComputeError(f"Could not write chart to {self.output_path}: {e}") from e
        log.info("Chart written to %s", self.written)
