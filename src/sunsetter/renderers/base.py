"""Rendering port: what the orchestrator needs from a view."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence

from sunsetter.models import CelestialSnapshot, RenderMode, SunSample
from sunsetter.sensors import VideoStream

log = logging.getLogger(__name__)


class RenderingPort(ABC):
    @property
    @abstractmethod
    def current_mode(self) -> RenderMode: ...

    @abstractmethod
    def update_data(self, samples: Sequence[SunSample], heading: float) -> None: ...

    @abstractmethod
    def render_2d(self, samples: Sequence[SunSample], heading: float) -> None: ...

    @abstractmethod
    def update_celestial_positions(
        self, snapshot: CelestialSnapshot, lat: float, lon: float
    ) -> None: ...

    @abstractmethod
    def start_animation_loop(self) -> None: ...

    @abstractmethod
    def toggle_mode(self, stream: VideoStream | None = None) -> RenderMode:
        """Switch between 2D and AR. Entering AR requires the camera stream."""

    @abstractmethod
    def dispose(self) -> None: ...


class ChartRenderer(RenderingPort):
    """Keeps the latest data handed over by the orchestrator; subclasses draw it.

    The renderer only borrows the camera stream. Stopping it stays with the owner.
    """

    def __init__(self, lang: str = "en") -> None:
        self.lang = lang
        self.samples: tuple[SunSample, ...] = ()
        self.heading = 0.0
        self.snapshot: CelestialSnapshot | None = None
        self.location: tuple[float, float] | None = None
        self.stream: VideoStream | None = None
        self.animating = False
        self.disposed = False
        self._mode = RenderMode.TWO_D

    @property
    def current_mode(self) -> RenderMode:
        return self._mode

    def update_data(self, samples: Sequence[SunSample], heading: float) -> None:
        self.samples = tuple(samples)
        self.heading = heading

    def render_2d(self, samples: Sequence[SunSample], heading: float) -> None:
        self.samples = tuple(samples)
        self.heading = heading
        self._draw()

    def update_celestial_positions(
        self, snapshot: CelestialSnapshot, lat: float, lon: float
    ) -> None:
        self.snapshot = snapshot
        self.location = (lat, lon)

    def start_animation_loop(self) -> None:
        self.animating = True

    def toggle_mode(self, stream: VideoStream | None = None) -> RenderMode:
        if self._mode is RenderMode.TWO_D:
            if stream is None:
                raise ValueError("AR mode needs a camera stream")
            self.stream = stream
            self._mode = RenderMode.AR
        else:
            self.stream = None
            self._mode = RenderMode.TWO_D
        log.debug("Render mode is now %s", self._mode.value)
        return self._mode

    def dispose(self) -> None:
        self.stream = None
        self.animating = False
        self.samples = ()
        self.snapshot = None
        self.disposed = True

    @abstractmethod
    def _draw(self) -> None:
        """Produce output from the stored samples, heading, and snapshot."""
