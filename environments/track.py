"""Rectangular track: outer bounds with one interior obstacle and a finish zone."""

import math
from typing import NamedTuple, Optional, Sequence, Tuple

from .base_env import BaseTrack


class Rect(NamedTuple):
    """Axis-aligned rectangle given by its corners."""
    x_min: float
    y_min: float
    x_max: float
    y_max: float

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> 'Rect':
        if len(values) != 4:
            raise ValueError(f"Rectangle needs 4 values, got {len(values)}")
        rect = cls(*(float(v) for v in values))
        if rect.x_min >= rect.x_max or rect.y_min >= rect.y_max:
            raise ValueError(f"Degenerate rectangle: {rect}")
        return rect

    def contains(self, x: float, y: float) -> bool:
        """Open-interval containment; edges are outside."""
        return self.x_min < x < self.x_max and self.y_min < y < self.y_max

    def within(self, other: 'Rect') -> bool:
        return (other.x_min <= self.x_min and self.x_max <= other.x_max and
                other.y_min <= self.y_min and self.y_max <= other.y_max)

    def overlaps(self, other: 'Rect') -> bool:
        return (self.x_min < other.x_max and other.x_min < self.x_max and
                self.y_min < other.y_max and other.y_min < self.y_max)

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.x_min + self.x_max) / 2, (self.y_min + self.y_max) / 2)


class RectTrack(BaseTrack):
    """Ring-shaped track between an outer rectangle and an interior obstacle."""

    def __init__(self,
                 outer: Sequence[float] = (100, 100, 700, 500),
                 obstacle: Sequence[float] = (300, 250, 500, 350),
                 finish: Sequence[float] = (660, 460, 700, 500),
                 finish_radius: Optional[float] = None):
        """Initialize track geometry.

        Args:
            outer: Outer bounds as (x_min, y_min, x_max, y_max)
            obstacle: Interior obstacle rectangle
            finish: Finish zone rectangle
            finish_radius: If set, the finish test becomes "within this
                radius of the finish centre"

        Raises:
            ValueError: If the obstacle is not inside the outer bounds or the
                finish zone overlaps the obstacle
        """
        self.outer = Rect.from_sequence(outer)
        self.obstacle = Rect.from_sequence(obstacle)
        self.finish = Rect.from_sequence(finish)
        self.finish_radius = finish_radius

        if not self.obstacle.within(self.outer):
            raise ValueError(f"Obstacle {self.obstacle} is not inside outer bounds {self.outer}")
        if self.finish.overlaps(self.obstacle):
            raise ValueError(f"Finish zone {self.finish} overlaps obstacle {self.obstacle}")
        if finish_radius is not None and finish_radius <= 0:
            raise ValueError(f"finish_radius must be positive, got {finish_radius}")

    def is_on_track(self, x: float, y: float) -> bool:
        # NaN fails every comparison, so it is reported off-track
        return self.outer.contains(x, y) and not self.obstacle.contains(x, y)

    def is_on_finish(self, x: float, y: float) -> bool:
        if self.finish_radius is not None:
            return self.distance_to_finish(x, y) <= self.finish_radius
        return self.finish.contains(x, y)

    @property
    def finish_center(self) -> Tuple[float, float]:
        return self.finish.center

    def __repr__(self) -> str:
        return (f"RectTrack(outer={tuple(self.outer)}, obstacle={tuple(self.obstacle)}, "
                f"finish={tuple(self.finish)}, finish_radius={self.finish_radius})")


def track_from_config(config) -> BaseTrack:
    """Build the configured track (``track.backend`` is ``rect`` or ``raster``)."""
    track = RectTrack(
        outer=config.get('track.outer', (100, 100, 700, 500)),
        obstacle=config.get('track.obstacle', (300, 250, 500, 350)),
        finish=config.get('track.finish', (660, 460, 700, 500)),
        finish_radius=config.get('track.finish_radius', None),
    )
    backend = config.get('track.backend', 'rect')
    if backend == 'rect':
        return track
    if backend == 'raster':
        # raster_track imports this module
        from .raster_track import RasterTrack
        return RasterTrack.from_track(
            track,
            width=config.get('track.width', 800),
            height=config.get('track.height', 600),
        )
    raise ValueError(f"Unknown track backend: {backend}")


def is_finite_point(x: float, y: float) -> bool:
    return math.isfinite(x) and math.isfinite(y)
