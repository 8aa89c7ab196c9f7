"""Pixel-sampled track backed by boolean image masks."""

import numpy as np
from typing import Tuple

from .base_env import BaseTrack
from .track import RectTrack, is_finite_point


class RasterTrack(BaseTrack):
    """Track whose predicates sample a rasterized image.

    A point maps to the pixel ``(int(x), int(y))``, so precision is bounded by
    the grid. Points outside the image are off-track.
    """

    def __init__(self, drivable: np.ndarray, finish: np.ndarray, finish_center: Tuple[float, float]):
        """Initialize from masks indexed as ``mask[y, x]``.

        Args:
            drivable: Boolean mask of drivable pixels
            finish: Boolean mask of finish pixels, same shape
            finish_center: Target point for distance shaping
        """
        drivable = np.asarray(drivable, dtype=bool)
        finish = np.asarray(finish, dtype=bool)
        if drivable.ndim != 2 or drivable.shape != finish.shape:
            raise ValueError(f"Masks must be 2D and equal in shape, got {drivable.shape} and {finish.shape}")
        self.drivable = drivable
        self.finish = finish
        self._finish_center = (float(finish_center[0]), float(finish_center[1]))

    @property
    def height(self) -> int:
        return self.drivable.shape[0]

    @property
    def width(self) -> int:
        return self.drivable.shape[1]

    def _pixel(self, x: float, y: float):
        if not is_finite_point(x, y):
            return None
        px, py = int(x), int(y)
        # int() truncates toward zero, so (-0.5) would alias pixel 0
        if x < 0 or y < 0 or px >= self.width or py >= self.height:
            return None
        return px, py

    def is_on_track(self, x: float, y: float) -> bool:
        pixel = self._pixel(x, y)
        if pixel is None:
            return False
        return bool(self.drivable[pixel[1], pixel[0]])

    def is_on_finish(self, x: float, y: float) -> bool:
        pixel = self._pixel(x, y)
        if pixel is None:
            return False
        return bool(self.finish[pixel[1], pixel[0]])

    @property
    def finish_center(self) -> Tuple[float, float]:
        return self._finish_center

    @classmethod
    def from_track(cls, track: RectTrack, width: int = 800, height: int = 600) -> 'RasterTrack':
        """Rasterize a rectangular track by sampling each pixel's corner."""
        ys, xs = np.mgrid[0:height, 0:width]
        outer, obstacle, finish = track.outer, track.obstacle, track.finish

        def inside(rect):
            return (xs > rect.x_min) & (xs < rect.x_max) & (ys > rect.y_min) & (ys < rect.y_max)

        drivable = inside(outer) & ~inside(obstacle)
        if track.finish_radius is not None:
            cx, cy = track.finish_center
            finish_mask = np.hypot(xs - cx, ys - cy) <= track.finish_radius
        else:
            finish_mask = inside(finish)
        return cls(drivable, finish_mask, track.finish_center)
