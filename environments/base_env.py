"""Base track class for all drivable environments."""

from abc import ABC, abstractmethod
from typing import Tuple


class BaseTrack(ABC):
    """Abstract base class for tracks with the predicates vehicles sense against.

    Implementations must be pure and cheap: sensors call ``is_on_track`` once
    per ray step, many times per tick.
    """

    @abstractmethod
    def is_on_track(self, x: float, y: float) -> bool:
        """Whether the point lies on the drivable area."""
        pass

    @abstractmethod
    def is_on_finish(self, x: float, y: float) -> bool:
        """Whether the point lies in the finish zone."""
        pass

    @property
    @abstractmethod
    def finish_center(self) -> Tuple[float, float]:
        """Target point for distance-to-finish shaping."""
        pass

    def distance_to_finish(self, x: float, y: float) -> float:
        """Euclidean distance from a point to the finish centre."""
        fx, fy = self.finish_center
        dx = x - fx
        dy = y - fy
        return (dx * dx + dy * dy) ** 0.5
