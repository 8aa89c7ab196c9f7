"""Track environments the vehicles drive on."""

from .base_env import BaseTrack
from .track import Rect, RectTrack, track_from_config
from .raster_track import RasterTrack

__all__ = ['BaseTrack', 'Rect', 'RectTrack', 'RasterTrack', 'track_from_config']
