"""Pygame rendering of the track, cars and sensor rays.

Render-only: nothing here feeds back into the simulation.
"""

import math
import numpy as np
import pygame
from typing import Any, Dict, Optional, Sequence

from environments.base_env import BaseTrack
from environments.raster_track import RasterTrack
from environments.track import RectTrack

GRASS = (34, 139, 34)
ASPHALT = (0, 0, 0)
FINISH = (255, 255, 0)
CAR_ALIVE = (0, 0, 255)
CAR_DEAD = (120, 120, 120)
SENSOR = (255, 0, 0)
TEXT = (255, 255, 255)


class TrackRenderer:
    """Draws a simulation state onto a pygame surface."""

    def __init__(self, surface: pygame.Surface, track: BaseTrack, show_dead: bool = False):
        self.surface = surface
        self.track = track
        self.show_dead = show_dead
        if not pygame.font.get_init():
            pygame.font.init()
        self.font = pygame.font.SysFont(None, 24)
        self._background = self._build_background()

    def _build_background(self) -> pygame.Surface:
        background = pygame.Surface(self.surface.get_size())
        background.fill(GRASS)

        if isinstance(self.track, RectTrack):
            for rect, color in ((self.track.outer, ASPHALT), (self.track.obstacle, GRASS),
                                (self.track.finish, FINISH)):
                pygame.draw.rect(background, color, pygame.Rect(
                    int(rect.x_min), int(rect.y_min),
                    int(rect.x_max - rect.x_min), int(rect.y_max - rect.y_min)))
        elif isinstance(self.track, RasterTrack):
            pixels = np.zeros(self.track.drivable.shape + (3,), dtype=np.uint8)
            pixels[:] = GRASS
            pixels[self.track.drivable] = ASPHALT
            pixels[self.track.finish] = FINISH
            # surfarray is indexed [x, y]
            background.blit(pygame.surfarray.make_surface(pixels.transpose(1, 0, 2)), (0, 0))
        return background

    def draw_car(self, snapshot: Dict[str, Any]):
        if not snapshot['alive'] and not self.show_dead:
            return
        x, y, angle = snapshot['x'], snapshot['y'], snapshot['angle']
        half = snapshot['size'] / 2
        cos_a, sin_a = math.cos(angle), math.sin(angle)
        corners = []
        for cx, cy in ((-half, -half), (half, -half), (half, half), (-half, half)):
            corners.append((x + cx * cos_a - cy * sin_a, y + cx * sin_a + cy * cos_a))
        pygame.draw.polygon(self.surface, CAR_ALIVE if snapshot['alive'] else CAR_DEAD, corners)

        if snapshot['alive']:
            for end_x, end_y in snapshot['sensors']:
                pygame.draw.line(self.surface, SENSOR, (x, y), (end_x, end_y), 1)

    def draw_overlay(self, lines: Sequence[str]):
        for i, line in enumerate(lines):
            self.surface.blit(self.font.render(line, True, TEXT), (10, 10 + i * 22))

    def render(self, state, stats: Optional[Dict[str, Any]] = None):
        """Draw one frame from a SimulationState."""
        self.surface.blit(self._background, (0, 0))
        for car in state.cars:
            self.draw_car(car.snapshot())

        lines = [f"Generation: {state.generation}",
                 f"Alive: {len(state.alive_cars())}/{len(state.cars)}"]
        if stats and stats.get('exploration_rate') is not None:
            lines.append(f"Explore: {stats['exploration_rate']:.3f}")
        self.draw_overlay(lines)
