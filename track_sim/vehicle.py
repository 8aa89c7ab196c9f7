"""Vehicles: kinematics, ray-cast sensing, reward shaping and life state."""

import logging
import math
import numpy as np
from collections import deque
from typing import Dict, Any, List, Optional, Sequence, Tuple

from algorithms.dqn import Experience
from environments.base_env import BaseTrack

logger = logging.getLogger(__name__)

DQN_SENSOR_ANGLES = (-math.pi / 4, 0.0, math.pi / 4)

REWARD_DEFAULTS = {
    'finish': 100.0,
    'off_track': -100.0,
    'progress_scale': 10.0,
    'regress_penalty': -1.0,
    'window': 20,
    'min_displacement': 20.0,
    'idle_penalty': -2.0,
    'proximity_threshold': 0.7,
    'proximity_penalty': -5.0,
    'smooth_threshold': 0.01,
    'smooth_bonus': 0.5,
    'invalid': -10.0,
}


def reward_params_from_config(config) -> Dict[str, float]:
    return {key: config.get(f'reward.{key}', default) for key, default in REWARD_DEFAULTS.items()}


def spread_sensor_angles(count: int, spread: float) -> List[float]:
    """Offsets spread evenly over ``spread`` radians, centred on the heading."""
    if count == 1:
        return [0.0]
    return [-spread / 2 + (i / (count - 1)) * spread for i in range(count)]


def shaped_reward(on_finish: bool,
                  on_track: bool,
                  delta: float,
                  displacement: float,
                  readings: Sequence[float],
                  heading_change: float,
                  params: Optional[Dict[str, float]] = None) -> float:
    """Per-tick reward for the value-based car.

    Terminal outcomes return their fixed reward directly. Otherwise progress
    shaping is combined with the idle, proximity and smoothness terms.
    Non-finite shaping inputs or results map to ``params['invalid']``.

    Args:
        on_finish: New position is in the finish zone
        on_track: New position is on the drivable area
        delta: Previous minus current distance to finish (positive = closer)
        displacement: Net displacement across the recent position window
        readings: Post-move sensor proximities in [0, 1]
        heading_change: Heading change applied this tick (radians)
        params: Reward constants, defaults to REWARD_DEFAULTS
    """
    p = REWARD_DEFAULTS if params is None else params

    inputs = [delta, displacement, heading_change, *readings]
    if not all(math.isfinite(value) for value in inputs):
        logger.warning("Non-finite reward inputs (delta=%s, displacement=%s, heading_change=%s, readings=%s); "
                       "using %s", delta, displacement, heading_change, list(readings), p['invalid'])
        return float(p['invalid'])

    if on_finish:
        return float(p['finish'])
    if not on_track:
        return float(p['off_track'])

    reward = delta * p['progress_scale'] if delta > 0 else p['regress_penalty']
    if displacement < p['min_displacement']:
        reward += p['idle_penalty']
    reward += p['proximity_penalty'] * sum(1 for r in readings if r > p['proximity_threshold'])
    if abs(heading_change) < p['smooth_threshold']:
        reward += p['smooth_bonus']
    else:
        reward -= p['smooth_bonus']

    if not math.isfinite(reward):
        logger.warning("Non-finite reward %s; using %s", reward, p['invalid'])
        return float(p['invalid'])
    return float(reward)


class Car:
    """Vehicle with fixed speed and ray sensors on a track."""

    def __init__(self, x: float, y: float, track: BaseTrack,
                 angle: float = 0.0,
                 speed: float = 2.0,
                 size: float = 20,
                 sensor_angles: Sequence[float] = DQN_SENSOR_ANGLES,
                 sensor_length: int = 100):
        self.x = float(x)
        self.y = float(y)
        self.track = track
        self.angle = float(angle)
        self.speed = speed
        self.size = size
        self.sensor_angles = tuple(sensor_angles)
        self.sensor_length = int(sensor_length)
        self.alive = True
        self.score = 0.0
        self.steps = 0
        self.finished = False
        self.last_distance = self.distance_to_finish()

    def cast_sensor(self, angle_offset: float) -> int:
        """Distance in unit steps to the first off-track point along a ray."""
        return self.sensor_endpoint(angle_offset)[2]

    def sensor_endpoint(self, angle_offset: float) -> Tuple[float, float, int]:
        """Ray end point and distance; the end is where the track test failed."""
        angle = self.angle + angle_offset
        dx = math.cos(angle)
        dy = math.sin(angle)
        for i in range(self.sensor_length):
            test_x = self.x + dx * i
            test_y = self.y + dy * i
            if not self.track.is_on_track(test_x, test_y):
                return test_x, test_y, i
        return self.x + dx * self.sensor_length, self.y + dy * self.sensor_length, self.sensor_length

    def get_sensor_inputs(self) -> np.ndarray:
        """Proximity per sensor: 1 touching an obstruction, 0 clear."""
        distances = np.array([self.cast_sensor(offset) for offset in self.sensor_angles], dtype=np.float32)
        return 1.0 - distances / self.sensor_length

    def distance_to_finish(self) -> float:
        return self.track.distance_to_finish(self.x, self.y)

    def _advance(self, heading_change: float):
        self.angle += heading_change
        self.x += math.cos(self.angle) * self.speed
        self.y += math.sin(self.angle) * self.speed
        self.steps += 1

    def snapshot(self) -> Dict[str, Any]:
        """Render-only view of the car."""
        return {
            'x': self.x,
            'y': self.y,
            'angle': self.angle,
            'size': self.size,
            'alive': self.alive,
            'sensors': [self.sensor_endpoint(offset)[:2] for offset in self.sensor_angles],
        }


class DQNCar(Car):
    """Car steered by discrete actions from a value-based agent.

    Actions: 0 turns left, 1 keeps the heading, 2 turns right.
    """

    def __init__(self, x: float, y: float, track: BaseTrack, agent,
                 turn_rate: float = 0.05,
                 max_steps: Optional[int] = None,
                 reward_params: Optional[Dict[str, float]] = None,
                 **kwargs):
        super().__init__(x, y, track, **kwargs)
        self.agent = agent
        self.turn_rate = turn_rate
        self.max_steps = max_steps
        self.reward_params = dict(REWARD_DEFAULTS if reward_params is None else reward_params)
        self.past_positions = deque(maxlen=int(self.reward_params['window']))
        self.last_reward = 0.0

    def heading_change(self, action: int) -> float:
        if action == 0:
            return -self.turn_rate
        if action == 1:
            return 0.0
        if action == 2:
            return self.turn_rate
        raise ValueError(f"Unknown action: {action}")

    def observe(self) -> np.ndarray:
        return self.get_sensor_inputs()

    def apply_action(self, state: np.ndarray, action: int) -> Experience:
        """Move under ``action`` and return the resulting transition.

        Terminal conditions are tested on the new position.
        """
        heading_change = self.heading_change(action)
        self._advance(heading_change)

        next_state = self.get_sensor_inputs()
        reward = self.compute_reward(heading_change, next_state)

        self.finished = self.track.is_on_finish(self.x, self.y)
        done = not self.track.is_on_track(self.x, self.y) or self.finished
        if self.max_steps is not None and self.steps >= self.max_steps:
            done = True

        self.last_reward = reward
        self.score += reward
        if done:
            self.alive = False
        return Experience(state, int(action), reward, next_state, done)

    def compute_reward(self, heading_change: float, readings: Sequence[float]) -> float:
        now_distance = self.distance_to_finish()
        delta = self.last_distance - now_distance
        self.last_distance = now_distance

        self.past_positions.append((self.x, self.y))
        first_x, first_y = self.past_positions[0]
        displacement = math.hypot(self.x - first_x, self.y - first_y)

        return shaped_reward(
            self.track.is_on_finish(self.x, self.y),
            self.track.is_on_track(self.x, self.y),
            delta, displacement, readings, heading_change, self.reward_params,
        )

    def update(self) -> Optional[Experience]:
        """Advance one tick with a synchronous agent; no-op when dead."""
        if not self.alive:
            return None
        state = self.observe()
        experience = self.apply_action(state, self.agent.act(state))
        self.agent.remember(experience)
        return experience


class EvolvedCar(Car):
    """Car steered continuously by an evolved network; accumulates fitness."""

    def __init__(self, x: float, y: float, track: BaseTrack, brain,
                 steer_rate: float = 0.05,
                 max_time: int = 500,
                 progress_scale: float = 10.0,
                 finish_bonus: float = 500.0,
                 time_bonus_scale: float = 2.0,
                 **kwargs):
        kwargs.setdefault('sensor_angles', spread_sensor_angles(5, math.pi / 2))
        super().__init__(x, y, track, **kwargs)
        self.brain = brain
        self.steer_rate = steer_rate
        self.max_time = max_time
        self.progress_scale = progress_scale
        self.finish_bonus = finish_bonus
        self.time_bonus_scale = time_bonus_scale

    @property
    def time_alive(self) -> int:
        return self.steps

    def update(self):
        if not self.alive:
            return
        readings = self.get_sensor_inputs()
        output = self.brain.predict(readings)
        steering = (float(output[0]) - 0.5) * 2

        self.angle += steering * self.steer_rate
        self.x += math.cos(self.angle) * self.speed
        self.y += math.sin(self.angle) * self.speed

        new_distance = self.distance_to_finish()
        self.score += (self.last_distance - new_distance) * self.progress_scale
        self.last_distance = new_distance

        if self.track.is_on_finish(self.x, self.y):
            self.alive = False
            self.finished = True
            self.score += self.finish_bonus + (self.max_time - self.time_alive) * self.time_bonus_scale
        elif not self.track.is_on_track(self.x, self.y):
            self.alive = False

        self.steps += 1
        if self.steps > self.max_time:
            self.alive = False
