"""Shared fixtures and test doubles."""

import os
os.environ["XLA_PYTHON_CLIENT_PREALLOCATE"] = "false"
os.environ['JAX_DISABLE_JIT'] = '1'

import numpy as np
import pytest

from environments.track import RectTrack
from track_sim.config import Config


class ScriptedRNG:
    """Random source that replays fixed sequences and records calls."""

    def __init__(self, samples=(0.5,), ints=(0,), uniforms=(0.0,)):
        self.samples = list(samples)
        self.ints = list(ints)
        self.uniforms = list(uniforms)
        self.randint_calls = []
        self._sample_i = 0
        self._int_i = 0
        self._uniform_i = 0

    def random_sample(self, size=None):
        if size is None:
            value = self.samples[self._sample_i % len(self.samples)]
            self._sample_i += 1
            return value
        return np.array([self.random_sample() for _ in range(int(np.prod(size)))]).reshape(size)

    def randint(self, high):
        self.randint_calls.append(high)
        value = self.ints[self._int_i % len(self.ints)]
        self._int_i += 1
        return value % high

    def uniform(self, low, high, size=None):
        if size is None:
            value = self.uniforms[self._uniform_i % len(self.uniforms)]
            self._uniform_i += 1
            return value
        return np.array([self.uniform(low, high) for _ in range(int(np.prod(size)))]).reshape(size)


class StubAgent:
    """Agent that always answers the same action and keeps what it is given."""

    def __init__(self, action=1):
        self.action = action
        self.memory = []
        self.epsilon = 1.0
        self.replays = 0

    def act(self, state):
        return self.action

    def remember(self, experience):
        self.memory.append(experience)

    def replay(self):
        self.replays += 1
        return None


class StubBrain:
    """Network stand-in with a fixed output."""

    def __init__(self, output=0.5):
        self.output = output
        self.inputs = []

    def predict(self, inputs):
        self.inputs.append(list(inputs))
        return np.array([self.output])


@pytest.fixture
def track():
    return RectTrack()


@pytest.fixture
def small_config():
    """Config with tiny populations and default everything else."""
    return Config(data={
        'seed': 7,
        'dqn': {'car_count': 2, 'hidden_layers': [8]},
        'evolution': {'car_count': 10, 'spawn_jitter': 0},
        'training': {'train_every': 5},
        'worker': {'action_timeout': 2.0},
    })
