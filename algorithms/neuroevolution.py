"""Neuroevolution: a small feed-forward controller evolved without gradients."""

import math
import numpy as np
from typing import List, Optional, Sequence


class NeuralNetwork:
    """Two-layer network with sigmoid hidden units and linear outputs."""

    def __init__(self, input_count: int = 5, hidden_count: int = 6, output_count: int = 1,
                 rng: Optional[np.random.RandomState] = None):
        self.rng = rng if rng is not None else np.random.RandomState()
        self.weights_input_hidden = self.rng.uniform(-1.0, 1.0, size=(hidden_count, input_count))
        self.weights_hidden_output = self.rng.uniform(-1.0, 1.0, size=(output_count, hidden_count))

    @property
    def layers(self) -> List[np.ndarray]:
        return [self.weights_input_hidden, self.weights_hidden_output]

    @staticmethod
    def activate(x):
        return 1.0 / (1.0 + np.exp(-x))

    def predict(self, inputs: Sequence[float]) -> np.ndarray:
        hidden = self.activate(self.weights_input_hidden @ np.asarray(inputs, dtype=float))
        return self.weights_hidden_output @ hidden

    def clone(self) -> 'NeuralNetwork':
        """Deep copy of the weights; the clone shares the random source."""
        clone = NeuralNetwork.__new__(NeuralNetwork)
        clone.rng = self.rng
        clone.weights_input_hidden = self.weights_input_hidden.copy()
        clone.weights_hidden_output = self.weights_hidden_output.copy()
        return clone

    def mutate(self, rate: float = 0.3, scale: float = 0.5) -> 'NeuralNetwork':
        """Perturb each weight with probability ``rate`` by uniform(-scale, scale)."""
        for weights in self.layers:
            mask = self.rng.random_sample(weights.shape) < rate
            noise = self.rng.uniform(-scale, scale, size=weights.shape)
            weights[mask] += noise[mask]
        return self


def survivor_count(population: int, fraction: float = 0.2) -> int:
    # Rounded first so float noise (e.g. 3 * 0.1) does not push ceil up a whole car
    return int(math.ceil(round(population * fraction, 9)))


def select_survivors(cars: Sequence, fraction: float = 0.2) -> List[NeuralNetwork]:
    """Brains of the top ``ceil(len(cars) * fraction)`` cars by score."""
    ranked = sorted(cars, key=lambda car: car.score, reverse=True)
    return [car.brain for car in ranked[:survivor_count(len(cars), fraction)]]


def next_generation_brains(survivors: Sequence[NeuralNetwork], count: int,
                           rng: np.random.RandomState,
                           input_count: int = 5, hidden_count: int = 6, output_count: int = 1,
                           mutation_rate: float = 0.3,
                           mutation_scale: float = 0.5) -> List[NeuralNetwork]:
    """Clone a uniformly chosen survivor per slot and mutate it.

    With no survivors (first generation) every slot gets a fresh network.
    """
    brains = []
    for _ in range(count):
        if survivors:
            parent = survivors[int(rng.randint(len(survivors)))]
            brains.append(parent.clone().mutate(mutation_rate, mutation_scale))
        else:
            brains.append(NeuralNetwork(input_count, hidden_count, output_count, rng=rng))
    return brains
