"""Episode loops: tick-driven training for the DQN and evolutionary populations."""

import logging
import math
import time
from concurrent.futures import CancelledError, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from algorithms.dqn import DQNAgent, agent_from_config
from algorithms.neuroevolution import next_generation_brains, select_survivors
from environments.base_env import BaseTrack
from environments.track import track_from_config
from evaluation.metrics import Metrics
from track_sim.config import Config, config as default_config
from track_sim.monitoring import MetricsCollector
from track_sim.vehicle import (
    Car, DQNCar, EvolvedCar, DQN_SENSOR_ANGLES, reward_params_from_config, spread_sensor_angles,
)
from track_sim.worker import PolicyWorker

logger = logging.getLogger(__name__)


@dataclass
class SimulationState:
    """Everything the loop mutates between ticks."""
    track: BaseTrack
    cars: List[Car] = field(default_factory=list)
    generation: int = 1
    tick: int = 0
    generation_ticks: int = 0

    def alive_cars(self) -> List[Car]:
        return [car for car in self.cars if car.alive]

    def all_terminated(self) -> bool:
        return all(not car.alive for car in self.cars)


class BaseTrainer:
    """Shared tick loop; subclasses supply population, updates and repopulation."""

    def __init__(self, config: Optional[Config] = None,
                 rng: Optional[np.random.RandomState] = None,
                 metrics_collector: Optional[MetricsCollector] = None):
        self.config = config if config is not None else default_config
        self.seed = self.config.get('seed', 42)
        self.rng = rng if rng is not None else np.random.RandomState(self.seed)
        self.track = track_from_config(self.config)
        self.state = SimulationState(self.track)
        self.metrics = Metrics()
        self.metrics_collector = metrics_collector
        self.running = False

        self.car_kwargs = {
            'speed': self.config.get('car.speed', 2.0),
            'size': self.config.get('car.size', 20),
            'sensor_length': self.config.get('car.sensor_length', 100),
        }

    @staticmethod
    def _check_population(count: int) -> int:
        if count < 1:
            raise ValueError(f"Population needs at least one car, got {count}")
        return int(count)

    def step(self) -> bool:
        """Advance one tick.

        Returns:
            True if every car had terminated and the generation advanced
        """
        self._update_cars()
        self.state.tick += 1
        self.state.generation_ticks += 1
        self._after_update()

        if self.state.all_terminated():
            self._end_generation()
            return True
        return False

    def _update_cars(self):
        for car in self.state.cars:
            car.update()

    def _after_update(self):
        pass

    def _repopulate(self):
        raise NotImplementedError

    def _generation_summary(self) -> Dict[str, Any]:
        scores = [car.score for car in self.state.cars]
        return {
            'generation': self.state.generation,
            'ticks': self.state.generation_ticks,
            'best_score': float(max(scores)),
            'mean_score': float(np.mean(scores)),
            'finished': sum(1 for car in self.state.cars if car.finished),
        }

    def _end_generation(self):
        summary = self._generation_summary()
        self.metrics.record_generation(
            [car.score for car in self.state.cars], summary['finished'], summary['ticks'])
        if self.metrics_collector is not None:
            self.metrics_collector.log_generation(summary)
        logger.info("Generation %d done after %d ticks: best=%.2f mean=%.2f finished=%d",
                    summary['generation'], summary['ticks'], summary['best_score'],
                    summary['mean_score'], summary['finished'])

        self._repopulate()
        self.state.generation += 1
        self.state.generation_ticks = 0

    def run(self, max_generations: Optional[int] = None, max_ticks: Optional[int] = None,
            callback: Optional[Callable[[SimulationState], Any]] = None) -> Dict[str, Any]:
        """Run the tick loop.

        Args:
            max_generations: Stop after this many completed generations
            max_ticks: Stop after this many ticks in total
            callback: Called with the state after every tick; returning
                False stops the loop

        Returns:
            Training statistics at exit
        """
        self.running = True
        start_generation = self.state.generation

        try:
            while self.running:
                if max_ticks is not None and self.state.tick >= max_ticks:
                    break
                if max_generations is not None and self.state.generation - start_generation >= max_generations:
                    break
                self.step()
                if callback is not None and callback(self.state) is False:
                    break
        except KeyboardInterrupt:
            logger.info("Training interrupted by user")
        finally:
            self.running = False

        return self.get_training_stats()

    def stop(self):
        self.running = False

    def get_training_stats(self) -> Dict[str, Any]:
        return {
            'generation': self.state.generation,
            'tick': self.state.tick,
            'alive': len(self.state.alive_cars()),
            'population': len(self.state.cars),
            'metrics': self.metrics.get_summary(),
        }


class DQNTrainer(BaseTrainer):
    """Population of DQN cars; replay runs on a fixed tick cadence."""

    def __init__(self, config: Optional[Config] = None,
                 rng: Optional[np.random.RandomState] = None,
                 worker: Optional[PolicyWorker] = None,
                 metrics_collector: Optional[MetricsCollector] = None):
        super().__init__(config, rng, metrics_collector)
        cfg = self.config

        self.car_count = self._check_population(cfg.get('dqn.car_count', 10))
        self.sensor_angles = list(cfg.get('dqn.sensor_angles', DQN_SENSOR_ANGLES))
        self.train_every = int(cfg.get('training.train_every', 10))
        if self.train_every < 1:
            raise ValueError(f"training.train_every must be positive, got {self.train_every}")
        self.shared_agent = bool(cfg.get('dqn.shared_agent', True))
        self.action_timeout = float(cfg.get('worker.action_timeout', 1.0))
        self.reward_params = reward_params_from_config(cfg)

        self.worker = worker
        if worker is not None and not self.shared_agent:
            raise ValueError("A policy worker serves one shared agent; set dqn.shared_agent to true")

        if worker is not None:
            self.agent = worker.agent
        elif self.shared_agent:
            self.agent = self._new_agent(self.seed)
        else:
            self.agent = None

        self.stalled_requests = 0
        self._recorded_train_count = 0
        self.state.cars = self._spawn_cars()

    def _new_agent(self, seed: int) -> DQNAgent:
        return agent_from_config(self.config, len(self.sensor_angles), rng=self.rng, seed=seed)

    def _spawn_cars(self) -> List[DQNCar]:
        cfg = self.config
        x = cfg.get('dqn.spawn_x', 150)
        y = cfg.get('dqn.spawn_y', 150)
        spacing = cfg.get('dqn.spawn_spacing', 10)

        cars = []
        for i in range(self.car_count):
            # Without a shared agent every car starts from a fresh network
            agent = self.agent if self.shared_agent else self._new_agent(int(self.rng.randint(2 ** 31 - 1)))
            cars.append(DQNCar(
                x, y + i * spacing, self.track, agent,
                turn_rate=cfg.get('dqn.turn_rate', 0.05),
                max_steps=cfg.get('dqn.max_steps', None),
                reward_params=self.reward_params,
                sensor_angles=self.sensor_angles,
                **self.car_kwargs,
            ))
        return cars

    def agents(self) -> List[DQNAgent]:
        if self.shared_agent:
            return [self.agent]
        return [car.agent for car in self.state.cars]

    @property
    def epsilon(self) -> float:
        return float(np.mean([agent.epsilon for agent in self.agents()]))

    def _update_cars(self):
        if self.worker is None:
            super()._update_cars()
            return

        # All requests go out before the first wait
        requests = []
        for car in self.state.alive_cars():
            state = car.observe()
            requests.append((car, state, self.worker.request_action(state)))

        deadline = time.monotonic() + self.action_timeout
        for car, state, request in requests:
            try:
                action = request.future.result(timeout=max(0.0, deadline - time.monotonic()))
            except (FutureTimeout, CancelledError):
                # The car keeps its last state this tick
                self.worker.abandon(request.request_id)
                self.stalled_requests += 1
                logger.warning("No action for request %d within %.2fs; car stalls this tick",
                               request.request_id, self.action_timeout)
                continue
            self.worker.send_experience(car.apply_action(state, action))

    def _after_update(self):
        if self.state.tick % self.train_every != 0:
            return
        if self.worker is not None:
            self.worker.request_training()
            return
        for agent in self.agents():
            self.metrics.record_loss(agent.replay())

    def _generation_summary(self) -> Dict[str, Any]:
        summary = super()._generation_summary()
        summary['exploration_rate'] = self.epsilon
        summary['buffer_size'] = sum(len(agent.memory) for agent in self.agents())
        # Only a loss from a replay since the last generation end is new
        if self.worker is not None and self.worker.train_count != self._recorded_train_count:
            self._recorded_train_count = self.worker.train_count
            self.metrics.record_loss(self.worker.last_loss)
        summary['mean_loss'] = self.metrics.mean_loss
        self.metrics.record_exploration(summary['exploration_rate'])
        return summary

    def _repopulate(self):
        self.state.cars = self._spawn_cars()

    def get_training_stats(self) -> Dict[str, Any]:
        stats = super().get_training_stats()
        stats.update({
            'exploration_rate': self.epsilon,
            'buffer_size': sum(len(agent.memory) for agent in self.agents()),
            'stalled_requests': self.stalled_requests,
        })
        return stats


class EvolutionTrainer(BaseTrainer):
    """Population of evolved cars; truncation selection between generations."""

    def __init__(self, config: Optional[Config] = None,
                 rng: Optional[np.random.RandomState] = None,
                 metrics_collector: Optional[MetricsCollector] = None):
        super().__init__(config, rng, metrics_collector)
        cfg = self.config

        self.car_count = self._check_population(cfg.get('evolution.car_count', 50))
        self.sensor_angles = spread_sensor_angles(
            int(cfg.get('evolution.sensor_count', 5)),
            cfg.get('evolution.sensor_spread', math.pi / 2),
        )
        self.hidden_size = int(cfg.get('evolution.hidden_size', 6))
        self.survivor_fraction = cfg.get('evolution.survivor_fraction', 0.2)
        self.mutation_rate = cfg.get('evolution.mutation_rate', 0.3)
        self.mutation_scale = cfg.get('evolution.mutation_scale', 0.5)
        self.survivors = []

        self.state.cars = self._spawn_cars(self._breed([]))

    def _breed(self, survivors) -> list:
        return next_generation_brains(
            survivors, self.car_count, self.rng,
            input_count=len(self.sensor_angles),
            hidden_count=self.hidden_size,
            output_count=1,
            mutation_rate=self.mutation_rate,
            mutation_scale=self.mutation_scale,
        )

    def _spawn_cars(self, brains) -> List[EvolvedCar]:
        cfg = self.config
        x = cfg.get('evolution.spawn_x', 150)
        y = cfg.get('evolution.spawn_y', 150)
        jitter = cfg.get('evolution.spawn_jitter', 10)
        angle_jitter = cfg.get('evolution.angle_jitter', 0.1)

        cars = []
        for brain in brains:
            cars.append(EvolvedCar(
                x + self.rng.uniform(-jitter, jitter),
                y + self.rng.uniform(-jitter, jitter),
                self.track, brain,
                angle=self.rng.uniform(-angle_jitter, angle_jitter),
                steer_rate=cfg.get('evolution.steer_rate', 0.05),
                max_time=cfg.get('evolution.max_time', 500),
                progress_scale=cfg.get('evolution.progress_scale', 10.0),
                finish_bonus=cfg.get('evolution.finish_bonus', 500.0),
                time_bonus_scale=cfg.get('evolution.time_bonus_scale', 2.0),
                sensor_angles=self.sensor_angles,
                **self.car_kwargs,
            ))
        return cars

    def _repopulate(self):
        self.survivors = select_survivors(self.state.cars, self.survivor_fraction)
        self.state.cars = self._spawn_cars(self._breed(self.survivors))

    def get_training_stats(self) -> Dict[str, Any]:
        stats = super().get_training_stats()
        stats['survivors'] = len(self.survivors)
        return stats


def trainer_from_config(variant: str, config: Optional[Config] = None,
                        worker: Optional[PolicyWorker] = None,
                        metrics_collector: Optional[MetricsCollector] = None) -> BaseTrainer:
    """Build the trainer for ``variant`` ('dqn' or 'evolution')."""
    if variant == 'dqn':
        return DQNTrainer(config, worker=worker, metrics_collector=metrics_collector)
    if variant == 'evolution':
        if worker is not None:
            raise ValueError("The policy worker only serves the dqn variant")
        return EvolutionTrainer(config, metrics_collector=metrics_collector)
    raise ValueError(f"Unknown variant: {variant}")
