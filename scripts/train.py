#!/usr/bin/env python3
"""CLI entry point for track training."""

import argparse
import logging
import os
import sys

import yaml

# Add parent directory to path for imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from algorithms.dqn import agent_from_config
from track_sim.config import Config, DEFAULT_CONFIG_PATH
from track_sim.monitoring import MetricsCollector
from track_sim.training import trainer_from_config
from track_sim.vehicle import DQN_SENSOR_ANGLES
from track_sim.worker import PolicyWorker


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Train cars to reach the finish zone')
    parser.add_argument('--config', type=str, default=None,
                        help='Path to configuration file (default: config/default.yaml)')
    parser.add_argument('--variant', choices=['dqn', 'evolution'], default='dqn',
                        help='Policy to train (default: dqn)')
    parser.add_argument('--generations', type=int, default=None,
                        help='Number of generations to run (default: infinite)')
    parser.add_argument('--ticks', type=int, default=None,
                        help='Number of ticks to run (default: infinite)')
    parser.add_argument('--worker', action='store_true',
                        help='Run DQN inference and training on a background worker')
    parser.add_argument('--render', action='store_true',
                        help='Open a window and draw every tick')
    parser.add_argument('--seed', type=int, default=None,
                        help='Override the configured random seed')
    parser.add_argument('--log-dir', type=str, default=None,
                        help='Directory for training.log and metrics.jsonl')
    return parser


def make_render_callback(trainer, fps: int):
    import pygame
    from track_sim.rendering import TrackRenderer

    pygame.init()
    width = trainer.config.get('track.width', 800)
    height = trainer.config.get('track.height', 600)
    screen = pygame.display.set_mode((width, height))
    pygame.display.set_caption("Track Training")
    clock = pygame.time.Clock()
    renderer = TrackRenderer(screen, trainer.track)

    def callback(state):
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                return False
            if event.type == pygame.KEYDOWN and event.key == pygame.K_ESCAPE:
                return False
        renderer.render(state, trainer.get_training_stats())
        pygame.display.flip()
        clock.tick(fps)
        return True

    return callback


def main(argv=None):
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    if args.worker and args.variant != 'dqn':
        print("--worker only applies to the dqn variant")
        return 2

    config_path = args.config or os.path.normpath(DEFAULT_CONFIG_PATH)
    config = Config(args.config)
    if args.seed is not None:
        config.set('seed', args.seed)

    log_dir = args.log_dir or config.get('logging.log_dir', 'logs')
    level = getattr(logging, str(config.get('logging.level', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(level=level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    collector = MetricsCollector(log_dir, level=level)

    print(f"Loading configuration from: {config_path}")
    print(f"Variant: {args.variant}")
    print(f"Max generations: {args.generations}")
    print(f"Max ticks: {args.ticks}")

    worker = None
    if args.worker:
        sensor_count = len(config.get('dqn.sensor_angles', DQN_SENSOR_ANGLES))
        worker = PolicyWorker(agent_from_config(config, sensor_count, seed=config.get('seed', 42)))

    trainer = trainer_from_config(args.variant, config, worker=worker, metrics_collector=collector)

    print("\nConfiguration Summary:")
    print(f"  Track: {trainer.track!r}")
    print(f"  Population: {len(trainer.state.cars)}")
    print(f"  Seed: {trainer.seed}")
    if args.variant == 'dqn':
        print(f"  Batch size: {config.get('dqn.batch_size', 32)}")
        print(f"  Buffer size: {config.get('dqn.buffer_size', 10000)}")
        print(f"  Train every: {config.get('training.train_every', 10)} ticks")
    else:
        print(f"  Survivor fraction: {config.get('evolution.survivor_fraction', 0.2)}")
        print(f"  Mutation rate: {config.get('evolution.mutation_rate', 0.3)}")
    print(f"  Log dir: {log_dir}")

    # Effective settings, overrides included, next to the logs of this run
    with open(os.path.join(log_dir, 'config.yaml'), 'w') as f:
        yaml.safe_dump(config.to_dict(), f, sort_keys=False)

    callback = make_render_callback(trainer, config.get('render.fps', 60)) if args.render else None

    print("\nStarting training...")
    try:
        if worker is not None:
            worker.start()
        stats = trainer.run(max_generations=args.generations, max_ticks=args.ticks, callback=callback)
    finally:
        if worker is not None:
            worker.stop()
        collector.close()

    summary = stats['metrics']
    print(f"Training completed. Generation: {stats['generation']}, Ticks: {stats['tick']}")
    print(f"  Best score: {summary['best_score_ever']}")
    print(f"  Mean finishers per generation: {summary['finish_rate']}")

    latest = collector.get_latest_metrics()
    if latest is not None:
        print(f"  Last generation: {latest['generation']} (best={latest['best_score']:.2f}, ticks={latest['ticks']})")
    aggregated = collector.get_aggregated_stats()
    if aggregated:
        print(f"  Generations logged: {aggregated['total_generations']}, "
              f"max best score: {aggregated['max_best_score']:.2f}, "
              f"total finishers: {aggregated['total_finished']}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
