import logging
import json
from pathlib import Path
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Dict, Any, List, Optional


LOGGER_NAME = 'track_sim'


class MetricsCollector:
    """Structured monitoring layer for generation metrics."""

    def __init__(self, log_dir: str = 'logs', level: int = logging.INFO):
        """Initialize metrics collector with a rotating file handler.

        The handler is attached to the ``track_sim`` logger, so warnings from
        vehicles, trainers and the policy worker land in the same file.

        Args:
            log_dir: Directory to store log files
            level: Log level for the text log
        """
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger(LOGGER_NAME)
        self.logger.setLevel(level)

        # Remove handlers left by a previous collector to avoid duplicates
        for handler in list(self.logger.handlers):
            if getattr(handler, '_metrics_collector', False):
                self.logger.removeHandler(handler)
                handler.close()

        # File handler with rotation (10 MB max, keep 5 backups)
        file_handler = RotatingFileHandler(
            self.log_dir / 'training.log',
            maxBytes=10 * 1024 * 1024,
            backupCount=5
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        file_handler._metrics_collector = True
        self.logger.addHandler(file_handler)
        self.file_handler = file_handler

        # JSONL file for structured metrics
        self.jsonl_file = self.log_dir / 'metrics.jsonl'

        # In-memory metrics for recent history
        self.generation_metrics: List[Dict[str, Any]] = []
        self.max_history = 1000

        self.startup_time = datetime.now()

    def log_generation(self, generation_data: Dict[str, Any]) -> None:
        """Log metrics for a completed generation.

        Args:
            generation_data: Expected keys: generation, best_score,
                mean_score, finished, ticks, and optionally
                exploration_rate, mean_loss, buffer_size
        """
        record = dict(generation_data)
        record['timestamp'] = datetime.now().isoformat()
        record['uptime_seconds'] = (datetime.now() - self.startup_time).total_seconds()

        self.generation_metrics.append(record)
        if len(self.generation_metrics) > self.max_history:
            self.generation_metrics.pop(0)

        self.logger.info(
            f"Generation {record.get('generation', 'N/A')}: "
            f"Best={record.get('best_score', 0.0):.2f}, "
            f"Mean={record.get('mean_score', 0.0):.2f}, "
            f"Finished={record.get('finished', 0)}, "
            f"Ticks={record.get('ticks', 0)}"
        )

        self._write_jsonl(record)

    def _write_jsonl(self, data: Dict[str, Any]) -> None:
        try:
            with open(self.jsonl_file, 'a') as f:
                json.dump(data, f)
                f.write('\n')
        except IOError as e:
            self.logger.error(f"Failed to write JSONL: {e}")

    def get_latest_metrics(self) -> Optional[Dict[str, Any]]:
        if self.generation_metrics:
            return self.generation_metrics[-1].copy()
        return None

    def get_aggregated_stats(self) -> Dict[str, Any]:
        """Calculate aggregated statistics from recent history."""
        if not self.generation_metrics:
            return {}

        best = [m.get('best_score', 0.0) for m in self.generation_metrics]
        mean = [m.get('mean_score', 0.0) for m in self.generation_metrics]
        finished = [m.get('finished', 0) for m in self.generation_metrics]
        ticks = [m.get('ticks', 0) for m in self.generation_metrics]
        total = len(self.generation_metrics)

        return {
            'total_generations': total,
            'max_best_score': max(best),
            'avg_best_score': sum(best) / total,
            'avg_mean_score': sum(mean) / total,
            'total_finished': sum(finished),
            'total_ticks': sum(ticks),
            'uptime_seconds': (datetime.now() - self.startup_time).total_seconds(),
        }

    def close(self) -> None:
        self.logger.removeHandler(self.file_handler)
        self.file_handler.close()
