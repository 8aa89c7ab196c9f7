"""Per-generation training metrics."""

import numpy as np
from typing import List, Dict, Any, Optional
from collections import deque


class Metrics:
    """Track generation outcomes over a moving window."""

    def __init__(self, window_size: int = 100):
        """Initialize metrics tracker.

        Args:
            window_size: Moving average window size
        """
        self.window_size = window_size
        self.best_scores = deque(maxlen=window_size)
        self.mean_scores = deque(maxlen=window_size)
        self.finish_counts = deque(maxlen=window_size)
        self.generation_lengths = deque(maxlen=window_size)
        self.training_losses = deque(maxlen=window_size)
        self.exploration_rates = deque(maxlen=window_size)

        self.generations = 0
        self.best_score_ever: Optional[float] = None

    def record_generation(self, scores: List[float], finished: int, length: int):
        """Record the outcome of one completed generation."""
        best = float(np.max(scores)) if len(scores) else 0.0
        self.best_scores.append(best)
        self.mean_scores.append(float(np.mean(scores)) if len(scores) else 0.0)
        self.finish_counts.append(int(finished))
        self.generation_lengths.append(int(length))
        self.generations += 1
        if self.best_score_ever is None or best > self.best_score_ever:
            self.best_score_ever = best

    def record_loss(self, loss: Optional[float]):
        """Record training loss."""
        if loss is not None:
            self.training_losses.append(loss)

    def record_exploration(self, exploration_rate: float):
        """Record exploration rate."""
        self.exploration_rates.append(exploration_rate)

    @property
    def mean_best_score(self) -> Optional[float]:
        return float(np.mean(self.best_scores)) if self.best_scores else None

    @property
    def mean_score(self) -> Optional[float]:
        return float(np.mean(self.mean_scores)) if self.mean_scores else None

    @property
    def finish_rate(self) -> Optional[float]:
        """Mean finishers per generation."""
        return float(np.mean(self.finish_counts)) if self.finish_counts else None

    @property
    def mean_length(self) -> Optional[float]:
        return float(np.mean(self.generation_lengths)) if self.generation_lengths else None

    @property
    def mean_loss(self) -> Optional[float]:
        return float(np.mean(self.training_losses)) if self.training_losses else None

    def get_summary(self) -> Dict[str, Any]:
        """Get metrics summary."""
        return {
            'generations': self.generations,
            'best_score_ever': self.best_score_ever,
            'mean_best_score': self.mean_best_score,
            'mean_score': self.mean_score,
            'finish_rate': self.finish_rate,
            'mean_length': self.mean_length,
            'mean_loss': self.mean_loss,
            'exploration_rate': self.exploration_rates[-1] if self.exploration_rates else None,
        }

