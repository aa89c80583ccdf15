"""Sampling strategies that decide how often metrics are recorded."""

from __future__ import annotations

import random
import threading
import time
from abc import ABC, abstractmethod


class Sampler(ABC):
    """Decides whether a metric observation should be recorded."""

    @abstractmethod
    def should_sample(self) -> bool:
        """Return True if the observation should be recorded."""


class AllSampler(Sampler):
    """Samples every observation."""

    sample_rate = 1.0

    def should_sample(self) -> bool:
        return True


class NoneSampler(Sampler):
    """Samples no observations."""

    sample_rate = 0.0

    def should_sample(self) -> bool:
        return False


class FractionSampler(Sampler):
    """Samples a fraction of observations; the rate is clamped to [0, 1]."""

    def __init__(self, rate: float) -> None:
        self._rate = min(max(rate, 0.0), 1.0)
        self._random = random.Random(time.time_ns())
        self._lock = threading.Lock()

    @property
    def sample_rate(self) -> float:
        return self._rate

    def should_sample(self) -> bool:
        if self._rate == 0.0:
            return False
        if self._rate == 1.0:
            return True
        with self._lock:
            return self._random.random() < self._rate