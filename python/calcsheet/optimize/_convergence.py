"""ConvergenceTracker: evaluation history and a progress diagnosis over it."""

from __future__ import annotations

import numpy as np

from calcsheet.optimize._protocol import CacheEntry, ConvergenceReport, OptimizerSettings

STARTING = "Starting optimization..."
STAGNANT = "Possible stagnation detected"
IMPROVING = "Significant improvement"
CONVERGING = "Converging..."


class ConvergenceTracker:
    """Ordered record of evaluations.

    The report is diagnostic only; nothing here feeds back into fitness.
    """

    def __init__(self, settings: OptimizerSettings | None = None) -> None:
        self.settings = settings or OptimizerSettings()
        self._entries: list[CacheEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> list[CacheEntry]:
        return list(self._entries)

    def append(self, entry: CacheEntry) -> None:
        self._entries.append(entry)

    def clear(self) -> None:
        self._entries.clear()

    def fitness_array(self) -> np.ndarray:
        return np.fromiter((e.fitness for e in self._entries), dtype=float, count=len(self._entries))

    def best_fitness(self) -> float | None:
        if not self._entries:
            return None
        return float(self.fitness_array().min())

    def report(self) -> ConvergenceReport:
        if len(self._entries) < 2:
            return ConvergenceReport(iteration=len(self._entries), trend=STARTING)

        s = self.settings
        fitness = self.fitness_array()
        recent = fitness[-s.history_window:]
        first, last = float(recent[0]), float(recent[-1])
        improvement = first - last
        rate = improvement / max(abs(first), 1e-6) * 100.0

        tail = recent[-s.stagnation_window:]
        stagnant = bool(np.all(np.abs(tail - last) < s.stagnation_tolerance))

        if stagnant:
            trend = STAGNANT
        elif rate > s.significant_rate:
            trend = IMPROVING
        else:
            trend = CONVERGING

        return ConvergenceReport(
            iteration=len(self._entries),
            improvement=improvement,
            improvement_rate=rate,
            best_fitness=float(fitness.min()),
            stagnant=stagnant,
            trend=trend,
        )
