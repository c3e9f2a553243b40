"""Optimizer settings and result dataclasses."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime


class ObjectiveMode(str, enum.Enum):
    MINIMIZE = "minimize"
    MAXIMIZE = "maximize"
    TARGET = "target"

    @classmethod
    def parse(cls, mode: str | None) -> ObjectiveMode:
        """Case-insensitive lookup; unknown or missing modes minimize."""
        try:
            return cls((mode or "").strip().lower())
        except ValueError:
            return cls.MINIMIZE


@dataclass(frozen=True)
class OptimizerSettings:
    penalty: float = 1e30  # stands in for a missing or non-finite objective
    history_window: int = 10  # entries compared for improvement
    stagnation_window: int = 5
    stagnation_tolerance: float = 1e-6
    significant_rate: float = 1.0  # percent
    max_design_variables: int = 10
    max_objectives: int = 3

    def __post_init__(self) -> None:
        if self.history_window < 2 or self.stagnation_window < 1:
            raise ValueError("history_window must be >= 2 and stagnation_window >= 1")
        if self.max_design_variables < 1 or self.max_objectives < 1:
            raise ValueError("max_design_variables and max_objectives must be >= 1")


@dataclass(frozen=True)
class CacheEntry:
    """One memoized evaluation."""

    iteration: int
    variables: tuple[float, ...]
    fitness: float
    objectives: tuple[float, ...]
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class Evaluation:
    """Outcome of one :meth:`SheetOptimizer.evaluate` call."""

    fitness: float
    objectives: tuple[float, ...]
    iteration: int
    best_fitness: float
    design_variables: tuple[str, ...]
    objective_names: tuple[str, ...]
    from_cache: bool = False
    status: str = ""
    missing_variables: tuple[str, ...] = ()  # design variables with no declaration
    convergence: str = ""


@dataclass(frozen=True)
class ConvergenceReport:
    iteration: int
    improvement: float = 0.0
    improvement_rate: float = 0.0  # percent of the first fitness in the window
    best_fitness: float | None = None
    stagnant: bool = False
    trend: str = "Starting optimization..."

    def __str__(self) -> str:
        if self.best_fitness is None:
            return self.trend
        return (
            f"Iteration {self.iteration}:\n"
            f"Improvement: {self.improvement:.6g} ({self.improvement_rate:.2f}%)\n"
            f"Best fitness: {self.best_fitness:.6g}\n"
            f"{self.trend}"
        )
