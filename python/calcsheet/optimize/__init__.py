"""calcsheet.optimize - Memoized sheet evaluation and convergence tracking."""

from calcsheet.optimize._convergence import ConvergenceTracker
from calcsheet.optimize._detect import OBJECTIVE_KEYWORDS, detect_design_variables, detect_objectives
from calcsheet.optimize._evaluator import (
    SheetOptimizer,
    build_signature,
    create_cache_key,
    objective_fitness,
    total_fitness,
)
from calcsheet.optimize._protocol import (
    CacheEntry,
    ConvergenceReport,
    Evaluation,
    ObjectiveMode,
    OptimizerSettings,
)

__all__ = [
    "CacheEntry",
    "ConvergenceReport",
    "ConvergenceTracker",
    "Evaluation",
    "OBJECTIVE_KEYWORDS",
    "ObjectiveMode",
    "OptimizerSettings",
    "SheetOptimizer",
    "build_signature",
    "create_cache_key",
    "detect_design_variables",
    "detect_objectives",
    "objective_fitness",
    "total_fitness",
]
