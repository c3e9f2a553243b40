"""SheetOptimizer: memoized objective evaluation of a sheet for iterative search.

An external search loop proposes design-variable vectors; each call to
:meth:`SheetOptimizer.evaluate` substitutes the vector into the sheet,
renders it and folds the requested objectives into one fitness number to
minimize.  Repeated vectors are answered from a cache without rendering.
The cache and history belong to one problem signature (design variables,
objectives, modes, targets) and are dropped when it changes.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Sequence

from calcsheet._sheet import Sheet
from calcsheet._utils import round_trip
from calcsheet.optimize._convergence import ConvergenceTracker
from calcsheet.optimize._detect import detect_design_variables, detect_objectives
from calcsheet.optimize._protocol import (
    CacheEntry,
    ConvergenceReport,
    Evaluation,
    ObjectiveMode,
    OptimizerSettings,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Signatures and keys
# ---------------------------------------------------------------------------


def normalize_mode(mode: str | None) -> str:
    return (mode or ObjectiveMode.MINIMIZE.value).strip().lower()


def _problem(
    objective_names: Sequence[str],
    modes: Sequence[str | None],
    targets: Sequence[float],
) -> dict[str, list[str]]:
    return {
        "on": list(objective_names),
        "om": [normalize_mode(m) for m in modes],
        "tv": [round_trip(t) for t in targets],
    }


def build_signature(
    design_vars: Sequence[str],
    objective_names: Sequence[str],
    modes: Sequence[str | None],
    targets: Sequence[float],
) -> str:
    """Deterministic fingerprint of an optimization problem."""
    payload = {"dv": list(design_vars), **_problem(objective_names, modes, targets)}
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def create_cache_key(
    names: Sequence[str],
    values: Sequence[float],
    objective_names: Sequence[str],
    modes: Sequence[str | None],
    targets: Sequence[float],
) -> str:
    """Memoization key: every ``name=value`` pair plus the objective setup."""
    payload = {
        "dv": [[name, round_trip(value)] for name, value in zip(names, values)],
        **_problem(objective_names, modes, targets),
    }
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


# ---------------------------------------------------------------------------
# Fitness
# ---------------------------------------------------------------------------


def objective_fitness(
    value: float,
    mode: str | None = None,
    target: float = 0.0,
    penalty: float = 1e30,
) -> float:
    """Contribution of one objective to the total fitness (lower is better).

    A non-finite value always contributes the full penalty, whatever the mode.
    Under ``maximize`` it is not negated, so a missing objective adds
    ``+penalty`` rather than ``-penalty``.
    """
    if not math.isfinite(value):
        return penalty
    parsed = ObjectiveMode.parse(mode)
    if parsed is ObjectiveMode.MAXIMIZE:
        return -value
    if parsed is ObjectiveMode.TARGET:
        return abs(value - target)
    return value


def total_fitness(
    values: Sequence[float],
    modes: Sequence[str | None] = (),
    targets: Sequence[float] = (),
    penalty: float = 1e30,
) -> float:
    """Sum of per-objective contributions; modes default to minimize, targets to 0."""
    if not values:
        return penalty
    total = 0.0
    for i, value in enumerate(values):
        mode = modes[i] if i < len(modes) else None
        target = targets[i] if i < len(targets) else 0.0
        total += objective_fitness(value, mode, target, penalty)
    return total


# ---------------------------------------------------------------------------
# Optimizer
# ---------------------------------------------------------------------------


class SheetOptimizer:
    """Evaluates design-variable vectors against a sheet, with memoization.

    Usage::

        opt = SheetOptimizer(sheet)
        ev = opt.evaluate(["b", "h"], [200, 400], ["stress"], ["minimize"])
        ev.fitness, ev.from_cache
        print(opt.analyze_convergence())
    """

    def __init__(self, sheet: Sheet, settings: OptimizerSettings | None = None) -> None:
        self.sheet = sheet
        self.settings = settings or OptimizerSettings()
        self._cache: dict[str, CacheEntry] = {}
        self._tracker = ConvergenceTracker(self.settings)
        self._signature: str | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def signature(self) -> str | None:
        return self._signature

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    @property
    def history(self) -> list[CacheEntry]:
        return self._tracker.entries

    @property
    def best_fitness(self) -> float | None:
        return self._tracker.best_fitness()

    def clear(self) -> None:
        """Forget the cache, the history and the current signature."""
        self._cache.clear()
        self._tracker.clear()
        self._signature = None

    def _check_signature(self, signature: str) -> None:
        if signature == self._signature:
            return
        if self._signature is not None:
            logger.debug(
                "Problem signature changed; dropping %d cached evaluations",
                len(self._cache),
            )
        self._cache.clear()
        self._tracker.clear()
        self._signature = signature

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(
        self,
        design_vars: Sequence[str] = (),
        values: Sequence[float] = (),
        objective_names: Sequence[str] = (),
        modes: Sequence[str | None] = (),
        targets: Sequence[float] = (),
    ) -> Evaluation:
        """Fitness of one design-variable vector.

        Empty *design_vars* or *objective_names* are filled in from the
        sheet.  Raises ``ValueError`` when *values* does not pair up with the
        design variables; render errors propagate and nothing is cached.
        """
        s = self.settings
        if not design_vars:
            design_vars = detect_design_variables(self.sheet.variables, s.max_design_variables)
            logger.debug("Auto-detected design variables: %s", design_vars)
        if not objective_names:
            objective_names = detect_objectives(self.sheet.get_result_equations(), s.max_objectives)
            logger.debug("Auto-detected objectives: %s", objective_names)
        if len(values) != len(design_vars):
            raise ValueError(
                f"Variable values ({len(values)}) must match design variables ({len(design_vars)})"
            )

        pairs = [(n.strip(), float(v)) for n, v in zip(design_vars, values) if n and n.strip()]
        names = [n for n, _ in pairs]
        vector = [v for _, v in pairs]
        objectives = [o.strip() for o in objective_names if o and o.strip()]
        mode_keys = [normalize_mode(m) for m in modes]
        target_values = [float(t) for t in targets]

        self._check_signature(build_signature(names, objectives, mode_keys, target_values))
        key = create_cache_key(names, vector, objectives, mode_keys, target_values)

        cached = self._cache.get(key)
        if cached is not None:
            best = self.best_fitness
            return Evaluation(
                fitness=cached.fitness,
                objectives=cached.objectives,
                iteration=cached.iteration,
                best_fitness=cached.fitness if best is None else best,
                design_variables=tuple(names),
                objective_names=tuple(objectives),
                from_cache=True,
                status="Result from cache",
                convergence="Cache hit - no recalculation",
            )

        missing = self.sheet.set_variables(zip(names, vector))
        if missing:
            logger.debug("Design variables without declaration: %s", missing)
        self.sheet.calculate()

        by_name: dict[str, float] = {}
        for result in self.sheet.extract_results():
            by_name.setdefault(result.name.casefold(), result.value)
        raw = [by_name.get(name.casefold(), math.nan) for name in objectives]

        fitness = total_fitness(raw, mode_keys, target_values, s.penalty)
        entry = CacheEntry(
            iteration=len(self._tracker) + 1,
            variables=tuple(vector),
            fitness=fitness,
            objectives=tuple(v if math.isfinite(v) else s.penalty for v in raw),
        )
        self._cache[key] = entry
        self._tracker.append(entry)

        best = self.best_fitness
        return Evaluation(
            fitness=fitness,
            objectives=entry.objectives,
            iteration=entry.iteration,
            best_fitness=fitness if best is None else best,
            design_variables=tuple(names),
            objective_names=tuple(objectives),
            status=f"Successful calculation | Objectives: {len(objectives)} | Fitness: {fitness:.6g}",
            missing_variables=tuple(missing),
            convergence=self.analyze_convergence(),
        )

    # ------------------------------------------------------------------
    # Convergence
    # ------------------------------------------------------------------

    def convergence_report(self) -> ConvergenceReport:
        return self._tracker.report()

    def analyze_convergence(self) -> str:
        return str(self._tracker.report())
