"""Tests for calcsheet.optimize: fitness, caching, signatures and convergence."""

from __future__ import annotations

import math

import pytest

from calcsheet import RenderFailed, Sheet, parse_variables
from calcsheet._protocol import EquationEntry, VariableEntry
from calcsheet.optimize import (
    CacheEntry,
    ConvergenceTracker,
    ObjectiveMode,
    OptimizerSettings,
    SheetOptimizer,
    build_signature,
    create_cache_key,
    detect_design_variables,
    detect_objectives,
    objective_fitness,
    total_fitness,
)

SOURCE = "\n".join([
    "b = ?{200}mm",
    "h = ?{400}mm",
    "5 kN*m';'M",
    "area = b*h",
    "stress = M/(b*h^2/6)",
    "ratio = h/b",
    "",
])


class BeamEngine:
    """Renders the beam sheet by evaluating it with the declared values."""

    def __init__(self) -> None:
        self.calls = 0

    def __call__(self, source_text: str) -> str:
        self.calls += 1
        names, values, _ = parse_variables(source_text)
        env = dict(zip(names, values))
        b, h, m = env["b"], env["h"], env["M"]
        stress = m * 1e6 / (b * h * h / 6)
        return "\n".join([
            f"<p><var>area</var> = <var>b</var>·<var>h</var> = {b * h:.6f}&#8201;<i>mm</i><sup>2</sup></p>",
            f"<p><var>stress</var> = {stress:.6f}&#8201;<i>MPa</i></p>",
            f"<p><var>ratio</var> = {h / b:.6f}</p>",
        ])


class FailingEngine:
    def __call__(self, source_text: str) -> str:
        raise RuntimeError("engine crashed")


def _make_optimizer(**settings: float) -> tuple[SheetOptimizer, BeamEngine]:
    engine = BeamEngine()
    sheet = Sheet.from_text(SOURCE, renderer=engine)
    return SheetOptimizer(sheet, OptimizerSettings(**settings)), engine  # type: ignore[arg-type]


def _entry(i: int, fitness: float) -> CacheEntry:
    return CacheEntry(iteration=i, variables=(), fitness=fitness, objectives=(fitness,))


class TestFitness:
    def test_maximize_scenario(self) -> None:
        assert objective_fitness(10.0, "maximize") == -10.0

    def test_target_scenario(self) -> None:
        assert objective_fitness(10.0, "target", 7.0) == 3.0

    def test_minimize_and_unknown_mode(self) -> None:
        assert objective_fitness(10.0, "minimize") == 10.0
        assert objective_fitness(10.0, "shrink") == 10.0
        assert objective_fitness(10.0, None) == 10.0

    def test_mode_case_insensitive(self) -> None:
        assert objective_fitness(4.0, " MAXIMIZE ") == -4.0
        assert ObjectiveMode.parse("Target") is ObjectiveMode.TARGET

    def test_non_finite_is_penalty_in_any_mode(self) -> None:
        assert objective_fitness(math.nan, "maximize") == 1e30
        assert objective_fitness(math.inf, "minimize") == 1e30

    def test_total_defaults(self) -> None:
        # third objective has no mode (minimize), second has no target (0)
        assert total_fitness([10.0, 5.0, 2.0], ["maximize", "target"], []) == -10.0 + 5.0 + 2.0

    def test_total_empty_is_penalty(self) -> None:
        assert total_fitness([]) == 1e30


class TestSignature:
    def test_deterministic(self) -> None:
        a = build_signature(["b", "h"], ["area"], ["Minimize"], [0.1])
        b = build_signature(["b", "h"], ["area"], ["minimize"], [0.1])
        assert a == b

    def test_any_element_changes_it(self) -> None:
        base = build_signature(["b", "h"], ["area"], ["minimize"], [1.0])
        assert build_signature(["b"], ["area"], ["minimize"], [1.0]) != base
        assert build_signature(["b", "h"], ["stress"], ["minimize"], [1.0]) != base
        assert build_signature(["b", "h"], ["area"], ["maximize"], [1.0]) != base
        assert build_signature(["b", "h"], ["area"], ["minimize"], [1.0000000001]) != base

    def test_separators_in_names_do_not_collide(self) -> None:
        assert build_signature(["a|b"], [], [], []) != build_signature(["a", "b"], [], [], [])

    def test_cache_key_includes_values(self) -> None:
        k1 = create_cache_key(["b"], [200.0], ["area"], [], [])
        k2 = create_cache_key(["b"], [200.00000001], ["area"], [], [])
        assert k1 != k2


class TestDetect:
    def test_design_variables_first_distinct(self) -> None:
        variables = [VariableEntry(n, 1.0) for n in ["a", "b", "a", "c"]]
        assert detect_design_variables(variables, limit=2) == ["a", "b"]

    def test_objective_keywords(self) -> None:
        eqs = [EquationEntry(n, "x+1") for n in ["ratio", "max_stress", "n", "total_cost", "Area_net"]]
        assert detect_objectives(eqs) == ["max_stress", "total_cost", "Area_net"]

    def test_objective_fallback_last_three(self) -> None:
        eqs = [EquationEntry(n, "x+1") for n in ["p", "q", "r", "s"]]
        assert detect_objectives(eqs) == ["q", "r", "s"]


class TestEvaluate:
    def test_fitness_from_render(self) -> None:
        opt, engine = _make_optimizer()
        ev = opt.evaluate(["b", "h"], [200, 400], ["area"], ["minimize"])
        assert ev.fitness == pytest.approx(80000.0)
        assert ev.objectives == pytest.approx((80000.0,))
        assert ev.iteration == 1
        assert not ev.from_cache
        assert engine.calls == 1

    def test_maximize_and_target_through_sheet(self) -> None:
        opt, _ = _make_optimizer()
        ev = opt.evaluate(["b", "h"], [100, 1000], ["ratio", "ratio"], ["maximize", "target"], [0, 7])
        assert ev.fitness == pytest.approx(-10.0 + 3.0)

    def test_cache_hit_skips_render(self) -> None:
        opt, engine = _make_optimizer()
        first = opt.evaluate(["b", "h"], [200, 400], ["area"])
        second = opt.evaluate(["b", "h"], [200, 400], ["area"])
        assert second.from_cache
        assert (second.fitness, second.objectives) == (first.fitness, first.objectives)
        assert engine.calls == 1
        assert len(opt.history) == 1

    def test_new_values_render_again(self) -> None:
        opt, engine = _make_optimizer()
        opt.evaluate(["b", "h"], [200, 400], ["area"])
        ev = opt.evaluate(["b", "h"], [250, 400], ["area"])
        assert ev.fitness == pytest.approx(100000.0)
        assert ev.iteration == 2
        assert ev.best_fitness == pytest.approx(80000.0)
        assert engine.calls == 2
        assert opt.cache_size == 2

    def test_signature_change_resets(self) -> None:
        opt, _ = _make_optimizer()
        opt.evaluate(["b", "h"], [200, 400], ["area"])
        opt.evaluate(["b", "h"], [250, 400], ["area"])
        signature = opt.signature
        ev = opt.evaluate(["b", "h"], [250, 400], ["area"], ["maximize"])
        assert opt.signature != signature
        assert len(opt.history) == 1
        assert opt.cache_size == 1
        assert ev.iteration == 1
        assert not ev.from_cache

    def test_missing_objective_penalized(self) -> None:
        opt, _ = _make_optimizer()
        ev = opt.evaluate(["b"], [200], ["deflection"], ["maximize"])
        assert ev.objectives == (1e30,)
        assert ev.fitness == 1e30

    def test_objective_name_case_insensitive(self) -> None:
        opt, _ = _make_optimizer()
        ev = opt.evaluate(["b"], [200], ["AREA"])
        assert ev.fitness == pytest.approx(80000.0)

    def test_missing_design_variable_reported(self) -> None:
        opt, _ = _make_optimizer()
        ev = opt.evaluate(["b", "zz"], [200, 1], ["area"])
        assert ev.missing_variables == ("zz",)

    def test_count_mismatch(self) -> None:
        opt, engine = _make_optimizer()
        with pytest.raises(ValueError, match="must match"):
            opt.evaluate(["b", "h"], [200], ["area"])
        assert engine.calls == 0

    def test_auto_detect(self) -> None:
        opt, _ = _make_optimizer()
        ev = opt.evaluate([], [200, 400, 5], [])
        assert ev.design_variables == ("b", "h", "M")
        assert ev.objective_names == ("area", "stress")

    def test_render_failure_not_cached(self) -> None:
        sheet = Sheet.from_text(SOURCE, renderer=FailingEngine())
        opt = SheetOptimizer(sheet)
        with pytest.raises(RenderFailed):
            opt.evaluate(["b"], [200], ["area"])
        assert opt.cache_size == 0
        assert opt.history == []

    def test_clear(self) -> None:
        opt, _ = _make_optimizer()
        opt.evaluate(["b"], [200], ["area"])
        opt.clear()
        assert opt.cache_size == 0
        assert opt.signature is None
        assert opt.best_fitness is None


class TestConvergence:
    def test_starting(self) -> None:
        tracker = ConvergenceTracker()
        assert str(tracker.report()) == "Starting optimization..."
        tracker.append(_entry(1, 10.0))
        assert tracker.report().trend == "Starting optimization..."

    def test_significant_improvement(self) -> None:
        tracker = ConvergenceTracker()
        tracker.append(_entry(1, 100.0))
        tracker.append(_entry(2, 50.0))
        report = tracker.report()
        assert report.improvement == 50.0
        assert report.improvement_rate == pytest.approx(50.0)
        assert report.trend == "Significant improvement"
        assert report.best_fitness == 50.0

    def test_converging(self) -> None:
        tracker = ConvergenceTracker()
        tracker.append(_entry(1, 100.0))
        tracker.append(_entry(2, 99.5))
        assert tracker.report().trend == "Converging..."

    def test_stagnation(self) -> None:
        tracker = ConvergenceTracker()
        for i, f in enumerate([9.0, 5.0, 5.0, 5.0, 5.0, 5.0], start=1):
            tracker.append(_entry(i, f))
        report = tracker.report()
        assert report.stagnant
        assert report.trend == "Possible stagnation detected"

    def test_window_limits_history(self) -> None:
        tracker = ConvergenceTracker(OptimizerSettings(history_window=3))
        for i, f in enumerate([1000.0, 10.0, 8.0, 6.0], start=1):
            tracker.append(_entry(i, f))
        report = tracker.report()
        assert report.improvement == 4.0
        assert report.best_fitness == 6.0

    def test_report_text(self) -> None:
        tracker = ConvergenceTracker()
        tracker.append(_entry(1, 100.0))
        tracker.append(_entry(2, 50.0))
        text = str(tracker.report())
        assert text.startswith("Iteration 2:")
        assert "Best fitness: 50" in text

    def test_optimizer_analysis(self) -> None:
        opt, _ = _make_optimizer()
        opt.evaluate(["b"], [200], ["area"])
        ev = opt.evaluate(["b"], [100], ["area"])
        assert "Significant improvement" in opt.analyze_convergence()
        assert ev.convergence == opt.analyze_convergence()

    def test_settings_validation(self) -> None:
        with pytest.raises(ValueError):
            OptimizerSettings(history_window=1)
