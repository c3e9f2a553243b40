"""Tests for the calcsheet Sheet model."""

from __future__ import annotations

import math
import os
import tempfile

import pytest

import calcsheet
from calcsheet import (
    NoSourceText,
    RenderFailed,
    RenderUnavailable,
    Sheet,
    SheetState,
    VariableNotFound,
)
from calcsheet._sheet import prepare_source

SOURCE = "\r\n".join([
    '"Beam check',
    "L = ?{5}m 'span",
    "b = ?{200}mm';'h = ?{400}mm",
    "12 kN/m';'q",
    "E = 210000 MPa",
    "L1 = ?{6}m",
    "A = b*h",
    "M = q*L^2/8",
    "",
])

OUTPUT = "\n".join([
    "<h3>Beam check</h3>",
    "<p><var>L</var> = 5&#8201;<i>m</i></p>",
    "<p><var>A</var> = <var>b</var>·<var>h</var> = 8×10<sup>4</sup>&#8201;<i>mm</i><sup>2</sup></p>",
    "<p><var>M</var> = <var>q</var>·<var>L</var><sup>2</sup>/8 = 37.5&#8201;<i>kN·m</i></p>",
])


class FakeRenderer:
    """Stands in for the calculation engine: records calls, returns canned markup."""

    def __init__(self, output: str = OUTPUT) -> None:
        self.output = output
        self.sources: list[str] = []

    def __call__(self, source_text: str) -> str:
        self.sources.append(source_text)
        return self.output


class FailingRenderer:
    def __call__(self, source_text: str) -> str:
        raise ValueError("syntax error in line 3")


def _make_sheet(renderer: FakeRenderer | None = None, **kwargs: object) -> Sheet:
    return Sheet.from_text(SOURCE, renderer=renderer or FakeRenderer(), **kwargs)  # type: ignore[arg-type]


class TestState:
    def test_transitions(self) -> None:
        sheet = Sheet(renderer=FakeRenderer())
        assert sheet.state is SheetState.EMPTY
        sheet.load(SOURCE)
        assert sheet.state is SheetState.LOADED
        sheet.calculate()
        assert sheet.state is SheetState.RENDERED
        sheet.set_variable("L", 6)
        assert sheet.state is SheetState.RENDERED

    def test_load_is_verbatim(self) -> None:
        sheet = _make_sheet()
        assert sheet.source_text == SOURCE
        assert sheet.has_source

    def test_reload_clears_output(self) -> None:
        sheet = _make_sheet()
        sheet.calculate()
        sheet.load("x = ?{1}")
        assert sheet.last_rendered_output is None
        assert sheet.state is SheetState.LOADED

    def test_repr(self) -> None:
        assert repr(_make_sheet()) == "<Sheet [loaded] variables=6>"


class TestVariables:
    def test_all_forms(self) -> None:
        sheet = _make_sheet()
        assert sheet.names == ["L", "b", "h", "q", "E", "L1"]
        assert sheet.values == [5.0, 200.0, 400.0, 12.0, 210000.0, 6.0]
        assert sheet.units == ["m", "mm", "mm", "kN/m", "MPa", "m"]

    def test_explicit_only(self) -> None:
        sheet = _make_sheet(explicit_only=True)
        assert sheet.names == ["L", "b", "h", "q", "L1"]

    def test_empty_sheet_has_no_variables(self) -> None:
        assert Sheet().variables == []


class TestSetVariable:
    def test_explicit_keeps_unit_and_comment(self) -> None:
        sheet = _make_sheet()
        assert sheet.set_variable("L", 7.5)
        assert sheet.source_text.splitlines()[1] == "L = ?{7.5}m 'span"

    def test_only_target_line_changes(self) -> None:
        sheet = _make_sheet()
        sheet.set_variable("L", 8)
        before = SOURCE.split("\r\n")
        after = sheet.source_text.split("\r\n")
        changed = [i for i, (a, b) in enumerate(zip(before, after)) if a != b]
        assert changed == [1]
        assert after[5] == "L1 = ?{6}m"

    def test_separator_form(self) -> None:
        sheet = _make_sheet()
        sheet.set_variable("h", 450)
        assert "b = ?{200}mm';'h = ?{450}mm" in sheet.source_text

    def test_postfix_form(self) -> None:
        sheet = _make_sheet()
        sheet.set_variable("q", 15.25)
        assert "15.25 kN/m';'q" in sheet.source_text

    def test_literal_form(self) -> None:
        sheet = _make_sheet()
        sheet.set_variable("E", 2e5)
        assert "E = 200000 MPa" in sheet.source_text

    def test_round_trip(self) -> None:
        sheet = _make_sheet()
        for value in (0.1, -3.25, 1e-7, 123456.789):
            sheet.set_variable("b", value)
            assert dict(zip(sheet.names, sheet.values))["b"] == value

    def test_line_endings_preserved(self) -> None:
        sheet = _make_sheet()
        sheet.set_variable("M", 1)
        sheet.set_variable("L", 9)
        assert sheet.source_text.count("\r\n") == SOURCE.count("\r\n")

    def test_first_declaration_rewritten(self) -> None:
        sheet = Sheet.from_text("a = ?{1}\na = ?{2}\n")
        sheet.set_variable("a", 5)
        assert sheet.source_text == "a = ?{5}\na = ?{2}\n"
        assert sheet.values == [2.0]

    def test_missing_is_silent(self) -> None:
        sheet = _make_sheet()
        assert not sheet.set_variable("zz", 1)
        assert sheet.source_text == SOURCE

    def test_missing_strict_raises(self) -> None:
        with pytest.raises(VariableNotFound, match="zz"):
            _make_sheet().set_variable("zz", 1, strict=True)

    def test_non_finite_refused(self) -> None:
        sheet = _make_sheet()
        assert not sheet.set_variable("L", math.nan)
        assert not sheet.set_variable("L", math.inf)
        assert sheet.source_text == SOURCE

    def test_requires_source(self) -> None:
        with pytest.raises(NoSourceText, match="call load"):
            Sheet().set_variable("L", 1)

    def test_set_variables_reports_misses(self) -> None:
        sheet = _make_sheet()
        missed = sheet.set_variables({"L": 4, "zz": 1, "h": 500})
        assert missed == ["zz"]
        assert sheet.values[:3] == [4.0, 200.0, 500.0]

    def test_apply_values_skips_nan(self) -> None:
        sheet = _make_sheet()
        applied = sheet.apply_values([6, math.nan, 300, 10, 200000, 7])
        assert applied == ["L", "h", "q", "E", "L1"]
        assert sheet.values == [6.0, 200.0, 300.0, 10.0, 200000.0, 7.0]

    def test_apply_values_short_list(self) -> None:
        sheet = _make_sheet()
        assert sheet.apply_values([1, 2]) == ["L", "b"]
        assert sheet.values[2] == 400.0

    def test_set_unit(self) -> None:
        sheet = _make_sheet()
        assert sheet.set_unit("L", "cm")
        assert sheet.set_unit("q", "N/mm")
        assert sheet.units[0] == "cm"
        assert sheet.units[3] == "N/mm"

    def test_set_unit_inserts_missing_unit(self) -> None:
        sheet = Sheet.from_text("k = 2\nn = ?{3}\n")
        sheet.set_unit("k", "kN")
        sheet.set_unit("n", "m")
        assert sheet.source_text == "k = 2 kN\nn = ?{3}m\n"


class TestCalculate:
    def test_no_renderer(self) -> None:
        with pytest.raises(RenderUnavailable):
            Sheet.from_text(SOURCE).calculate()

    def test_no_source(self) -> None:
        with pytest.raises(NoSourceText):
            Sheet(renderer=FakeRenderer()).calculate()

    def test_render_failure_is_wrapped(self) -> None:
        sheet = Sheet.from_text(SOURCE, renderer=FailingRenderer())
        with pytest.raises(RenderFailed, match="Calculation error: syntax error") as exc:
            sheet.calculate()
        assert isinstance(exc.value.__cause__, ValueError)
        assert sheet.state is SheetState.LOADED

    def test_renderer_gets_prepared_source(self) -> None:
        renderer = FakeRenderer()
        sheet = Sheet.from_text("\ufeffF = 2 kip\r\nG = F*2", renderer=renderer)
        sheet.calculate()
        assert renderer.sources == ["F = 2*(1000 lbf)\nG = F*2\n"]
        assert sheet.source_text == "\ufeffF = 2 kip\r\nG = F*2"

    def test_output_kept(self) -> None:
        sheet = _make_sheet()
        assert sheet.calculate() == OUTPUT
        assert sheet.last_rendered_output == OUTPUT
        assert sheet.last_elapsed_ms >= 0.0


class TestResults:
    def test_equations(self) -> None:
        eqs = _make_sheet().get_result_equations()
        assert [str(e) for e in eqs] == ["A = b*h", "M = q*L^2/8"]

    def test_values_and_units(self) -> None:
        sheet = _make_sheet()
        sheet.calculate()
        assert sheet.get_result_values() == [80000.0, 37.5]
        assert sheet.get_result_units() == ["mm^2", "kN·m"]

    def test_before_calculate_all_missing(self) -> None:
        sheet = _make_sheet()
        values = sheet.get_result_values()
        assert len(values) == 2 and all(math.isnan(v) for v in values)
        assert sheet.get_result_units() == ["", ""]

    def test_partial_results(self) -> None:
        sheet = _make_sheet(FakeRenderer("<p><var>A</var> = 3</p>"))
        sheet.calculate()
        results = sheet.extract_results()
        assert results[0].found and results[0].value == 3.0
        assert not results[1].found
        assert math.isnan(results[1].value)

    def test_result_blocks(self) -> None:
        sheet = _make_sheet()
        sheet.calculate()
        assert [b.name for b in sheet.result_blocks()] == ["A", "M"]

    def test_run(self) -> None:
        renderer = FakeRenderer()
        sheet = _make_sheet(renderer)
        run = sheet.run({"L": 6, "nope": 1})
        assert run.skipped == ("nope",)
        assert run.values == [80000.0, 37.5]
        assert run.missing == []
        assert "L = ?{6}m 'span" in renderer.sources[0]

    def test_no_source_no_equations(self) -> None:
        assert Sheet().get_result_equations() == []


class TestSaveAndLoad:
    def test_save_byte_exact(self) -> None:
        sheet = _make_sheet()
        with tempfile.TemporaryDirectory() as tmp:
            path = sheet.save(os.path.join(tmp, "out", "beam.cpd"))
            with open(path, "rb") as f:
                assert f.read() == SOURCE.encode("utf-8")

    def test_save_refuses_overwrite(self) -> None:
        sheet = _make_sheet()
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "beam.cpd")
            sheet.save(path)
            with pytest.raises(FileExistsError):
                sheet.save(path)
            sheet.set_variable("L", 3)
            sheet.save(path, overwrite=True)
            with open(path, encoding="utf-8", newline="") as f:
                assert "L = ?{3}m" in f.read()

    def test_save_without_source(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with pytest.raises(NoSourceText):
                Sheet().save(os.path.join(tmp, "x.cpd"))

    def test_load_sheet(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "beam.cpd")
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write(SOURCE)
            sheet = calcsheet.load_sheet(path, explicit_only=True)
        assert sheet.source_text == SOURCE
        assert sheet.explicit_only
        assert "E" not in sheet.names

    def test_debug_info(self) -> None:
        sheet = _make_sheet()
        sheet.calculate()
        info = sheet.debug_info()
        assert info["state"] == "rendered"
        assert info["source_length"] == len(SOURCE)
        assert info["output_length"] == len(OUTPUT)


class TestPrepareSource:
    def test_bom_and_newlines(self) -> None:
        assert prepare_source("\ufeffa = 1\r\nb = 2\rc = 3") == "a = 1\nb = 2\nc = 3\n"

    def test_trailing_newline_not_doubled(self) -> None:
        assert prepare_source("a = 1\n") == "a = 1\n"
