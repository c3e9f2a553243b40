"""Sheet: one calculation sheet's source text, its variables and its last render.

States::

    EMPTY --load()--> LOADED --calculate()--> RENDERED
                                  ^               |
                                  +--set_variable-+ (output kept until the next calculate)

A sheet is never emptied again; loading new text starts over at LOADED.
"""

from __future__ import annotations

import enum
import logging
import math
import os
import time
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

from calcsheet._errors import NoSourceText, RenderFailed, RenderUnavailable, VariableNotFound
from calcsheet._lines import LineTable
from calcsheet._markup import RenderedOutput
from calcsheet._protocol import (
    EquationEntry,
    Renderer,
    ResultBlock,
    ResultExtraction,
    SheetRun,
    VariableEntry,
)
from calcsheet._units import normalize_unit_aliases
from calcsheet._utils import format_number
from calcsheet.syntax import SyntaxClassifier, get_classifier

logger = logging.getLogger(__name__)

_BOM = "\ufeff"


def prepare_source(text: str) -> str:
    """Source as handed to the renderer.

    Drops a leading byte-order mark, turns every line ending into ``\\n``,
    guarantees a final newline and expands unit aliases.
    """
    if text.startswith(_BOM):
        text = text[len(_BOM):]
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    if not text.endswith("\n"):
        text += "\n"
    return normalize_unit_aliases(text)


class SheetState(str, enum.Enum):
    EMPTY = "empty"
    LOADED = "loaded"
    RENDERED = "rendered"


class Sheet:
    """A calculation sheet driven through an external renderer.

    Usage::

        sheet = Sheet(renderer=engine.render)
        sheet.load(text)
        sheet.set_variable("L", 7.5)
        sheet.calculate()
        values = sheet.get_result_values()
    """

    def __init__(
        self,
        renderer: Renderer | None = None,
        explicit_only: bool = False,
        classifier: SyntaxClassifier | None = None,
    ) -> None:
        self._renderer = renderer
        self.explicit_only = explicit_only
        self._classifier = classifier
        self._text = ""
        self._table: LineTable | None = None  # built on first use
        self._output: str | None = None
        self._rendered: RenderedOutput | None = None
        self.last_elapsed_ms = 0.0

    @classmethod
    def from_text(
        cls,
        text: str,
        renderer: Renderer | None = None,
        explicit_only: bool = False,
        classifier: SyntaxClassifier | None = None,
    ) -> Sheet:
        sheet = cls(renderer=renderer, explicit_only=explicit_only, classifier=classifier)
        sheet.load(text)
        return sheet

    # ------------------------------------------------------------------
    # Source text
    # ------------------------------------------------------------------

    @property
    def classifier(self) -> SyntaxClassifier:
        if self._classifier is None:
            self._classifier = get_classifier()
        return self._classifier

    @property
    def renderer(self) -> Renderer | None:
        return self._renderer

    @renderer.setter
    def renderer(self, renderer: Renderer | None) -> None:
        self._renderer = renderer

    def load(self, text: str) -> None:
        """Store *text* as the sheet source, verbatim."""
        self._text = text or ""
        self._table = None
        self._output = None
        self._rendered = None
        self.last_elapsed_ms = 0.0

    @property
    def has_source(self) -> bool:
        return bool(self._text.strip())

    @property
    def source_text(self) -> str:
        if self._table is not None:
            return self._table.render()
        return self._text

    @property
    def last_rendered_output(self) -> str | None:
        return self._output

    @property
    def state(self) -> SheetState:
        if self._output is not None:
            return SheetState.RENDERED
        if self.has_source:
            return SheetState.LOADED
        return SheetState.EMPTY

    def _lines(self, operation: str) -> LineTable:
        if not self.has_source:
            raise NoSourceText(operation)
        if self._table is None:
            self._table = LineTable(self._text, self.classifier)
        return self._table

    # ------------------------------------------------------------------
    # Variables
    # ------------------------------------------------------------------

    @property
    def variables(self) -> list[VariableEntry]:
        """Declared variables, first-occurrence order, later values winning."""
        if not self.has_source:
            return []
        return self._lines("variables").declarations(self.explicit_only)

    @property
    def names(self) -> list[str]:
        return [v.name for v in self.variables]

    @property
    def values(self) -> list[float]:
        return [v.value for v in self.variables]

    @property
    def units(self) -> list[str]:
        return [v.unit for v in self.variables]

    def set_variable(self, name: str, value: float, strict: bool = False) -> bool:
        """Rewrite the number of the first declaration of *name*.

        The unit, the declaration form and every other byte of the source are
        kept.  Returns False when nothing was rewritten; with *strict*, a
        missing declaration raises ``VariableNotFound`` instead.
        """
        table = self._lines("set_variable")
        value = float(value)
        if not math.isfinite(value):
            logger.warning("Refusing non-finite value %r for variable %s", value, name)
            return False
        if table.replace_value(name, format_number(value)):
            logger.debug("Set %s = %s", name, format_number(value))
            return True
        logger.debug("Variable %s has no declaration", name)
        if strict:
            raise VariableNotFound(name)
        return False

    def set_variables(
        self,
        values: Mapping[str, float] | Iterable[tuple[str, float]],
    ) -> list[str]:
        """Set several variables; returns the names that were not rewritten."""
        pairs = values.items() if isinstance(values, Mapping) else values
        missed: list[str] = []
        for name, value in pairs:
            if not self.set_variable(name, value):
                missed.append(name)
        return missed

    def apply_values(self, values: Sequence[float]) -> list[str]:
        """Set variables by position in :attr:`variables`.

        NaN and infinite entries leave their position untouched.  Returns the
        names that were rewritten.
        """
        names = self.names
        if len(values) != len(names):
            logger.warning(
                "Got %d values for %d variables; applying the first %d",
                len(values), len(names), min(len(values), len(names)),
            )
        applied: list[str] = []
        for name, value in zip(names, values):
            if value is None or not math.isfinite(value):
                continue
            if self.set_variable(name, value):
                applied.append(name)
        return applied

    def set_unit(self, name: str, unit: str) -> bool:
        """Replace the unit token of the first declaration of *name*."""
        if self._lines("set_unit").replace_unit(name, unit.strip()):
            return True
        logger.debug("Variable %s has no declaration", name)
        return False

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def calculate(self) -> str:
        """Render the current source and keep the output."""
        if self._renderer is None:
            raise RenderUnavailable()
        if not self.has_source:
            raise NoSourceText("calculate")

        source = prepare_source(self.source_text)
        start = time.perf_counter()
        try:
            output = self._renderer(source)
        except Exception as e:
            logger.warning("Render failed: %s", e)
            raise RenderFailed(str(e)) from e
        self.last_elapsed_ms = (time.perf_counter() - start) * 1000.0

        self._output = output or ""
        self._rendered = None
        logger.debug(
            "Rendered %d chars of source into %d chars in %.1f ms",
            len(source), len(self._output), self.last_elapsed_ms,
        )
        return self._output

    def _rendered_output(self) -> RenderedOutput:
        if self._rendered is None:
            self._rendered = RenderedOutput(self._output or "", self.classifier)
        return self._rendered

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def get_result_equations(self) -> list[EquationEntry]:
        """Equation statements in source order, duplicates kept."""
        if not self.has_source:
            return []
        return self._lines("get_result_equations").equations()

    def result_names(self) -> list[str]:
        """Distinct equation left-hand sides, first-seen order."""
        return list(dict.fromkeys(eq.lhs for eq in self.get_result_equations()))

    def extract_results(self) -> list[ResultExtraction]:
        """One extraction per result name; never raises for a missing result."""
        output = self._rendered_output()
        return [output.extract(name) for name in self.result_names()]

    def get_result_values(self) -> list[float]:
        return [r.value for r in self.extract_results()]

    def get_result_units(self) -> list[str]:
        return [r.unit for r in self.extract_results()]

    def result_blocks(self) -> list[ResultBlock]:
        """Result blocks found for the result names, in name order."""
        output = self._rendered_output()
        blocks: list[ResultBlock] = []
        for name in self.result_names():
            block = output.block(name)
            if block is not None:
                blocks.append(block)
        return blocks

    def run(self, values: Mapping[str, float] | None = None) -> SheetRun:
        """Set *values*, calculate and extract in one call."""
        skipped = self.set_variables(values) if values else []
        self.calculate()
        return SheetRun(
            equations=tuple(self.get_result_equations()),
            results=tuple(self.extract_results()),
            elapsed_ms=self.last_elapsed_ms,
            skipped=tuple(skipped),
        )

    # ------------------------------------------------------------------
    # Persistence / diagnostics
    # ------------------------------------------------------------------

    def save(self, filename: str | os.PathLike[str], overwrite: bool = False) -> Path:
        """Write the current source as UTF-8 text; line endings are kept."""
        if not self.has_source:
            raise NoSourceText("save")
        path = Path(filename)
        if path.exists() and not overwrite:
            raise FileExistsError(f"File '{path}' already exists")
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="") as fh:
            fh.write(self.source_text)
        return path

    def debug_info(self) -> dict[str, Any]:
        source = self.source_text
        output = self._output or ""
        return {
            "state": self.state.value,
            "source_length": len(source),
            "output_length": len(output),
            "elapsed_ms": self.last_elapsed_ms,
            "source_text": source,
            "rendered_output": output,
        }

    def __repr__(self) -> str:
        return f"<Sheet [{self.state.value}] variables={len(self.variables)}>"
