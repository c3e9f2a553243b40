"""Renderer protocol and the sheet model's result dataclasses."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@runtime_checkable
class Renderer(Protocol):
    """The external calculation engine: sheet source in, rendered markup out.

    May raise; the sheet wraps any exception in ``RenderFailed``.
    """

    def __call__(self, source_text: str) -> str:
        ...


class VariableKind(str, enum.Enum):
    EXPLICIT = "explicit"  # name = ?{value}unit, or value unit';'name
    LITERAL = "literal"  # name = value unit


@dataclass
class VariableEntry:
    """A declared sheet variable."""

    name: str
    value: float
    unit: str = ""
    kind: VariableKind = VariableKind.EXPLICIT

    def __repr__(self) -> str:
        unit = f" {self.unit}" if self.unit else ""
        return f"VariableEntry({self.name} = {self.value}{unit}, {self.kind.value})"


@dataclass(frozen=True)
class EquationEntry:
    """A computed statement ``lhs = rhs`` found in the sheet source."""

    lhs: str
    rhs: str

    def __str__(self) -> str:
        return f"{self.lhs} = {self.rhs}"


@dataclass(frozen=True)
class ResultBlock:
    """Rendered-output lines belonging to one left-hand-side name."""

    name: str
    markup: str  # raw rendered lines, joined with "\n"
    text: str  # tag-free, normalized projection of ``markup``


class ExtractionMiss(str, enum.Enum):
    """Why a result value or unit could not be recovered."""

    NO_OUTPUT = "no rendered output"
    NO_BLOCK = "no result block"
    NO_VALUE = "unparsable value"


@dataclass(frozen=True)
class ResultExtraction:
    """Per-name extraction outcome.

    ``value`` is NaN and ``miss`` is set when the value could not be found;
    the unit is recovered independently and may be present either way.
    """

    name: str
    value: float = math.nan
    unit: str = ""
    miss: ExtractionMiss | None = None

    @property
    def found(self) -> bool:
        return self.miss is None


@dataclass(frozen=True)
class SheetRun:
    """Outcome of one apply-values / calculate / extract cycle."""

    equations: tuple[EquationEntry, ...]
    results: tuple[ResultExtraction, ...]
    elapsed_ms: float = 0.0
    skipped: tuple[str, ...] = field(default=())  # names with no declaration

    @property
    def values(self) -> list[float]:
        return [r.value for r in self.results]

    @property
    def units(self) -> list[str]:
        return [r.unit for r in self.results]

    @property
    def missing(self) -> list[str]:
        """Names whose value could not be extracted."""
        return [r.name for r in self.results if not r.found]
