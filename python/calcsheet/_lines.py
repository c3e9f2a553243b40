"""LineTable: sheet source held as scanned line records.

Values and units are rewritten by splicing the recorded span of one
statement in one record; every other byte of the source is left as loaded.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

from calcsheet._protocol import EquationEntry, VariableEntry
from calcsheet._utils import split_lines_keepends
from calcsheet.syntax import LineKind, ScannedLine, Statement, SyntaxClassifier, collect_declarations


@dataclass
class LineRecord:
    raw: str  # line text without its terminator
    ending: str  # "\n", "\r\n", "\r" or "" for the last line
    scanned: ScannedLine

    @property
    def kind(self) -> LineKind:
        return self.scanned.kind

    def __str__(self) -> str:
        return self.raw + self.ending


class LineTable:
    """Source text split into records that can be edited in place.

    Usage::

        table = LineTable(text, get_classifier())
        table.replace_value("L", "7.5")
        new_text = table.render()
    """

    def __init__(self, text: str, classifier: SyntaxClassifier) -> None:
        self._classifier = classifier
        self._records: list[LineRecord] = [
            LineRecord(raw, ending, classifier.scan_line(raw))
            for raw, ending in split_lines_keepends(text)
        ]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[LineRecord]:
        return iter(self._records)

    def __getitem__(self, index: int) -> LineRecord:
        return self._records[index]

    def render(self) -> str:
        """The current source; identical to the loaded text until edited."""
        return "".join(str(r) for r in self._records)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_declaration(self, name: str) -> tuple[int, Statement] | None:
        """First declaration of *name*, scanning lines top-down, left to right."""
        for index, record in enumerate(self._records):
            matches = [s for s in record.scanned.declarations if s.name == name]
            if matches:
                return index, min(matches, key=lambda s: s.value_span or (0, 0))
        return None

    def declarations(self, explicit_only: bool = False) -> list[VariableEntry]:
        return collect_declarations((r.scanned for r in self._records), explicit_only)

    def equations(self) -> list[EquationEntry]:
        found: list[EquationEntry] = []
        for record in self._records:
            eq = self._classifier.equation_of(record.scanned)
            if eq is not None:
                found.append(eq)
        return found

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def replace_value(self, name: str, text: str) -> bool:
        """Write *text* over the number of the first declaration of *name*."""
        found = self.find_declaration(name)
        if found is None:
            return False
        index, st = found
        assert st.value_span is not None
        self._splice(index, st.value_span, text)
        return True

    def replace_unit(self, name: str, unit: str) -> bool:
        """Write *unit* over the unit token of the first declaration of *name*.

        A declaration without a unit gets one inserted after its number
        (or after the closing brace of an explicit input).
        """
        found = self.find_declaration(name)
        if found is None:
            return False
        index, st = found
        assert st.unit_span is not None
        start, end = st.unit_span
        if start == end and unit and st.kind is not LineKind.EXPLICIT:
            unit = " " + unit
        self._splice(index, st.unit_span, unit)
        return True

    def _splice(self, index: int, span: tuple[int, int], text: str) -> None:
        record = self._records[index]
        start, end = span
        record.raw = record.raw[:start] + text + record.raw[end:]
        record.scanned = self._classifier.scan_line(record.raw)
