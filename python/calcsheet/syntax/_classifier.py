"""Syntax classifier: tells declarations apart from equations in sheet source.

A source line is cut at its comment start (``#``, or a quote that is not part
of the ``';'`` separator), split into statements at each ``';'`` and every
statement is given exactly one :class:`LineKind`:

* ``EXPLICIT``        ``name = ?{value}unit``
* ``INLINE_POSTFIX``  ``value unit';'name``
* ``LITERAL``         ``name = value unit``
* ``EQUATION``        ``name = expression``
* ``OTHER``           anything else (bare expressions, ``a = b``, bad inputs)

Declarations carry the character spans of their number and unit inside the
raw line, so the sheet can rewrite them without matching again.
"""

from __future__ import annotations

import enum
import logging
import re
import string
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from calcsheet._protocol import EquationEntry, VariableEntry, VariableKind
from calcsheet._utils import NUMBER, normalize_unit, split_lines, to_float
from calcsheet.syntax._seed import (
    SEED_FUNCTIONS,
    SEED_KEYWORDS,
    SEED_UNIT_CHARS,
    STRUCTURAL_CHARS,
    UNIT_JOINERS,
)
from calcsheet.syntax._tokens import TokenData, load_token_data

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Fixed grammar pieces
# ---------------------------------------------------------------------------

# Statement separator written between declarations on one line.
SEPARATOR = "';'"

# Identifiers: a letter or underscore, then word chars, primes, commas, dots.
NAME_CHARS = r"\w′,."
NAME = rf"[^\W\d][{NAME_CHARS}]*"

_OPERATORS = frozenset("+-*/^()=<>≤≥≠")

# Never inside one factor of a literal's unit.
_LITERAL_UNIT_EXCLUDED = frozenset("/^-.*() ·")

# An ``=`` that assigns (not part of ==, <=, >=, !=).
_ASSIGNMENT_RE = re.compile(r"(?<![<>!=≤≥])=(?!=)")

_NAME_RE = re.compile(rf"{NAME}")


def _char_class(chars: frozenset[str]) -> str:
    """Escape *chars* for use inside ``[...]``."""
    return "".join(re.escape(c) for c in sorted(chars))


def code_end(line: str) -> int:
    """Index where the comment part of *line* starts, ``len(line)`` if none."""
    i = 0
    n = len(line)
    while i < n:
        ch = line[i]
        if ch == "#" or ch == '"':
            return i
        if ch == "'":
            if line.startswith(SEPARATOR, i):
                i += len(SEPARATOR)
                continue
            return i
        i += 1
    return n


def strip_comments(line: str) -> str:
    """Drop the comment part of *line* and turn each ``';'`` into ``;``."""
    return line[:code_end(line)].replace(SEPARATOR, ";").rstrip()


def _segments(code: str) -> Iterator[tuple[int, int]]:
    """(start, end) of each statement between ``';'`` separators."""
    start = 0
    while True:
        idx = code.find(SEPARATOR, start)
        if idx < 0:
            yield start, len(code)
            return
        yield start, idx
        start = idx + len(SEPARATOR)


def _trimmed(text: str, start: int, end: int) -> tuple[int, int]:
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    return start, end


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


class LineKind(str, enum.Enum):
    EXPLICIT = "explicit"
    INLINE_POSTFIX = "inline_postfix"
    LITERAL = "literal"
    EQUATION = "equation"
    COMMENT = "comment"
    BLANK = "blank"
    OTHER = "other"


_DECLARATION_KINDS = frozenset({LineKind.EXPLICIT, LineKind.INLINE_POSTFIX, LineKind.LITERAL})


@dataclass(frozen=True)
class Statement:
    """One classified statement of a source line.

    Spans index into the raw line. ``unit_span`` is empty (start == end) when
    the declaration has no unit and marks where one would be inserted.
    """

    kind: LineKind
    name: str = ""
    value: float | None = None
    unit: str = ""
    rhs: str = ""
    value_span: tuple[int, int] | None = None
    unit_span: tuple[int, int] | None = None

    @property
    def is_declaration(self) -> bool:
        return self.kind in _DECLARATION_KINDS

    @property
    def variable_kind(self) -> VariableKind:
        if self.kind is LineKind.LITERAL:
            return VariableKind.LITERAL
        return VariableKind.EXPLICIT


@dataclass(frozen=True)
class ScannedLine:
    kind: LineKind
    statements: tuple[Statement, ...] = field(default=())
    code: str = ""  # the line up to its comment start
    has_separator: bool = False

    @property
    def declarations(self) -> list[Statement]:
        return [s for s in self.statements if s.is_declaration]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SyntaxConfig:
    """Immutable token sets a classifier is built from."""

    unit_chars: frozenset[str] = SEED_UNIT_CHARS
    functions: frozenset[str] = frozenset(SEED_FUNCTIONS)
    keywords: frozenset[str] = SEED_KEYWORDS

    @classmethod
    def seed(cls) -> SyntaxConfig:
        return cls()

    def augmented(self, data: TokenData) -> SyntaxConfig:
        """A new config widened with *data*; structural characters are refused."""
        extra = frozenset(
            c for c in data.unit_chars
            if len(c) == 1 and c not in STRUCTURAL_CHARS and not c.isspace()
        )
        return SyntaxConfig(
            unit_chars=self.unit_chars | extra,
            functions=self.functions | frozenset(f.lower() for f in data.functions),
            keywords=self.keywords | frozenset(k.lower() for k in data.keywords),
        )

    @property
    def unit_lead_chars(self) -> frozenset[str]:
        """Characters a unit token may start with."""
        return self.unit_chars - frozenset(string.digits) - UNIT_JOINERS


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------


class SyntaxClassifier:
    """Classifies sheet source statements and extracts declared variables.

    Usage::

        clf = get_classifier()
        names, values, units = clf.parse_variables(text, explicit_only=True)
        eqs = clf.equations(text)
    """

    def __init__(self, config: SyntaxConfig | None = None) -> None:
        self.config = config or SyntaxConfig.seed()
        unit = _char_class(self.config.unit_chars)
        lead = _char_class(self.config.unit_lead_chars)

        self.unit_char_class = unit
        self.unit_lead_class = lead
        # A unit token: starts with a letter/symbol, continues with unit chars.
        self.unit_token = rf"[{lead}][{unit}]*"

        # After a bare number the unit is stricter: no spaces and no operators
        # other than "/" or "·" between factors, so "3 x^2 - 2 x" and
        # "0.125 q*L^2" stay equations.
        atom = _char_class(
            self.config.unit_chars - _LITERAL_UNIT_EXCLUDED
            - frozenset(c for c in self.config.unit_chars if c.isspace())
        )
        factor = rf"[{lead}][{atom}]*(?:\^[-+]?\d+(?:\.\d+)?)?"
        self.literal_unit = rf"{factor}(?:[/·]{factor})*"

        self._assign_re = re.compile(rf"\s*(?P<name>{NAME})\s*=(?!=)\s*(?P<rhs>.*?)\s*")
        self._explicit_re = re.compile(
            rf"\?\s*\{{\s*(?P<val>{NUMBER})\s*\}}(?P<unit>[{unit}]*)"
        )
        self._literal_re = re.compile(
            rf"(?P<val>{NUMBER})(?:\s*(?P<unit>{self.literal_unit}))?"
        )
        # value unit';'name, not followed by "=" (that is "...';'name = ...")
        self._inline_re = re.compile(
            rf"(?<!\S)(?P<val>{NUMBER})\s*(?P<unit>[{unit}]*?)\s*';'\s*"
            rf"(?P<name>{NAME})(?![{NAME_CHARS}])(?!\s*=)"
        )
        if self.config.functions:
            alternatives = "|".join(
                re.escape(f) for f in sorted(self.config.functions, key=len, reverse=True)
            )
            self._call_re: re.Pattern[str] | None = re.compile(
                rf"(?<![\w.])(?:{alternatives})\s*\(", re.IGNORECASE,
            )
        else:
            self._call_re = None

    # ------------------------------------------------------------------
    # Right-hand side predicates
    # ------------------------------------------------------------------

    def is_literal(self, rhs: str) -> bool:
        """``True`` for a bare number with an optional unit token."""
        return self._literal_re.fullmatch(rhs.strip()) is not None

    def is_equation(self, rhs: str) -> bool:
        """``True`` when *rhs* is computed: an operator or a known function call.

        Explicit inputs (``?{...}``) and literals are never equations.
        """
        rhs = rhs.strip()
        if not rhs or rhs.startswith("?"):
            return False
        if self.is_literal(rhs):
            return False
        if any(ch in _OPERATORS for ch in rhs):
            return True
        return self._call_re is not None and self._call_re.search(rhs) is not None

    def is_keyword(self, name: str) -> bool:
        return name.lower() in self.config.keywords

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def classify_segment(self, text: str, start: int = 0, end: int | None = None) -> Statement:
        """Classify ``text[start:end]`` as a single statement."""
        if end is None:
            end = len(text)
        if not text[start:end].strip():
            return Statement(LineKind.BLANK)

        m = self._assign_re.fullmatch(text, start, end)
        if m is None:
            return Statement(LineKind.OTHER)
        name = m.group("name")
        rhs = m.group("rhs")
        rhs_start, rhs_end = m.span("rhs")

        if rhs.startswith("?"):
            explicit = self._explicit_re.fullmatch(text, rhs_start, rhs_end)
            if explicit is None:
                return Statement(LineKind.OTHER, name=name, rhs=rhs)
            return self._declaration(LineKind.EXPLICIT, name, explicit, text)

        literal = self._literal_re.fullmatch(text, rhs_start, rhs_end)
        if literal is not None:
            return self._declaration(LineKind.LITERAL, name, literal, text)

        if self.is_equation(rhs):
            return Statement(LineKind.EQUATION, name=name, rhs=rhs)
        return Statement(LineKind.OTHER, name=name, rhs=rhs)

    def _declaration(self, kind: LineKind, name: str, m: re.Match[str], text: str) -> Statement:
        value = to_float(m.group("val"))
        if value is None:
            logger.debug("Ignoring malformed number %r for %s", m.group("val"), name)
            return Statement(LineKind.OTHER, name=name)
        if m.group("unit") is not None:
            unit_span = _trimmed(text, *m.span("unit"))
        else:
            unit_span = (m.end("val"), m.end("val"))
        return Statement(
            kind,
            name=name,
            value=value,
            unit=normalize_unit(text[unit_span[0]:unit_span[1]]),
            value_span=m.span("val"),
            unit_span=unit_span,
        )

    def scan_line(self, line: str) -> ScannedLine:
        """Classify every statement on *line* (no line terminator)."""
        if not line.strip():
            return ScannedLine(LineKind.BLANK)
        code = line[:code_end(line)]
        if not code.strip():
            return ScannedLine(LineKind.COMMENT)

        statements: list[Statement] = []
        for m in self._inline_re.finditer(code):
            st = self._declaration(LineKind.INLINE_POSTFIX, m.group("name"), m, code)
            if st.is_declaration:
                statements.append(st)
        has_postfix = bool(statements)

        first_kind: LineKind | None = None
        for start, end in _segments(code):
            st = self.classify_segment(code, start, end)
            if first_kind is None and st.kind is not LineKind.BLANK:
                first_kind = st.kind
            if st.is_declaration or st.kind is LineKind.EQUATION:
                statements.append(st)

        if has_postfix:
            kind = LineKind.INLINE_POSTFIX
        else:
            kind = first_kind or LineKind.OTHER
        return ScannedLine(
            kind,
            tuple(statements),
            code=code,
            has_separator=SEPARATOR in code,
        )

    def classify_line(self, line: str) -> LineKind:
        return self.scan_line(line).kind

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def declarations(self, text: str, explicit_only: bool = False) -> list[VariableEntry]:
        """Declared variables in first-occurrence order.

        A redeclared name keeps its first position and takes the later value
        and unit. With *explicit_only*, literal assignments are skipped.
        """
        if not text or text.isspace():
            return []
        return collect_declarations(
            (self.scan_line(line) for line in split_lines(text)), explicit_only,
        )

    def parse_variables(
        self, text: str, explicit_only: bool = False,
    ) -> tuple[list[str], list[float], list[str]]:
        """``(names, values, units)`` as three parallel lists."""
        entries = self.declarations(text, explicit_only)
        return (
            [e.name for e in entries],
            [e.value for e in entries],
            [e.unit for e in entries],
        )

    # ------------------------------------------------------------------
    # Equations
    # ------------------------------------------------------------------

    def equation(self, line: str) -> EquationEntry | None:
        """The equation defined by *line*, if it defines exactly one.

        Requires a single assigning ``=``, no ``';'`` separator, an
        identifier (not a keyword) on the left and a computed right side.
        """
        return self.equation_of(self.scan_line(line))

    def equation_of(self, scanned: ScannedLine) -> EquationEntry | None:
        """Like :meth:`equation` for a line that was already scanned."""
        if scanned.kind is not LineKind.EQUATION or scanned.has_separator:
            return None
        if len(scanned.statements) != 1:
            return None
        if len(_ASSIGNMENT_RE.findall(scanned.code)) != 1:
            return None
        st = scanned.statements[0]
        if self.is_keyword(st.name):
            return None
        return EquationEntry(st.name, st.rhs)

    def equations(self, text: str) -> list[EquationEntry]:
        """Every equation line of *text*, in source order, duplicates kept."""
        found: list[EquationEntry] = []
        for line in split_lines(text or ""):
            eq = self.equation(line)
            if eq is not None:
                found.append(eq)
        return found


def collect_declarations(
    lines: Iterable[ScannedLine], explicit_only: bool = False,
) -> list[VariableEntry]:
    """Merge the declarations of scanned *lines* by name, first position kept."""
    entries: dict[str, VariableEntry] = {}
    for scanned in lines:
        for st in scanned.declarations:
            if explicit_only and st.kind is LineKind.LITERAL:
                continue
            assert st.value is not None
            entry = entries.get(st.name)
            if entry is None:
                entries[st.name] = VariableEntry(st.name, st.value, st.unit, st.variable_kind)
            else:
                entry.value = st.value
                entry.unit = st.unit
                entry.kind = st.variable_kind
    return list(entries.values())


def is_identifier(name: str) -> bool:
    return _NAME_RE.fullmatch(name) is not None


# ---------------------------------------------------------------------------
# Process-wide instance
# ---------------------------------------------------------------------------

_default_classifier: SyntaxClassifier | None = None


def get_classifier() -> SyntaxClassifier:
    """The shared classifier: seed sets plus any token data found on disk."""
    global _default_classifier
    if _default_classifier is None:
        config = SyntaxConfig.seed()
        data = load_token_data()
        if data:
            config = config.augmented(data)
        _default_classifier = SyntaxClassifier(config)
    return _default_classifier


def reset_classifier() -> None:
    """Forget the shared classifier so the next call rebuilds it."""
    global _default_classifier
    _default_classifier = None


def parse_variables(
    text: str, explicit_only: bool = False,
) -> tuple[list[str], list[float], list[str]]:
    """Module-level shortcut for ``get_classifier().parse_variables``."""
    return get_classifier().parse_variables(text, explicit_only)
