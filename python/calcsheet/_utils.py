"""Text normalization and number formatting shared by the parser and extractors."""

from __future__ import annotations

import math
import re

# ---------------------------------------------------------------------------
# Numeric literals
# ---------------------------------------------------------------------------

# Sheet-source number: sign, digits, optional fraction, optional exponent.
NUMBER = r"[-+]?\d+(?:\.\d+)?(?:[Ee][+-]?\d+)?"

# Rendered-output number; the engine prints negatives with U+2212.
OUTPUT_NUMBER = r"[-+\u2212]?\d+(?:\.\d+)?(?:[Ee][+\-\u2212]?\d+)?"

# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

_LINE_BREAK_RE = re.compile("\r\n|[\r\u2028\u2029\u0085]")
_SPACE_VARIANTS_RE = re.compile("[\t\v\f\u00a0\u1680\u2000-\u200a\u202f\u205f\u3000]")
_SPACE_RUN_RE = re.compile(" {2,}")


def normalize_text(text: str) -> str:
    """Canonical form used before any pattern matching on rendered output.

    Unicode space variants become ASCII spaces, runs of horizontal whitespace
    collapse to one space, every line ending becomes ``\\n`` and the
    full-width equals sign becomes ``=``.  Applying it twice is a no-op.
    """
    if not text:
        return ""
    text = _LINE_BREAK_RE.sub("\n", text)
    text = _SPACE_VARIANTS_RE.sub(" ", text)
    text = _SPACE_RUN_RE.sub(" ", text)
    return text.replace("\uff1d", "=")


_SOURCE_LINE_RE = re.compile(r"(\r\n|\r|\n)")


def split_lines(text: str) -> list[str]:
    """Source lines of *text* without their terminators."""
    return _SOURCE_LINE_RE.split(text)[::2]


def split_lines_keepends(text: str) -> list[tuple[str, str]]:
    """``(line, terminator)`` pairs; joining them gives back *text* exactly."""
    parts = _SOURCE_LINE_RE.split(text)
    parts.append("")
    return list(zip(parts[::2], parts[1::2]))


def normalize_unit(unit: str) -> str:
    """Collapse internal whitespace in a unit token and trim it."""
    if not unit or unit.isspace():
        return ""
    return re.sub(r"\s+", " ", unit).strip()


# ---------------------------------------------------------------------------
# Number formatting / parsing
# ---------------------------------------------------------------------------


def format_number(value: float) -> str:
    """Shortest text that parses back to *value*, for writing into a sheet.

    Integral values are written without a trailing ``.0`` so ``?{5}`` stays
    ``?{5}`` after a round trip.
    """
    value = float(value)
    if value.is_integer() and abs(value) < 1e16:
        return str(int(value))
    return repr(value)


def round_trip(value: float) -> str:
    """Round-trippable repr of *value* for cache keys and signatures."""
    return repr(float(value))


def to_float(text: str) -> float | None:
    """Parse *text* as a finite float, or return None."""
    try:
        value = float(text.replace("\u2212", "-"))
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value
