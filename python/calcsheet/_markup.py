"""Result extraction from the engine's rendered markup.

The markup is split into lines and each line is projected to plain text
(subscripts become ``_x``, superscripts ``^x``, fraction bars ``/``, other
tags dropped, entities decoded, whitespace normalized).  A result block for
``name`` starts at the first line reading ``name = ...`` and runs up to the
next line that opens another block.

Values come from the text after the block's last ``=``; units are read from
the markup structure first and from the text second.  Nothing here raises
for a missing or malformed result: the miss is reported on the
:class:`ResultExtraction`.
"""

from __future__ import annotations

import html
import logging
import math
import re

from calcsheet._protocol import ExtractionMiss, ResultBlock, ResultExtraction
from calcsheet._utils import OUTPUT_NUMBER, normalize_text, normalize_unit, to_float
from calcsheet.syntax import NAME, SyntaxClassifier

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Markup patterns
# ---------------------------------------------------------------------------

_BLOCK_END_RE = re.compile(r"(</p>|<br\s*/?>|</div>|</h[1-6]>|</tr>)", re.IGNORECASE)
_SUB_RE = re.compile(r"<sub\b[^>]*>(.*?)</sub>", re.IGNORECASE | re.DOTALL)
_SUP_RE = re.compile(r"<sup\b[^>]*>(.*?)</sup>", re.IGNORECASE | re.DOTALL)
_DVL_RE = re.compile(r"<span\s+class\s*=\s*\"dvl\"\s*>\s*</span>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")

_DVC_OPEN_RE = re.compile(r"<span\s+class\s*=\s*\"dvc\"\s*>", re.IGNORECASE)
_SPAN_TAG_RE = re.compile(r"<(/?)span\b[^>]*>", re.IGNORECASE)
_TRAILING_SUP_RE = re.compile(r"\s*<sup\b[^>]*>(.*?)</sup>", re.IGNORECASE | re.DOTALL)
_ITALIC_RE = re.compile(
    r"<i>(?P<unit>.*?)</i>(?:\s*<sup\b[^>]*>(?P<exp>.*?)</sup>)?",
    re.IGNORECASE | re.DOTALL,
)

# ---------------------------------------------------------------------------
# Text patterns (applied to projected, normalized text)
# ---------------------------------------------------------------------------

_OPENING_RE = re.compile(rf"^\s*(?P<name>{NAME})\s*=(?!=)")
_SCIENTIFIC = rf"(?P<mant>{OUTPUT_NUMBER})\s*×\s*10\s*\^\s*\(?(?P<exp>[-+−]?\d+)\)?"
_SCIENTIFIC_RE = re.compile(_SCIENTIFIC)
_DECIMAL_RE = re.compile(rf"\s*(?P<num>{OUTPUT_NUMBER})")

# Joiners allowed between consecutive unit tokens (kN·m, kN/m).
_UNIT_JOINERS = {"": "", "·": "·", "/": "/", "*": "*"}


def project_text(markup: str) -> str:
    """Plain-text rendering of a markup fragment."""
    if not markup:
        return ""
    text = _DVL_RE.sub("/", markup)
    text = _SUB_RE.sub(lambda m: "_" + m.group(1), text)
    text = _SUP_RE.sub(lambda m: "^" + m.group(1), text)
    text = _TAG_RE.sub("", text)
    return normalize_text(html.unescape(text))


def split_markup_lines(markup: str) -> list[str]:
    """Markup lines; block-level closing tags also end a line."""
    markup = _BLOCK_END_RE.sub(lambda m: m.group(1) + "\n", normalize_text(markup))
    return [line for line in markup.split("\n") if line.strip()]


def _after_last_equals(markup: str) -> str:
    """Markup after the last ``=`` that is not inside a tag."""
    in_tag = False
    last = -1
    for i, ch in enumerate(markup):
        if ch == "<":
            in_tag = True
        elif ch == ">":
            in_tag = False
        elif ch == "=" and not in_tag:
            last = i
    return markup[last + 1:]


def _tail(text: str) -> str:
    return text.rsplit("=", 1)[-1]


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------


def parse_value(tail: str) -> float | None:
    """Number in a block tail: ``m × 10^e`` anywhere, else a leading decimal."""
    sci = _SCIENTIFIC_RE.search(tail)
    if sci is not None:
        mantissa = to_float(sci.group("mant"))
        exponent = to_float(sci.group("exp"))
        if mantissa is not None and exponent is not None:
            try:
                value = mantissa * 10.0 ** exponent
            except OverflowError:
                return None
            return value if math.isfinite(value) else None
    m = _DECIMAL_RE.match(tail)
    if m is None:
        return None
    return to_float(m.group("num"))


# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------


def _span_close(markup: str, pos: int) -> tuple[int, int] | None:
    """(start, end) of the ``</span>`` closing a span whose content starts at *pos*."""
    depth = 1
    for m in _SPAN_TAG_RE.finditer(markup, pos):
        depth += -1 if m.group(1) else 1
        if depth == 0:
            return m.start(), m.end()
    return None


def _child_spans(inner: str) -> list[str]:
    """Contents of the top-level spans of *inner*, fraction bars excluded."""
    children: list[str] = []
    depth = 0
    start = 0
    opening = ""
    for m in _SPAN_TAG_RE.finditer(inner):
        if not m.group(1):
            if depth == 0:
                start = m.end()
                opening = m.group(0)
            depth += 1
        else:
            depth -= 1
            if depth == 0 and '"dvl"' not in opening:
                children.append(inner[start:m.start()])
    return children


class UnitReader:
    """Reads unit tokens out of result markup and text for one classifier."""

    def __init__(self, classifier: SyntaxClassifier) -> None:
        self._lead_re = re.compile(rf"[{classifier.unit_lead_class}]")
        self._text_unit_re = re.compile(
            rf"\s*{OUTPUT_NUMBER}(?:\s*×\s*10\s*\^\s*\(?[-+−]?\d+\)?)?"
            rf"\s*(?P<unit>{classifier.unit_token})"
        )

    def _is_unit(self, text: str) -> bool:
        return bool(text) and self._lead_re.search(text) is not None

    def fraction_unit(self, markup: str) -> str:
        """``num/den[^exp]`` from the last unit-bearing fraction in *markup*."""
        for opening in reversed(list(_DVC_OPEN_RE.finditer(markup))):
            close = _span_close(markup, opening.end())
            if close is None:
                continue
            inner = markup[opening.end():close[0]]
            bar = _DVL_RE.search(inner)
            if bar is not None:
                parts = [inner[:bar.start()], inner[bar.end():]]
            else:
                parts = _child_spans(inner)[:2]
            if len(parts) != 2:
                continue
            num, den = (project_text(p).strip() for p in parts)
            if not (self._is_unit(num) or self._is_unit(den)):
                continue
            unit = f"{num}/{den}"
            sup = _TRAILING_SUP_RE.match(markup, close[1])
            if sup is not None:
                exp = project_text(sup.group(1)).strip()
                if exp:
                    unit += f"^{exp}"
            return normalize_unit(unit)
        return ""

    def italic_unit(self, markup: str) -> str:
        """The last run of ``<i>`` unit tokens in *markup*."""
        run = ""
        prev_end: int | None = None
        for m in _ITALIC_RE.finditer(markup):
            token = project_text(m.group("unit")).strip()
            if not self._is_unit(token):
                prev_end = None
                run = ""
                continue
            if m.group("exp"):
                token += "^" + project_text(m.group("exp")).strip()
            if prev_end is not None:
                gap = project_text(markup[prev_end:m.start()]).strip()
                if gap in _UNIT_JOINERS:
                    run += _UNIT_JOINERS[gap] + token
                    prev_end = m.end()
                    continue
            run = token
            prev_end = m.end()
        return normalize_unit(run)

    def text_unit(self, tail: str) -> str:
        """Unit token right after the number in a projected tail."""
        m = self._text_unit_re.match(tail)
        if m is None:
            return ""
        return normalize_unit(m.group("unit"))

    def read(self, block: ResultBlock) -> str:
        markup_tail = _after_last_equals(block.markup)
        unit = self.fraction_unit(markup_tail) or self.italic_unit(markup_tail)
        if unit:
            return unit
        return self.text_unit(_tail(block.text))


# ---------------------------------------------------------------------------
# Rendered output
# ---------------------------------------------------------------------------


class RenderedOutput:
    """One render's markup, split into projected lines and result blocks.

    Usage::

        output = RenderedOutput(markup, get_classifier())
        result = output.extract("A")
        result.value, result.unit
    """

    def __init__(self, markup: str, classifier: SyntaxClassifier) -> None:
        self.markup = markup or ""
        self._units = UnitReader(classifier)
        self._markup_lines = split_markup_lines(self.markup)
        self._text_lines = [project_text(line) for line in self._markup_lines]
        self._openings: list[str | None] = []
        for text in self._text_lines:
            m = _OPENING_RE.match(text)
            self._openings.append(m.group("name") if m else None)

    def __bool__(self) -> bool:
        return bool(self.markup.strip())

    @property
    def text_lines(self) -> list[str]:
        return list(self._text_lines)

    def _block_at(self, start: int) -> ResultBlock:
        end = start + 1
        while end < len(self._openings) and self._openings[end] is None:
            end += 1
        name = self._openings[start]
        assert name is not None
        return ResultBlock(
            name=name,
            markup="\n".join(self._markup_lines[start:end]),
            text="\n".join(self._text_lines[start:end]),
        )

    def block(self, name: str) -> ResultBlock | None:
        """The first result block opened by ``name = ...``."""
        for index, opened in enumerate(self._openings):
            if opened == name:
                return self._block_at(index)
        return None

    def blocks(self) -> list[ResultBlock]:
        """Every result block, in output order."""
        return [
            self._block_at(index)
            for index, opened in enumerate(self._openings)
            if opened is not None
        ]

    def extract(self, name: str) -> ResultExtraction:
        if not self:
            return ResultExtraction(name, miss=ExtractionMiss.NO_OUTPUT)
        block = self.block(name)
        if block is None:
            logger.debug("No result block for %s", name)
            return ResultExtraction(name, miss=ExtractionMiss.NO_BLOCK)
        unit = self._units.read(block)
        value = parse_value(_tail(block.text))
        if value is None:
            logger.debug("Unparsable result for %s: %r", name, _tail(block.text))
            return ResultExtraction(name, unit=unit, miss=ExtractionMiss.NO_VALUE)
        return ResultExtraction(name, value=value, unit=unit)


def extract_results(
    markup: str | None,
    names: list[str],
    classifier: SyntaxClassifier,
) -> list[ResultExtraction]:
    """One extraction per name, in the order given."""
    output = RenderedOutput(markup or "", classifier)
    return [output.extract(name) for name in names]
