"""Unit aliases the calculation engine does not know, rewritten before rendering.

Each alias maps to ``(factor, base_unit)``; ``2 kip`` is sent to the engine as
``2*(1000 lbf)`` and an input ``?{2}kip`` as ``?{2}*(1000 lbf)``. Only the code part of a line is touched, never comments or
quoted text, and an alias inside a longer identifier is left alone.
"""

from __future__ import annotations

import re

from calcsheet._utils import split_lines_keepends
from calcsheet.syntax import code_end

UNIT_ALIASES: dict[str, tuple[str, str]] = {
    # Force
    "tonf": ("1000", "kgf"),
    "kip": ("1000", "lbf"),
    "kips": ("1000", "lbf"),
    "klbf": ("1000", "lbf"),
}

_UNSIGNED_NUMBER = r"\d+(?:\.\d+)?(?:[Ee][+-]?\d+)?"


def _alias_pattern(aliases: dict[str, tuple[str, str]]) -> re.Pattern[str]:
    names = "|".join(re.escape(a) for a in sorted(aliases, key=len, reverse=True))
    return re.compile(
        rf"(?<![\w.])(?:(?P<num>{_UNSIGNED_NUMBER})\s*|(?P<input>\?\s*\{{[^{{}}]*\}})\s*)?"
        rf"(?P<alias>{names})(?!\w)"
    )


_ALIAS_RE = _alias_pattern(UNIT_ALIASES)


def _expand(m: re.Match[str], aliases: dict[str, tuple[str, str]]) -> str:
    factor, base = aliases[m.group("alias")]
    expansion = f"({factor} {base})"
    quantity = m.group("num") or m.group("input")
    if quantity is not None:
        return f"{quantity}*{expansion}"
    return expansion


def normalize_unit_aliases(
    text: str,
    aliases: dict[str, tuple[str, str]] | None = None,
) -> str:
    """Rewrite every alias in the code part of each line of *text*."""
    if not text:
        return text
    if aliases is None:
        aliases, pattern = UNIT_ALIASES, _ALIAS_RE
    elif not aliases:
        return text
    else:
        pattern = _alias_pattern(aliases)

    out: list[str] = []
    for line, ending in split_lines_keepends(text):
        end = code_end(line)
        code = pattern.sub(lambda m: _expand(m, aliases), line[:end])
        out.append(code + line[end:] + ending)
    return "".join(out)
