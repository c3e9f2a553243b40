"""Built-in token sets the classifier falls back on when no token data is found."""

from __future__ import annotations

import string

# ---------------------------------------------------------------------------
# Functions: a call to one of these marks a right-hand side as an equation.
# Organized by category for readability.
# ---------------------------------------------------------------------------

SEED_FUNCTIONS: dict[str, str] = {
    # Math (11)
    "sqrt": "math",
    "exp": "math",
    "ln": "math",
    "log": "math",
    "abs": "math",
    "round": "math",
    "floor": "math",
    "ceil": "math",
    "pow": "math",
    "min": "math",
    "max": "math",
    # Trigonometric (6)
    "sin": "trig",
    "cos": "trig",
    "tan": "trig",
    "asin": "trig",
    "acos": "trig",
    "atan": "trig",
    # Hyperbolic (3)
    "sinh": "hyperbolic",
    "cosh": "hyperbolic",
    "tanh": "hyperbolic",
}

SEED_KEYWORDS: frozenset[str] = frozenset({
    "for", "to", "step", "if", "else", "endif", "endfor",
    "while", "endwhile", "table", "print", "plot", "const",
})

# ---------------------------------------------------------------------------
# Unit characters: what may follow a number as part of its unit token.
# ---------------------------------------------------------------------------

UNIT_SYMBOLS: frozenset[str] = frozenset({
    "µ",  # MICRO SIGN
    "μ",  # GREEK SMALL LETTER MU
    "°",  # DEGREE SIGN
    "Ω",  # GREEK CAPITAL LETTER OMEGA
    "℧",  # MHO SIGN
    "Δ",  # GREEK CAPITAL LETTER DELTA
    "·",  # MIDDLE DOT (kN·m)
})

# Characters allowed inside a unit but never at its start.
UNIT_JOINERS: frozenset[str] = frozenset("/^-.*()_ ")

SEED_UNIT_CHARS: frozenset[str] = frozenset(
    string.ascii_letters + string.digits + "%"
) | UNIT_JOINERS | UNIT_SYMBOLS

# Token data may never widen the unit class with these: they delimit
# statements, inputs and comments, or are arithmetic operators.
STRUCTURAL_CHARS: frozenset[str] = frozenset("=;'\"#{}?,+<>!&|\\[]$@~`:")
