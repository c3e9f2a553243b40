"""Default design variables and objectives for a sheet when none are given."""

from __future__ import annotations

from collections.abc import Sequence

from calcsheet._protocol import EquationEntry, VariableEntry

# Left-hand sides containing one of these are taken as objectives.
OBJECTIVE_KEYWORDS: tuple[str, ...] = (
    "stress",
    "weight",
    "cost",
    "area",
    "volume",
    "force",
    "moment",
    "deflection",
)


def detect_design_variables(variables: Sequence[VariableEntry], limit: int = 10) -> list[str]:
    """The first *limit* distinct declared names."""
    names: list[str] = []
    for var in variables:
        if var.name not in names:
            names.append(var.name)
        if len(names) >= limit:
            break
    return names


def detect_objectives(equations: Sequence[EquationEntry], limit: int = 3) -> list[str]:
    """Equation left-hand sides that look like objectives.

    Falls back to the last three left-hand sides when none match a keyword.
    """
    lhs = [eq.lhs.strip() for eq in equations if eq.lhs.strip()]
    picked = [name for name in lhs if any(k in name.lower() for k in OBJECTIVE_KEYWORDS)]
    if not picked:
        picked = lhs[-3:]
    return picked[:limit]
