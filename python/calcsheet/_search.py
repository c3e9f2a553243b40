"""Name-based selection over result lists and variable value arrays.

Names are compared case-insensitively after trimming; when a name appears
more than once, its last position is the one used.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from calcsheet._protocol import EquationEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResultFilter:
    """Equations and values picked out by name."""

    equations: tuple[EquationEntry | str, ...]
    values: tuple[float, ...]
    found: tuple[str, ...]
    not_found: tuple[str, ...]


@dataclass(frozen=True)
class ValueUpdate:
    """A full value array with some named positions replaced."""

    values: tuple[float, ...]
    modified: tuple[str, ...]
    modified_values: tuple[float, ...]
    not_found: tuple[str, ...]


def _lhs(equation: EquationEntry | str) -> str:
    if isinstance(equation, EquationEntry):
        return equation.lhs.strip()
    return equation.split("=", 1)[0].strip() if "=" in equation else ""


def _index_by_name(names: Sequence[str]) -> dict[str, int]:
    index: dict[str, int] = {}
    for i, name in enumerate(names):
        if name and name.strip():
            index[name.strip().casefold()] = i  # last duplicate wins
    return index


def filter_results(
    equations: Sequence[EquationEntry | str],
    values: Sequence[float],
    names: Sequence[str],
) -> ResultFilter:
    """Pick the equations and values whose left-hand side is in *names*.

    Output follows the order of *names*. Raises ``ValueError`` when
    *equations* and *values* differ in length.
    """
    if len(equations) != len(values):
        raise ValueError(
            f"Result equations ({len(equations)}) and result values "
            f"({len(values)}) must have the same length"
        )
    index = _index_by_name([_lhs(eq) for eq in equations])

    picked_eqs: list[EquationEntry | str] = []
    picked_vals: list[float] = []
    found: list[str] = []
    not_found: list[str] = []
    for raw in names:
        if not raw or not raw.strip():
            logger.debug("Skipping empty filter name")
            continue
        name = raw.strip()
        i = index.get(name.casefold())
        if i is None:
            logger.debug("Result %s not found", name)
            not_found.append(name)
            continue
        picked_eqs.append(equations[i])
        picked_vals.append(values[i])
        found.append(name)

    return ResultFilter(tuple(picked_eqs), tuple(picked_vals), tuple(found), tuple(not_found))


def modify_values(
    all_names: Sequence[str],
    all_values: Sequence[float],
    names: Sequence[str],
    new_values: Sequence[float],
) -> ValueUpdate:
    """Copy *all_values*, replacing the positions named in *names*.

    The result is ready for :meth:`Sheet.apply_values`. Raises
    ``ValueError`` on mismatched lengths.
    """
    if len(all_names) != len(all_values):
        raise ValueError(
            f"All names ({len(all_names)}) and all values ({len(all_values)}) "
            "must have the same length"
        )
    if len(names) != len(new_values):
        raise ValueError(
            f"Names ({len(names)}) and new values ({len(new_values)}) "
            "must have the same length"
        )
    index = _index_by_name(all_names)

    result = [float(v) for v in all_values]
    modified: list[str] = []
    modified_values: list[float] = []
    not_found: list[str] = []
    for raw, value in zip(names, new_values):
        if not raw or not raw.strip():
            logger.debug("Skipping empty variable name")
            continue
        name = raw.strip()
        i = index.get(name.casefold())
        if i is None:
            logger.debug("Variable %s not found", name)
            not_found.append(name)
            continue
        result[i] = float(value)
        modified.append(name)
        modified_values.append(float(value))

    return ValueUpdate(tuple(result), tuple(modified), tuple(modified_values), tuple(not_found))
