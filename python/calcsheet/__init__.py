"""calcsheet - drive calculation-language sheets through an external renderer.

Usage::

    from calcsheet import load_sheet

    sheet = load_sheet("beam.cpd", renderer=engine.render)
    sheet.names, sheet.values, sheet.units
    sheet.set_variable("L", 7.5)
    sheet.calculate()
    for eq, value in zip(sheet.get_result_equations(), sheet.get_result_values()):
        print(eq, value)
"""

import os

from calcsheet._errors import (
    CalcSheetError,
    NoSourceText,
    RenderFailed,
    RenderUnavailable,
    VariableNotFound,
)
from calcsheet._protocol import (
    EquationEntry,
    ExtractionMiss,
    Renderer,
    ResultBlock,
    ResultExtraction,
    SheetRun,
    VariableEntry,
    VariableKind,
)
from calcsheet._search import ResultFilter, ValueUpdate, filter_results, modify_values
from calcsheet._sheet import Sheet, SheetState
from calcsheet._units import UNIT_ALIASES, normalize_unit_aliases
from calcsheet._utils import normalize_text
from calcsheet.syntax import SyntaxClassifier, SyntaxConfig, get_classifier, parse_variables

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "CalcSheetError",
    "EquationEntry",
    "ExtractionMiss",
    "NoSourceText",
    "RenderFailed",
    "RenderUnavailable",
    "Renderer",
    "ResultBlock",
    "ResultExtraction",
    "ResultFilter",
    "Sheet",
    "SheetRun",
    "SheetState",
    "SyntaxClassifier",
    "SyntaxConfig",
    "UNIT_ALIASES",
    "ValueUpdate",
    "VariableEntry",
    "VariableKind",
    "VariableNotFound",
    "filter_results",
    "get_classifier",
    "load_sheet",
    "modify_values",
    "normalize_text",
    "normalize_unit_aliases",
    "parse_variables",
]


def load_sheet(
    filename: str | os.PathLike[str],
    renderer: Renderer | None = None,
    explicit_only: bool = False,
) -> Sheet:
    """Open a plain-text sheet file.

    Line endings are kept exactly as stored so that saving an unedited sheet
    writes the same bytes back (a leading BOM is dropped).
    """
    with open(filename, encoding="utf-8-sig", newline="") as fh:
        text = fh.read()
    return Sheet.from_text(text, renderer=renderer, explicit_only=explicit_only)
