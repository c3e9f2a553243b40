"""Exception types raised by the sheet model."""

from __future__ import annotations


class CalcSheetError(Exception):
    """Base class for all calcsheet errors."""


class NoSourceText(CalcSheetError, RuntimeError):
    """The operation needs sheet source text and none has been loaded."""

    def __init__(self, operation: str = "calculate") -> None:
        super().__init__(f"No sheet source text loaded; call load() before {operation}()")
        self.operation = operation


class RenderUnavailable(CalcSheetError, RuntimeError):
    """No render function is configured on the sheet."""

    def __init__(self) -> None:
        super().__init__("No renderer configured; pass renderer= to Sheet()")


class RenderFailed(CalcSheetError):
    """The external render function raised.

    The original exception is chained as ``__cause__``.
    """

    def __init__(self, message: str) -> None:
        super().__init__(f"Calculation error: {message}")


class VariableNotFound(CalcSheetError, KeyError):
    """A substitution target has no declaration in the sheet source."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"No declaration found for variable {self.name!r}"
