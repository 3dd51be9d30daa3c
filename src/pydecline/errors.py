"""Exception types for decline curve generation and fitting."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .core.fitting import FitResult
    from .core.solver import SolverResult


class DeclineError(Exception):
    """Base class for all pydecline errors."""


class InvalidParameterError(DeclineError, ValueError):
    """A decline parameter or time grid is outside its valid domain.

    Raised eagerly by the decline models, the curve generator and the
    fitter. Values are never silently corrected.
    """


class FitFailedError(DeclineError):
    """The solver returned parameters outside the decline model domain.

    Attributes:
        result: Best available estimate, always with ``converged=False``
        solver_result: Raw solver output the estimate was built from
    """

    def __init__(self, message: str, result: "FitResult", solver_result: "SolverResult"):
        super().__init__(message)
        self.result = result
        self.solver_result = solver_result
