"""Levenberg-Marquardt nonlinear least squares.

A self-contained damped Gauss-Newton solver for scalar models
``f(params, x) -> y``. The model is opaque: it is supplied as a factory
``model_factory(params) -> predict`` and derivatives are estimated with
finite differences.

Algorithm
---------

With residuals r = y - f(p) and J = df/dp (n_obs x n_params), each
iteration solves the damped normal equations

    (J'J + lambda * diag(J'J)) dp = J'r

and tries p' = p + dp. The step is accepted when S(p') < S(p), where
S = sum(r^2); lambda is then divided by ``damping_decrease`` (towards
Gauss-Newton). A rejected step multiplies lambda by ``damping_increase``
(towards gradient descent) and retries from the same p.

Termination:
    - relative decrease of S between accepted steps <= ftol (converged)
    - step norm <= xtol * (|p| + xtol) (converged)
    - S == 0 (converged, exact fit)
    - iteration cap, damping ceiling, retry cap, singular J'J, non-finite
      values, parameter divergence or degenerate data (not converged)

The solver never raises for ill-conditioning or non-convergence; it reports
the reason on the returned :class:`SolverResult`. Given identical inputs it
produces identical output.
"""

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Callable, Literal, Sequence

import numpy as np

logger = logging.getLogger(__name__)

ModelFactory = Callable[[Sequence[float]], Callable[[np.ndarray], np.ndarray]]

# Damping never drops below this, so J'J + lambda*diag(J'J) stays well posed
_MIN_DAMPING = 1e-12


class TerminationReason(str, Enum):
    """Why the solver stopped."""
    CONVERGED_COST = "converged_cost"
    CONVERGED_STEP = "converged_step"
    EXACT_FIT = "exact_fit"
    MAX_ITERATIONS = "max_iterations"
    SINGULAR = "singular"
    DAMPING_OVERFLOW = "damping_overflow"
    NO_IMPROVEMENT = "no_improvement"
    DIVERGED = "diverged"
    DEGENERATE_DATA = "degenerate_data"
    NON_FINITE = "non_finite"

    @property
    def converged(self) -> bool:
        return self in (
            TerminationReason.CONVERGED_COST,
            TerminationReason.CONVERGED_STEP,
            TerminationReason.EXACT_FIT,
        )

    @property
    def numerical_instability(self) -> bool:
        """True for ill-conditioning failures (singular system, overflow, NaN)."""
        return self in (
            TerminationReason.SINGULAR,
            TerminationReason.DAMPING_OVERFLOW,
            TerminationReason.NON_FINITE,
        )


@dataclass(frozen=True)
class SolverOptions:
    """Levenberg-Marquardt settings.

    Attributes:
        max_iterations: Cap on outer iterations (default 100)
        initial_damping: Starting lambda (default 1e-3)
        damping_increase: Factor applied to lambda after a rejected step (default 10)
        damping_decrease: Divisor applied to lambda after an accepted step (default 10)
        max_damping: Ceiling on lambda; exceeding it stops the solver (default 1e10)
        max_retries: Rejected steps allowed per iteration (default 20)
        ftol: Relative cost decrease treated as converged (default 1e-10)
        xtol: Relative step norm treated as converged (default 1e-10)
        finite_difference_step: Relative step for the Jacobian (default sqrt(eps))
        jacobian: "forward" or "central" differences (default forward)
        divergence_limit: Stop when |p| exceeds this multiple of max(|p0|, 1)
            (default 1e3)
    """
    max_iterations: int = 100
    initial_damping: float = 1e-3
    damping_increase: float = 10.0
    damping_decrease: float = 10.0
    max_damping: float = 1e10
    max_retries: int = 20
    ftol: float = 1e-10
    xtol: float = 1e-10
    finite_difference_step: float = 1.49e-8
    jacobian: Literal["forward", "central"] = "forward"
    divergence_limit: float = 1e3

    def __post_init__(self) -> None:
        errors = []
        if not self.max_iterations >= 1:
            errors.append(f"max_iterations ({self.max_iterations}) must be at least 1")
        if not self.max_retries >= 1:
            errors.append(f"max_retries ({self.max_retries}) must be at least 1")
        if not self.initial_damping > 0:
            errors.append(f"initial_damping ({self.initial_damping}) must be greater than 0")
        if not self.damping_increase > 1:
            errors.append(f"damping_increase ({self.damping_increase}) must be greater than 1")
        if not self.damping_decrease > 1:
            errors.append(f"damping_decrease ({self.damping_decrease}) must be greater than 1")
        if not self.max_damping > self.initial_damping:
            errors.append(
                f"max_damping ({self.max_damping}) must exceed initial_damping ({self.initial_damping})"
            )
        if not (self.ftol >= 0 and self.xtol >= 0):
            errors.append("ftol and xtol must be non-negative")
        if not self.finite_difference_step > 0:
            errors.append(
                f"finite_difference_step ({self.finite_difference_step}) must be greater than 0"
            )
        if self.jacobian not in ("forward", "central"):
            errors.append(f"jacobian ({self.jacobian!r}) must be 'forward' or 'central'")
        if not self.divergence_limit > 1:
            errors.append(f"divergence_limit ({self.divergence_limit}) must be greater than 1")
        if errors:
            raise ValueError("Invalid solver options:\n  - " + "\n  - ".join(errors))


@dataclass(frozen=True)
class SolverResult:
    """Outcome of a Levenberg-Marquardt run.

    Attributes:
        params: Best parameters found (the last accepted point)
        cost: Sum of squared residuals at ``params``
        iterations: Outer iterations performed
        reason: Why the solver stopped
        damping: Final damping factor
        evaluations: Number of model evaluations, including Jacobian columns
    """
    params: tuple[float, ...]
    cost: float
    iterations: int
    reason: TerminationReason
    damping: float
    evaluations: int

    @property
    def converged(self) -> bool:
        return self.reason.converged


def finite_difference_jacobian(
    predict: Callable[[np.ndarray], np.ndarray],
    params: np.ndarray,
    f0: np.ndarray,
    step: float = 1.49e-8,
    method: Literal["forward", "central"] = "forward",
) -> np.ndarray:
    """Estimate J[i, j] = d f_i / d p_j by finite differences.

    The step for parameter j is ``step * max(|p_j|, 1)``.

    Args:
        predict: Maps a parameter vector to model predictions
        params: Point to differentiate at
        f0: ``predict(params)``, reused by forward differences
        step: Relative step size
        method: "forward" (one evaluation per parameter) or "central" (two)

    Returns:
        Array of shape (len(f0), len(params))
    """
    jac = np.empty((f0.size, params.size))
    for j in range(params.size):
        h = step * max(abs(params[j]), 1.0)
        forward = params.copy()
        forward[j] += h
        if method == "central":
            backward = params.copy()
            backward[j] -= h
            jac[:, j] = (predict(forward) - predict(backward)) / (2 * h)
        else:
            jac[:, j] = (predict(forward) - f0) / h
    return jac


def levenberg_marquardt(
    xs: Sequence[float] | np.ndarray,
    ys: Sequence[float] | np.ndarray,
    model_factory: ModelFactory,
    initial_params: Sequence[float],
    options: SolverOptions | None = None,
) -> SolverResult:
    """Fit ``model_factory(params)`` to (xs, ys) by damped least squares.

    Args:
        xs: Sample locations
        ys: Observed values at xs
        model_factory: ``params -> predict`` where ``predict(xs) -> ys_hat``
        initial_params: Starting parameter vector
        options: Solver settings (defaults if None)

    Returns:
        SolverResult; ``converged`` is False whenever the solver stopped for
        any reason other than meeting a tolerance

    Raises:
        ValueError: If the inputs are malformed (shape mismatch, empty
            arrays, non-finite initial parameters)
    """
    options = options or SolverOptions()
    xs = np.asarray(xs, dtype=float)
    ys = np.asarray(ys, dtype=float)
    p = np.array(initial_params, dtype=float).ravel()

    if xs.ndim != 1 or xs.shape != ys.shape:
        raise ValueError(f"xs and ys must be 1-D with equal length, got {xs.shape} and {ys.shape}")
    if xs.size == 0:
        raise ValueError("At least one observation is required")
    if p.size == 0:
        raise ValueError("At least one parameter is required")
    if not np.all(np.isfinite(p)):
        raise ValueError(f"Initial parameters must be finite, got {p.tolist()}")

    evaluations = 0

    def predict(params: np.ndarray) -> np.ndarray:
        nonlocal evaluations
        evaluations += 1
        with np.errstate(all="ignore"):
            return np.asarray(model_factory(params)(xs), dtype=float)

    def finish(params: np.ndarray, cost: float, iterations: int,
               reason: TerminationReason, damping: float) -> SolverResult:
        logger.debug(
            f"LM stopped after {iterations} iteration(s): {reason.value} "
            f"(cost={cost:.6g}, lambda={damping:.3g})"
        )
        return SolverResult(
            params=tuple(float(v) for v in params),
            cost=float(cost),
            iterations=iterations,
            reason=reason,
            damping=float(damping),
            evaluations=evaluations,
        )

    damping = options.initial_damping

    if not (np.all(np.isfinite(xs)) and np.all(np.isfinite(ys))) or not np.any(ys != 0):
        return finish(p, np.inf, 0, TerminationReason.DEGENERATE_DATA, damping)

    f = predict(p)
    r = ys - f
    cost = float(r @ r)
    if not np.isfinite(cost):
        return finish(p, cost, 0, TerminationReason.NON_FINITE, damping)

    divergence_bound = options.divergence_limit * max(float(np.linalg.norm(p)), 1.0)

    for iteration in range(1, options.max_iterations + 1):
        if cost == 0.0:
            return finish(p, cost, iteration - 1, TerminationReason.EXACT_FIT, damping)

        jac = finite_difference_jacobian(
            predict, p, f,
            step=options.finite_difference_step,
            method=options.jacobian,
        )
        if not np.all(np.isfinite(jac)):
            return finish(p, cost, iteration, TerminationReason.NON_FINITE, damping)

        jtj = jac.T @ jac
        gradient = jac.T @ r
        scale = np.diag(jtj).copy()
        if np.any(scale <= 0):
            # A parameter with no influence on the model
            return finish(p, cost, iteration, TerminationReason.SINGULAR, damping)

        accepted = False
        for _ in range(options.max_retries):
            try:
                step = np.linalg.solve(jtj + damping * np.diag(scale), gradient)
            except np.linalg.LinAlgError:
                return finish(p, cost, iteration, TerminationReason.SINGULAR, damping)
            if not np.all(np.isfinite(step)):
                return finish(p, cost, iteration, TerminationReason.NON_FINITE, damping)

            step_norm = float(np.linalg.norm(step))
            if step_norm <= options.xtol * (float(np.linalg.norm(p)) + options.xtol):
                return finish(p, cost, iteration, TerminationReason.CONVERGED_STEP, damping)

            trial = p + step
            f_trial = predict(trial)
            r_trial = ys - f_trial
            cost_trial = float(r_trial @ r_trial)
            if np.isfinite(cost_trial) and cost_trial < cost:
                accepted = True
                break

            damping *= options.damping_increase
            if damping > options.max_damping:
                return finish(p, cost, iteration, TerminationReason.DAMPING_OVERFLOW, damping)

        if not accepted:
            return finish(p, cost, iteration, TerminationReason.NO_IMPROVEMENT, damping)

        relative_decrease = (cost - cost_trial) / cost
        p, f, r, cost = trial, f_trial, r_trial, cost_trial
        damping = max(damping / options.damping_decrease, _MIN_DAMPING)
        logger.debug(
            f"LM iteration {iteration}: cost={cost:.6g}, lambda={damping:.3g}, "
            f"params={p.tolist()}"
        )

        if float(np.linalg.norm(p)) > divergence_bound:
            return finish(p, cost, iteration, TerminationReason.DIVERGED, damping)
        if relative_decrease <= options.ftol:
            return finish(p, cost, iteration, TerminationReason.CONVERGED_COST, damping)

    return finish(p, cost, options.max_iterations, TerminationReason.MAX_ITERATIONS, damping)
