r"""Fixed step size gradient descent of affine transformation parameters."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from logging import Logger
from typing import Callable, Optional

from torch import Tensor

from affinereg.core.typing import AffineParams
from affinereg.spatial.affine import AffineTransform

from .convergence import DoubleExpSmoothingCheck
from .update import AffineStepUpdate


GradientFunction = Callable[[AffineParams], Tensor]


class StopReason(Enum):
    r"""Why gradient descent terminated."""

    MAX_ITER = "max_iter"  # Maximum number of iterations reached
    UNCHANGED = "unchanged"  # Update rule reported negligible change
    CONVERGED = "converged"  # Convergence check detected flat sequence of updates


@dataclass
class DescentResult:
    r"""Outcome of gradient descent."""

    params: AffineParams
    iterations: int
    reason: StopReason


def gradient_descent(
    model: AffineTransform,
    gradient: GradientFunction,
    update: AffineStepUpdate,
    step_size: float,
    max_iter: int = 100,
    monitor: Optional[DoubleExpSmoothingCheck] = None,
    logger: Optional[Logger] = None,
) -> DescentResult:
    r"""Minimize objective function with respect to affine transformation parameters.

    Args:
        model: Transformation whose parameters are optimized in place.
        gradient: Function which evaluates the gradient of the objective function for the
            given parameters, e.g., of an image dissimilarity measure.
        update: Rule which computes the new parameters given current parameters and gradient.
        step_size: Step length passed to ``update`` in each iteration.
        max_iter: Maximum number of iterations.
        monitor: Optional convergence check which observes the parameter updates.
        logger: Optional logger for progress messages.

    Returns:
        Final parameters, number of performed iterations, and reason of termination.

    """
    if max_iter < 1:
        raise ValueError("gradient_descent() 'max_iter' must be positive")
    reason = StopReason.MAX_ITER
    params = model.get_parameter_vector()
    iteration = 0
    while iteration < max_iter:
        iteration += 1
        grad = gradient(params)
        new_params, changed = update(params, grad, step_size)
        model.set_parameter_vector(new_params)
        delta = new_params - params
        params = model.get_parameter_vector()
        if logger is not None:
            logger.debug(f"Iteration {iteration}: max |delta| = {float(delta.abs().max()):.6g}")
        if not changed:
            reason = StopReason.UNCHANGED
            break
        if monitor is not None and not monitor.observe(delta):
            reason = StopReason.CONVERGED
            break
    if logger is not None:
        logger.info(f"Gradient descent stopped after {iteration} iterations ({reason.value})")
    return DescentResult(params=params, iterations=iteration, reason=reason)
