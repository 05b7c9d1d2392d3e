r"""Exceptions raised by affine transformation updates."""

from typing import Optional


class InvalidLengthError(ValueError):
    r"""Parameter or gradient vector does not have the expected number of elements."""

    def __init__(self, name: str, length: int, expected: int = 12) -> None:
        super().__init__(f"'{name}' must have {expected} elements, got {length}")
        self.name = name
        self.length = length
        self.expected = expected


class UpdateDivergenceError(RuntimeError):
    r"""No feasible transformation update was found within the retry budget.

    Attributes:
        step_size: Last step size that was attempted before giving up.
        retries: Number of rejected candidate updates.

    """

    def __init__(self, step_size: float, retries: int, reason: Optional[str] = None) -> None:
        msg = f"No feasible affine update after {retries} retries (last step size: {step_size:g})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.step_size = step_size
        self.retries = retries
        self.reason = reason


class UnimplementedRobustEstimateError(NotImplementedError):
    r"""Outlier-robust aggregation of gradient estimates is not available."""

    def __init__(self, name: str) -> None:
        super().__init__(f"{name}() robust gradient estimation is not implemented")
