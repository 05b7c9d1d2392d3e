r"""Detection of converged or oscillating gradient descent using double exponential smoothing."""

from __future__ import annotations

from collections import deque
from enum import Enum
from typing import Deque, Optional, Union

import torch
from torch import Tensor

from affinereg.core.config import ConvergenceConfig
from affinereg.core.tensor import as_double_tensor
from affinereg.core.typing import Array


__all__ = (
    "DoubleExpSmoothingCheck",
    "SmoothingState",
)


class SmoothingState(Enum):
    r"""Stage of convergence check."""

    SEEDING = "seeding"  # No reference point yet
    FILLING = "filling"  # History shorter than buffer length
    STEADY = "steady"  # History at buffer length, oldest entries are evicted


class DoubleExpSmoothingCheck(object):
    r"""Check whether the slope of a sequence of vectors has been flat for a number of iterations.

    Each observed vector is smoothed using double exponential smoothing (Holt's method), i.e.,

    .. code::

        s_t = alpha * x_t + (1 - alpha) * (s_{t-1} + b_{t-1})
        b_t = beta * (s_t - s_{t-1}) + (1 - beta) * b_{t-1}

    where the first observation serves as reference point ``x_0`` and the second initializes
    ``s_1 = x_1`` and ``b_1 = x_1 - x_0``. Optimization should stop once the smoothed slope ``b_t``
    was below the threshold in all components for ``buffer_len`` consecutive observations, but
    not before ``min_iter`` vectors were observed.

    """

    def __init__(
        self,
        slope_threshold: Union[float, Array, Tensor],
        alpha: float = 0.8,
        beta: float = 0.55,
        buffer_len: int = 4,
        min_iter: int = 5,
    ) -> None:
        r"""Initialize convergence check.

        Args:
            slope_threshold: Upper bound of absolute smoothed slope, either a scalar applied to
                all components or one value for each component of the observed vectors.
            alpha: Data smoothing factor in open interval (0, 1).
            beta: Slope smoothing factor in open interval (0, 1).
            buffer_len: Maximum length of history, and number of consecutive observations with
                slope below threshold before convergence is reported.
            min_iter: Minimum number of observations before convergence may be reported.

        """
        if not 0 < alpha < 1:
            raise ValueError(f"{type(self).__name__}() 'alpha' must be in open interval (0, 1)")
        if not 0 < beta < 1:
            raise ValueError(f"{type(self).__name__}() 'beta' must be in open interval (0, 1)")
        if buffer_len < 1:
            raise ValueError(f"{type(self).__name__}() 'buffer_len' must be positive")
        if min_iter < 0:
            raise ValueError(f"{type(self).__name__}() 'min_iter' must be non-negative")
        threshold = as_double_tensor(slope_threshold)
        if threshold.ndim > 1:
            raise ValueError(f"{type(self).__name__}() 'slope_threshold' must be scalar or vector")
        self.alpha = float(alpha)
        self.beta = float(beta)
        self.threshold = threshold
        self.buffer_len = int(buffer_len)
        self.min_iter = int(min_iter)
        self._x0: Optional[Tensor] = None
        self._smoothed: Deque[Tensor] = deque()
        self._slopes: Deque[Tensor] = deque()
        self._iter_count = 0
        self._stop_count = 0

    @classmethod
    def from_config(cls, config: ConvergenceConfig) -> DoubleExpSmoothingCheck:
        threshold = config.slope_threshold
        if len(threshold) == 1:
            threshold = threshold[0]
        return cls(
            threshold,
            alpha=config.alpha,
            beta=config.beta,
            buffer_len=config.buffer_len,
            min_iter=config.min_iter,
        )

    @property
    def iteration(self) -> int:
        r"""Number of observed vectors."""
        return self._iter_count

    @property
    def state(self) -> SmoothingState:
        r"""Whether history is not yet initialized, being filled, or at maximum length."""
        if self._x0 is None or not self._smoothed:
            return SmoothingState.SEEDING
        if len(self._smoothed) < self.buffer_len:
            return SmoothingState.FILLING
        return SmoothingState.STEADY

    def observe(self, element: Union[Array, Tensor]) -> bool:
        r"""Add vector to history and check convergence.

        Args:
            element: Next vector of observed sequence, e.g., gradient or parameter update.

        Returns:
            Whether to continue optimizing.

        """
        x = as_double_tensor(element).flatten()
        if self._x0 is not None and x.shape != self._x0.shape:
            raise ValueError(
                f"{type(self).__name__}.observe() 'element' must have {self._x0.numel()} elements"
            )
        if self.threshold.ndim == 1 and self.threshold.numel() not in (1, x.numel()):
            raise ValueError(
                f"{type(self).__name__}.observe() 'element' size does not match 'slope_threshold'"
            )
        self._iter_count += 1

        if self._x0 is None:
            self._x0 = x
            return True

        if not self._smoothed:
            self._smoothed.append(x)
            self._slopes.append(x - self._x0)
            self._count_flat(self._slopes[-1])
            return True

        prev_s = self._smoothed[-1]
        prev_b = self._slopes[-1]
        s = x.mul(self.alpha).add(prev_s.add(prev_b), alpha=1 - self.alpha)
        b = s.sub(prev_s).mul(self.beta).add(prev_b, alpha=1 - self.beta)
        self._smoothed.append(s)
        self._slopes.append(b)
        self._count_flat(b)

        # Evict oldest entry, counter must not exceed buffer length afterwards
        if len(self._smoothed) > self.buffer_len:
            self._smoothed.popleft()
            self._slopes.popleft()
            if self._stop_count > self.buffer_len:
                self._stop_count -= 1

        return self._stop_count != self.buffer_len or self._iter_count < self.min_iter

    def last_slope(self) -> Optional[Tensor]:
        r"""Most recent smoothed slope, or ``None`` if not yet available."""
        if not self._slopes:
            return None
        return self._slopes[-1].clone()

    def last_smoothed(self) -> Optional[Tensor]:
        r"""Most recent smoothed value, or ``None`` if not yet available."""
        if not self._smoothed:
            return None
        return self._smoothed[-1].clone()

    def _count_flat(self, slope: Tensor) -> None:
        if torch.all(slope.abs() < self.threshold):
            self._stop_count += 1
        else:
            self._stop_count = 0
