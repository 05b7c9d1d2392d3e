r"""Update rules which compute the next affine transformation from a gradient step."""

from __future__ import annotations

from abc import ABCMeta, abstractmethod
from logging import Logger
import math
from typing import Optional, Sequence, Tuple, Union

import torch
from torch import Tensor

from affinereg.core.config import UpdateConfig
from affinereg.core.errors import UnimplementedRobustEstimateError, UpdateDivergenceError
from affinereg.core.linalg import as_homogeneous_matrix, is_approx, positive_determinant, sqrtm
from affinereg.core.tensor import max_abs
from affinereg.core.typing import AffineMatrix, AffineParams, Array
from affinereg.spatial.control import ControlPoints
from affinereg.spatial.params import check_params, matrix_to_params, params_to_matrix


__all__ = (
    "AffineStepUpdate",
    "AffineUpdate",
    "RobustAffineUpdate",
    "symmetric_update",
)


UpdateResult = Tuple[AffineParams, bool]


class AffineStepUpdate(metaclass=ABCMeta):
    r"""Base class of gradient descent update rules for affine parameters."""

    @abstractmethod
    def update(
        self,
        params: Union[Array, Tensor],
        gradient: Union[Array, Tensor],
        step_size: float,
    ) -> UpdateResult:
        r"""Compute new parameters.

        Args:
            params: Current affine parameters with 12 elements.
            gradient: Gradient of objective function with respect to ``params``.
            step_size: Step length along negative gradient direction.

        Returns:
            new_params: Updated affine parameters.
            changed: Whether the optimizer should continue, i.e., ``False`` if the
                update is negligible.

        """
        raise NotImplementedError(f"{type(self).__name__}.update()")

    def __call__(
        self,
        params: Union[Array, Tensor],
        gradient: Union[Array, Tensor],
        step_size: float,
    ) -> UpdateResult:
        return self.update(params, gradient, step_size)

    @staticmethod
    def _check_step_size(step_size: Union[float, Tensor]) -> float:
        step_size = float(step_size)
        if not math.isfinite(step_size) or step_size < 0:
            raise ValueError("update() 'step_size' must be a non-negative finite number")
        return step_size


class RobustAffineUpdate(AffineStepUpdate):
    r"""Plain gradient step without geometric validation of the resulting transformation."""

    def update(
        self,
        params: Union[Array, Tensor],
        gradient: Union[Array, Tensor],
        step_size: float,
    ) -> UpdateResult:
        x = check_params(params, "params")
        g = check_params(gradient, "gradient")
        step_size = self._check_step_size(step_size)
        new_params = x.sub(g, alpha=step_size)
        return new_params, not is_approx(new_params, x)

    def robust_estimate(
        self,
        gradient: Tensor,
        grad_estimates: Sequence[Tensor],
        params: Tensor,
        precision: float = 1e-6,
        max_iter: int = 1000,
    ) -> Tensor:
        r"""Aggregate gradient estimates with outlier down-weighting (geometric median).

        Raises:
            UnimplementedRobustEstimateError: Always.

        """
        raise UnimplementedRobustEstimateError(f"{type(self).__name__}.robust_estimate")


class AffineUpdate(AffineStepUpdate):
    r"""Gradient step which keeps the affine transformation valid and coherent.

    A candidate update of the current transformation ``X`` given the step ``Delta`` of the
    linearized gradient is obtained as the symmetric part of the product of the principal
    square roots of ``X - Delta`` and ``(X^-1 + Delta)^-1`` (see ``symmetric_update()``).
    The step size is reduced until the candidate transformation has a positive determinant.

    When control points are set, the step size is furthermore reduced until no control point
    is displaced by more than the coherence distance along any axis, and the update reports
    convergence when all control points move by less than the stop length in voxel units.
    Without control points, the maximum change of the linear component and translation is
    limited instead.

    In either case, at most ``UpdateConfig.max_retries`` candidates are rejected before an
    ``UpdateDivergenceError`` is raised.

    """

    def __init__(
        self,
        config: Optional[UpdateConfig] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        r"""Initialize update rule.

        Args:
            config: Step size limits and reduction factors.
            logger: Logger used for debug messages about step size reductions.

        """
        if config is None:
            config = UpdateConfig()
        if not isinstance(config, UpdateConfig):
            raise TypeError(f"{type(self).__name__}() 'config' must be UpdateConfig")
        self.config = config
        self.logger = logger
        self._control_points: Optional[ControlPoints] = None

    @classmethod
    def from_config(cls, config: UpdateConfig, logger: Optional[Logger] = None) -> AffineUpdate:
        return cls(config=config, logger=logger)

    @property
    def control_points(self) -> Optional[ControlPoints]:
        r"""Control points used to bound and monitor updates."""
        return self._control_points

    def set_control_points(
        self,
        points: Union[Array, Tensor],
        coherence_distance: Union[float, Array, Tensor],
        stop_length: Union[float, Array, Tensor],
        voxel_spacing: Union[float, Array, Tensor],
    ) -> AffineUpdate:
        r"""Set control points before the first update, replacing any previous ones.

        Args:
            points: Homogeneous coordinates of 4 control points as columns of a ``(4, 4)`` tensor.
            coherence_distance: Maximum displacement of each control point along each axis.
            stop_length: Displacement in voxel units below which the optimization converged.
            voxel_spacing: Voxel size of target image.

        """
        self._control_points = ControlPoints(
            points=points,
            coherence_distance=coherence_distance,
            stop_length=stop_length,
            voxel_spacing=voxel_spacing,
        )
        return self

    def update(
        self,
        params: Union[Array, Tensor],
        gradient: Union[Array, Tensor],
        step_size: float,
    ) -> UpdateResult:
        x = check_params(params, "params")
        g = check_params(gradient, "gradient")
        if not torch.isfinite(g).all():
            raise ValueError(f"{type(self).__name__}.update() 'gradient' must not be nan or inf")
        step_size = self._check_step_size(step_size)

        X = params_to_matrix(x)
        G = params_to_matrix(g)
        if not positive_determinant(X):
            raise ValueError(
                f"{type(self).__name__}.update() 'params' must define a transformation"
                " with positive determinant"
            )
        X_inv = torch.linalg.inv(X)

        # Restrict update to range of small angles
        max_linear = max_abs(G[:3, :3])
        if step_size * max_linear > self.config.angle_limit:
            step_size = self.config.angle_limit / max_linear

        control_points = self._control_points
        if control_points is None:
            X_new = self._update_without_control_points(X, X_inv, g, G, step_size)
        else:
            X_new = self._update_with_control_points(X, X_inv, g, step_size, control_points)
        new_params = matrix_to_params(X_new)

        if control_points is not None and control_points.converged(X_new, X):
            self._debug("Maximum control point displacement smaller than stop length")
            return new_params, False
        return new_params, not is_approx(new_params, x)

    def _update_with_control_points(
        self,
        X: AffineMatrix,
        X_inv: AffineMatrix,
        g: AffineParams,
        step_size: float,
        control_points: ControlPoints,
    ) -> AffineMatrix:
        factor = self.config.step_down_factor
        initial_step_size = step_size
        reason = None
        for retries in range(self.config.max_retries + 1):
            if retries > 0:
                step_size *= factor
            delta = g.mul(step_size).reshape(3, 4)
            forward = as_homogeneous_matrix(X[:3] + delta)
            if not positive_determinant(forward):
                reason = "determinant of X + Delta is not positive"
                continue
            if not control_points.coherent(forward, X):
                reason = "X + Delta exceeds coherence distance"
                continue
            X_new, reason = _symmetric_candidate(X, X_inv, delta)
            if X_new is None:
                continue
            if not control_points.coherent(X_new, X):
                reason = "update exceeds coherence distance"
                continue
            if step_size != initial_step_size:
                self._debug(f"Step size changed from {initial_step_size:g} to {step_size:g}")
            return X_new
        raise UpdateDivergenceError(step_size, self.config.max_retries, reason)

    def _update_without_control_points(
        self,
        X: AffineMatrix,
        X_inv: AffineMatrix,
        g: AffineParams,
        G: AffineMatrix,
        step_size: float,
    ) -> AffineMatrix:
        config = self.config
        factor = config.shrink_factor
        max_linear = max_abs(G[:3, :3])
        max_translation = max_abs(G[:3, 3])
        num_shrinks = 0
        reason = None
        attempted = step_size
        for _ in range(config.max_retries + 1):
            attempted = step_size
            delta = g.mul(step_size).reshape(3, 4)
            if max_abs(delta[:, :3]) > config.max_rotation_step:
                step_size = config.rotation_rescale / max_linear
                self._debug(f"Step size rescaled to {step_size:g} to limit linear change")
                reason = "change of linear component too large"
                continue
            if max_abs(delta[:, 3]) > config.max_translation_step:
                step_size = config.translation_rescale / max_translation
                self._debug(f"Step size rescaled to {step_size:g} to limit translation")
                reason = "change of translation too large"
                continue
            X_new, reason = _symmetric_candidate(X, X_inv, delta)
            if X_new is not None:
                if num_shrinks > 0:
                    self._debug(
                        "Gradient descent step size was too large."
                        f" Multiplied by factor {factor ** num_shrinks:.4g} (now: {step_size:.4g})"
                    )
                return X_new
            step_size *= factor
            num_shrinks += 1
        raise UpdateDivergenceError(attempted, config.max_retries, reason)

    def _debug(self, msg: str) -> None:
        if self.logger is not None:
            self.logger.debug(f"{type(self).__name__}: {msg}")


def symmetric_update(A: AffineMatrix, B: AffineMatrix) -> AffineMatrix:
    r"""Symmetric combination of two transformations given by their principal square roots.

    Computes ``sqrt(A) sqrt(B)^-1 - (sqrt(A) sqrt(B)^-1 - sqrt(B)^-1 sqrt(A)) / 2``, i.e., the
    average of both products of the square roots, because ``A`` and ``B`` do not commute.

    Raises:
        ValueError: If ``A`` or ``B`` has no real principal square root.

    """
    A_sqrt = sqrtm(A)
    B_sqrt_inv = torch.linalg.inv(sqrtm(B))
    AB = A_sqrt.matmul(B_sqrt_inv)
    return as_homogeneous_matrix(AB - (AB - B_sqrt_inv.matmul(A_sqrt)).mul(0.5))


def _symmetric_candidate(
    X: AffineMatrix, X_inv: AffineMatrix, delta: Tensor
) -> Tuple[Optional[AffineMatrix], Optional[str]]:
    r"""Candidate update of ``X`` given step ``delta``, or ``None`` and reason of rejection."""
    A = as_homogeneous_matrix(X[:3] - delta)
    if not positive_determinant(A):
        return None, "determinant of X - Delta is not positive"
    B = as_homogeneous_matrix(X_inv[:3] + delta)
    if not positive_determinant(B):
        return None, "determinant of X^-1 + Delta is not positive"
    try:
        X_new = symmetric_update(A, B)
    except ValueError:
        return None, "no real principal square root"
    if not positive_determinant(X_new):
        return None, "determinant of update is not positive"
    return X_new, None
