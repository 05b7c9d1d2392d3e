r"""Affine transformation model whose parameters are updated by a gradient descent optimizer."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence, Tuple, Union

import torch
from torch import Tensor
from torch.nn import Module

from affinereg.core.errors import UnimplementedRobustEstimateError
from affinereg.core.linalg import as_homogeneous_matrix, homogeneous_transform, sqrtm
from affinereg.core.tensor import as_double_tensor, cat_scalars
from affinereg.core.typing import AffineMatrix, AffineParams, Array

from .params import check_params, jacobian_matrix, matrix_to_params, params_to_matrix


class AffineTransform(Module):
    r"""Three-dimensional affine transformation with centre of rotation.

    The transformation is represented by a 4x4 homogeneous matrix whose top three rows are the
    12 parameters exposed to the optimizer. The centre of rotation should be set prior to
    registration to the centre of the target image, and only enters the Jacobian of transformed
    points with respect to the parameters.

    Besides the transformation matrix, its inverse and the half-space transformations, i.e.,
    the principal square root of the matrix and its inverse, are cached. The latter map both
    images into a common midway space for symmetric registration.

    Current estimates can be persisted and restored using ``state_dict()`` and ``load_state_dict()``.

    """

    def __init__(
        self: AffineTransform,
        params: Optional[Union[Array, Tensor]] = None,
        centre: Optional[Union[Array, Tensor]] = None,
    ) -> None:
        r"""Initialize transformation.

        Args:
            params: Initial affine parameters. If ``None``, the identity transformation is used.
            centre: Centre of rotation. If ``None``, the origin is used.

        """
        super().__init__()
        eye = torch.eye(4, dtype=torch.float64)
        self.register_buffer("trafo", eye.clone(), persistent=True)
        self.register_buffer("centre_point", torch.zeros(3, dtype=torch.float64), persistent=True)
        self.register_buffer("trafo_inverse", eye.clone(), persistent=False)
        self.register_buffer("trafo_half", eye.clone(), persistent=False)
        self.register_buffer("trafo_half_inverse", eye.clone(), persistent=False)
        if params is not None:
            self.set_parameter_vector(params)
        if centre is not None:
            self.centre_(centre)

    def get_parameter_vector(self: AffineTransform) -> AffineParams:
        r"""Get affine parameters of current transformation."""
        return matrix_to_params(self.trafo)

    @torch.no_grad()
    def set_parameter_vector(self: AffineTransform, params: Union[Array, Tensor]) -> AffineTransform:
        r"""Set current transformation from affine parameters.

        Raises:
            InvalidLengthError: If ``params`` does not have exactly 12 elements.
            ValueError: If the resulting matrix is not finite or not invertible.

        """
        matrix = params_to_matrix(check_params(params))
        return self.matrix_(matrix)

    def matrix(self: AffineTransform) -> AffineMatrix:
        r"""Get homogeneous transformation matrix of shape ``(4, 4)``."""
        return self.trafo.clone()

    @torch.no_grad()
    def matrix_(self: AffineTransform, arg: Union[Array, Tensor]) -> AffineTransform:
        r"""Set homogeneous transformation matrix of shape ``(3, 4)`` or ``(4, 4)``.

        Matrices without a real principal square root, e.g., a rotation by pi or a reflection,
        are valid transformations. Only their half-space transformations are unavailable.

        """
        matrix, inverse, half, half_inverse = self._derived_matrices(arg)
        self.trafo.copy_(matrix)
        self.trafo_inverse.copy_(inverse)
        self.trafo_half.copy_(half)
        self.trafo_half_inverse.copy_(half_inverse)
        return self

    def _derived_matrices(
        self: AffineTransform, arg: Union[Array, Tensor]
    ) -> Tuple[Tensor, Tensor, Tensor, Tensor]:
        r"""Validate matrix and compute its inverse and half-space transformations."""
        matrix = as_homogeneous_matrix(as_double_tensor(arg))
        if not torch.isfinite(matrix).all():
            raise ValueError(f"{type(self).__name__}.matrix() 'arg' must not be nan or inf")
        if torch.linalg.det(matrix) == 0:
            raise ValueError(f"{type(self).__name__}.matrix() 'arg' must be invertible")
        inverse = torch.linalg.inv(matrix)
        try:
            half = sqrtm(matrix)
        except ValueError:
            half = torch.full_like(matrix, float("nan"))
            half_inverse = half.clone()
        else:
            half_inverse = torch.linalg.inv(half)
        return matrix, inverse, half, half_inverse

    def load_state_dict(self, state_dict: Mapping[str, Any], strict: bool = True, **kwargs):
        r"""Restore transformation and recompute cached derived matrices.

        The transformation is validated before any buffer is modified.

        """
        if "trafo" in state_dict:
            self._derived_matrices(state_dict["trafo"])
        try:
            return super().load_state_dict(state_dict, strict=strict, **kwargs)
        finally:
            self.matrix_(self.trafo.clone())

    def centre(self: AffineTransform) -> Tensor:
        r"""Get centre of rotation."""
        return self.centre_point.clone()

    @torch.no_grad()
    def centre_(self: AffineTransform, arg: Union[Array, Tensor]) -> AffineTransform:
        r"""Set centre of rotation without modifying the transformation matrix."""
        centre = cat_scalars(as_double_tensor(arg), num=3)
        self.centre_point.copy_(centre)
        return self

    def linear(self: AffineTransform) -> Tensor:
        r"""Get linear component, i.e., rotation, scaling, and shearing."""
        return self.trafo[:3, :3].clone()

    def translation(self: AffineTransform) -> Tensor:
        r"""Get translation component."""
        return self.trafo[:3, 3].clone()

    def inverse(self: AffineTransform) -> AffineMatrix:
        r"""Get homogeneous matrix of inverse transformation."""
        return self.trafo_inverse.clone()

    def has_half(self: AffineTransform) -> bool:
        r"""Whether the current transformation has a real principal square root."""
        return bool(torch.isfinite(self.trafo_half).all())

    def half(self: AffineTransform) -> AffineMatrix:
        r"""Get transformation from the first image space to the midway space.

        Raises:
            ValueError: If the current transformation has no real principal square root.

        """
        if not self.has_half():
            raise ValueError(f"{type(self).__name__}.half() transformation has no real square root")
        return self.trafo_half.clone()

    def half_inverse(self: AffineTransform) -> AffineMatrix:
        r"""Get transformation from the second image space to the midway space.

        Raises:
            ValueError: If the current transformation has no real principal square root.

        """
        if not self.has_half():
            raise ValueError(
                f"{type(self).__name__}.half_inverse() transformation has no real square root"
            )
        return self.trafo_half_inverse.clone()

    def get_jacobian(self: AffineTransform, point: Union[Array, Tensor]) -> Tensor:
        r"""Jacobian of transformed point(s) with respect to the affine parameters.

        Args:
            point: Point coordinates of shape ``(3,)`` or ``(..., 3)``.

        Returns:
            Jacobian matrix of shape ``(3, 12)`` or ``(..., 3, 12)``.

        """
        return jacobian_matrix(point, self.centre_point)

    def forward(self: AffineTransform, points: Tensor, vectors: bool = False) -> Tensor:
        r"""Transform points of shape ``(..., 3)``."""
        return homogeneous_transform(self.trafo, points, vectors=vectors)

    def robust_estimate(
        self: AffineTransform,
        gradient: Tensor,
        grad_estimates: Sequence[Tensor],
        control_points: Tensor,
        weiszfeld_precision: float = 1e-6,
        weiszfeld_iterations: int = 1000,
        learning_rate: float = 1.0,
    ) -> bool:
        r"""Combine gradient estimates using outlier-robust geometric median.

        Raises:
            UnimplementedRobustEstimateError: Always.

        """
        raise UnimplementedRobustEstimateError(f"{type(self).__name__}.robust_estimate")

    def extra_repr(self: AffineTransform) -> str:
        r"""Print current transformation."""
        return f"centre={self.centre_point.tolist()!r}, matrix={self.trafo[:3].tolist()!r}"
