r"""Basic linear algebra functions to work with 3D homogeneous coordinate transformations."""

from typing import Optional

import numpy as np
import scipy.linalg

import torch
from torch import Tensor


__all__ = (
    "as_homogeneous_matrix",
    "homogeneous_transform",
    "homogeneous_points",
    "is_approx",
    "positive_determinant",
    "sqrtm",
)


def as_homogeneous_matrix(tensor: Tensor) -> Tensor:
    r"""Convert 3D affine transformation to square homogeneous matrix.

    Args:
        tensor: Affine transformation given by a tensor of shape ``(3, 4)`` or ``(4, 4)``.

    Returns:
        New tensor of shape ``(4, 4)`` whose last row is ``[0, 0, 0, 1]``. The bottom row of
        a given ``(4, 4)`` matrix is replaced, i.e., this function also resets the homogeneous
        row of matrices obtained by adding or subtracting homogeneous matrices.

    """
    if not isinstance(tensor, Tensor):
        raise TypeError("as_homogeneous_matrix() 'tensor' must be torch.Tensor")
    if tensor.ndim != 2 or tensor.shape[1] != 4 or tensor.shape[0] not in (3, 4):
        raise ValueError(
            f"as_homogeneous_matrix() 'tensor' must have shape (3, 4) or (4, 4), got {tuple(tensor.shape)}"
        )
    matrix = torch.zeros((4, 4), dtype=tensor.dtype, device=tensor.device)
    matrix[:3] = tensor[:3]
    matrix[3, 3] = 1
    return matrix


def homogeneous_points(points: Tensor) -> Tensor:
    r"""Append homogeneous coordinate of value 1 to points of shape ``(..., 3)``."""
    if points.ndim == 0 or points.shape[-1] != 3:
        raise ValueError("homogeneous_points() 'points' must have shape (..., 3)")
    ones = torch.ones(points.shape[:-1] + (1,), dtype=points.dtype, device=points.device)
    return torch.cat([points, ones], dim=-1)


def homogeneous_transform(transform: Tensor, points: Tensor, vectors: bool = False) -> Tensor:
    r"""Transform points or vectors by given homogeneous transformation.

    Args:
        transform: Homogeneous matrix of shape ``(3, 4)`` or ``(4, 4)``.
        points: Tensor of shape ``(..., 3)`` with point coordinates ``(x, y, z)``.
        vectors: Whether ``points`` is tensor of vectors. If ``True``, only the linear
            component of the given ``transform`` is applied without any translation.

    Returns:
        Tensor of transformed points/vectors with the same shape as the input ``points``.

    """
    if transform.ndim != 2 or transform.shape[1] != 4 or transform.shape[0] not in (3, 4):
        raise ValueError("homogeneous_transform() 'transform' must have shape (3, 4) or (4, 4)")
    if points.ndim == 0 or points.shape[-1] != 3:
        raise ValueError("homogeneous_transform() 'points' must have shape (..., 3)")
    if torch.is_floating_point(points):
        transform = transform.type(points.dtype)
    else:
        points = points.type(transform.dtype)
    result = points.matmul(transform[:3, :3].transpose(0, 1))
    if not vectors:
        result = result + transform[:3, 3]
    return result


def is_approx(a: Tensor, b: Tensor, precision: float = 1e-12) -> bool:
    r"""Fuzzy comparison of two tensors relative to their norm.

    Two tensors are considered approximately equal if ``||a - b|| <= precision * min(||a||, ||b||)``,
    where ``||.||`` is the Frobenius norm. Unlike ``torch.allclose()``, this criterion is not
    element-wise and therefore independent of the scale of individual elements, but it
    requires exact equality when compared to an all-zero tensor.

    """
    if a.shape != b.shape:
        raise ValueError("is_approx() 'a' and 'b' must have identical shape")
    diff = torch.linalg.vector_norm(a - b)
    norm = torch.min(torch.linalg.vector_norm(a), torch.linalg.vector_norm(b))
    return bool(diff <= precision * norm)


def positive_determinant(matrix: Tensor) -> bool:
    r"""Whether square matrix has strictly positive determinant."""
    return bool(torch.linalg.det(matrix) > 0)


def sqrtm(matrix: Tensor, rtol: Optional[float] = 1e-8) -> Tensor:
    r"""Principal square root of a real square matrix.

    The square root is computed by ``scipy.linalg.sqrtm()`` using a Schur decomposition,
    which unlike an eigendecomposition also handles defective matrices, e.g., a homogeneous
    matrix of a pure translation.

    Args:
        matrix: Real square matrix without eigenvalues on the closed negative real axis.
        rtol: Relative tolerance of ``root @ root`` reproducing the input matrix. If ``None``,
            the result is not verified.

    Returns:
        Real principal square root with same data type and device as ``matrix``.

    Raises:
        ValueError: If the principal square root is not real or not finite, or the
            square of the computed root deviates from the input matrix.

    """
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise ValueError("sqrtm() 'matrix' must be square matrix")
    arr = matrix.detach().cpu().numpy().astype(np.float64)
    root = scipy.linalg.sqrtm(arr)
    if isinstance(root, tuple):
        root = root[0]
    if np.iscomplexobj(root):
        imag = np.abs(root.imag).max()
        if imag > 1e-10 * max(1.0, np.abs(root.real).max()):
            raise ValueError("sqrtm() 'matrix' has no real principal square root")
        root = root.real
    if not np.all(np.isfinite(root)):
        raise ValueError("sqrtm() 'matrix' square root is not finite")
    result = torch.from_numpy(np.ascontiguousarray(root)).to(dtype=matrix.dtype, device=matrix.device)
    if rtol is not None and not is_approx(result.matmul(result), matrix, precision=rtol):
        raise ValueError("sqrtm() 'matrix' square root is inaccurate")
    return result
