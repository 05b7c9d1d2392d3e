r"""Conversion between affine parameter vectors and homogeneous transformation matrices.

The 12 parameters of a 3D affine transformation are the elements of the top three rows
of its 4x4 homogeneous matrix in row-major order, i.e.,

.. code::

    [a00, a01, a02, t0, a10, a11, a12, t1, a20, a21, a22, t2]

"""

from typing import Union

import torch
from torch import Tensor

from affinereg.core.errors import InvalidLengthError
from affinereg.core.linalg import as_homogeneous_matrix
from affinereg.core.tensor import as_double_tensor
from affinereg.core.typing import AffineMatrix, AffineParams, Array


__all__ = (
    "NUM_PARAMS",
    "check_params",
    "jacobian_matrix",
    "jacobian_vector",
    "matrix_to_params",
    "params_to_matrix",
)


NUM_PARAMS = 12


def check_params(params: Union[Array, Tensor], name: str = "params") -> AffineParams:
    r"""Convert argument to 1-dimensional double tensor of affine parameters.

    Raises:
        InvalidLengthError: If ``params`` does not have exactly 12 elements.
        ValueError: If ``params`` is not a vector, e.g., a ``(3, 4)`` matrix.

    """
    params = as_double_tensor(params)
    if params.ndim > 1:
        raise ValueError(f"'{name}' must be a vector, got shape {tuple(params.shape)}")
    length = params.numel()
    if length != NUM_PARAMS:
        raise InvalidLengthError(name, length, NUM_PARAMS)
    return params.reshape(NUM_PARAMS)


def params_to_matrix(params: Union[Array, Tensor]) -> AffineMatrix:
    r"""Convert affine parameters to homogeneous transformation matrix.

    Args:
        params: Affine parameters with 12 elements.

    Returns:
        Homogeneous matrix of shape ``(4, 4)`` with last row ``[0, 0, 0, 1]``.

    Raises:
        InvalidLengthError: If ``params`` does not have exactly 12 elements.

    """
    params = check_params(params)
    return as_homogeneous_matrix(params.reshape(3, 4))


def matrix_to_params(matrix: Union[Array, Tensor]) -> AffineParams:
    r"""Convert homogeneous transformation matrix to affine parameters.

    Args:
        matrix: Homogeneous matrix of shape ``(4, 4)`` or ``(3, 4)``. The last row of a
            square matrix is ignored.

    Returns:
        Affine parameters as tensor of shape ``(12,)``.

    """
    matrix = as_double_tensor(matrix)
    if matrix.ndim != 2 or matrix.shape[1] != 4 or matrix.shape[0] not in (3, 4):
        raise ValueError(
            f"matrix_to_params() 'matrix' must have shape (3, 4) or (4, 4), got {tuple(matrix.shape)}"
        )
    return matrix[:3].reshape(NUM_PARAMS).clone()


def jacobian_vector(point: Union[Array, Tensor], centre: Union[Array, Tensor]) -> Tensor:
    r"""Derivative of transformed point coordinate with respect to one row of parameters.

    Args:
        point: Point coordinates of shape ``(3,)`` or ``(..., 3)``.
        centre: Centre of rotation of shape ``(3,)``.

    Returns:
        Tensor ``[point - centre, 1]`` of shape ``(4,)`` or ``(..., 4)``.

    """
    point = as_double_tensor(point)
    centre = as_double_tensor(centre)
    if point.ndim == 0 or point.shape[-1] != 3:
        raise ValueError("jacobian_vector() 'point' must have shape (..., 3)")
    if centre.shape != (3,):
        raise ValueError("jacobian_vector() 'centre' must have shape (3,)")
    ones = torch.ones(point.shape[:-1] + (1,), dtype=point.dtype)
    return torch.cat([point - centre, ones], dim=-1)


def jacobian_matrix(point: Union[Array, Tensor], centre: Union[Array, Tensor]) -> Tensor:
    r"""Jacobian of transformed point with respect to the 12 affine parameters.

    Args:
        point: Point coordinates of shape ``(3,)`` or ``(..., 3)``.
        centre: Centre of rotation of shape ``(3,)``.

    Returns:
        Tensor of shape ``(3, 12)`` or ``(..., 3, 12)``, where row ``i`` contains the output of
        ``jacobian_vector()`` in columns ``[4 * i, 4 * i + 4)`` and zeros elsewhere.

    """
    vec = jacobian_vector(point, centre)
    jac = torch.zeros(vec.shape[:-1] + (3, NUM_PARAMS), dtype=vec.dtype)
    for i in range(3):
        jac[..., i, 4 * i : 4 * i + 4] = vec
    return jac
