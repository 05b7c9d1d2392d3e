r"""Control points which bound the per-iteration displacement of an affine update."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

import torch
from torch import Tensor

from affinereg.core.linalg import homogeneous_points
from affinereg.core.tensor import as_double_tensor, cat_scalars
from affinereg.core.typing import Array


__all__ = (
    "ControlPoints",
    "displacement",
    "tetrahedron_control_points",
)


# Tetrahedron vertices inscribed in the cube [-1, 1]^3
TETRAHEDRON = ((1, -1, -1), (-1, 1, -1), (-1, -1, 1), (1, 1, 1))


@dataclass(frozen=True, eq=False)
class ControlPoints:
    r"""Homogeneous control points with coherence and stop criterion lengths.

    Attributes:
        points: Homogeneous coordinates of 4 control points given by the columns of a
            tensor of shape ``(4, 4)``. The last row must contain only ones.
        coherence_distance: Maximum absolute displacement of any control point along each
            axis by a single update.
        stop_length: Displacement in voxel units along each axis below which the update
            is considered converged.
        voxel_spacing: Voxel size along each axis used to convert world displacements
            to voxel units.

    """

    points: Tensor
    coherence_distance: Tensor
    stop_length: Tensor
    voxel_spacing: Tensor
    reciprocal_spacing: Tensor = field(init=False, repr=False)

    def __post_init__(self) -> None:
        points = as_double_tensor(self.points)
        if points.shape != (4, 4):
            raise ValueError("ControlPoints() 'points' must have shape (4, 4)")
        if not torch.allclose(points[3], torch.ones(4, dtype=points.dtype)):
            raise ValueError("ControlPoints() 'points' must be homogeneous with last row of ones")
        vectors = {}
        for name in ("coherence_distance", "stop_length", "voxel_spacing"):
            value = cat_scalars(as_double_tensor(getattr(self, name)), num=3)
            if value.lt(0).any():
                raise ValueError(f"ControlPoints() '{name}' must be non-negative")
            vectors[name] = value
        if vectors["voxel_spacing"].eq(0).any():
            raise ValueError("ControlPoints() 'voxel_spacing' must be positive")
        object.__setattr__(self, "points", points)
        for name, value in vectors.items():
            object.__setattr__(self, name, value)
        object.__setattr__(self, "reciprocal_spacing", vectors["voxel_spacing"].reciprocal())

    def displacement(self, matrix: Tensor, reference: Tensor) -> Tensor:
        r"""Absolute displacement of control points by ``matrix`` relative to ``reference``."""
        return displacement(matrix, reference, self.points)

    def coherent(self, matrix: Tensor, reference: Tensor) -> bool:
        r"""Whether no control point moves farther than the coherence distance along any axis."""
        diff = self.displacement(matrix, reference)
        return bool(diff.sub(self.coherence_distance.unsqueeze(1)).max() <= 0)

    def converged(self, matrix: Tensor, reference: Tensor) -> bool:
        r"""Whether displacement in voxel units is at most the stop length for all points."""
        diff = self.displacement(matrix, reference)
        diff = diff.mul(self.reciprocal_spacing.unsqueeze(1))
        return bool(diff.sub(self.stop_length.unsqueeze(1)).max() <= 0)


def displacement(matrix: Tensor, reference: Tensor, points: Tensor) -> Tensor:
    r"""Absolute displacement of homogeneous points.

    Args:
        matrix: Homogeneous matrix of shape ``(4, 4)`` which maps the ``points``.
        reference: Homogeneous matrix of shape ``(4, 4)`` of reference transformation.
        points: Homogeneous point coordinates as columns of tensor of shape ``(4, N)``.

    Returns:
        Tensor ``|matrix @ points - reference @ points|`` of shape ``(3, N)``.

    """
    diff = matrix.matmul(points) - reference.matmul(points)
    return diff[:3].abs()


def tetrahedron_control_points(
    centre: Union[Array, Tensor], extent: Union[float, Array, Tensor]
) -> Tensor:
    r"""Control points at the vertices of a tetrahedron inscribed in a box.

    Args:
        centre: Centre point of box, usually the centre of the target image in world units.
        extent: Side lengths of box, usually the extent of the target image in world units.

    Returns:
        Homogeneous coordinates of 4 control points as columns of tensor of shape ``(4, 4)``.

    """
    centre = cat_scalars(as_double_tensor(centre), num=3)
    extent = cat_scalars(as_double_tensor(extent), num=3)
    vertices = torch.tensor(TETRAHEDRON, dtype=torch.float64)
    points = vertices.mul(extent.div(2)).add(centre)
    return homogeneous_points(points).t().contiguous()
