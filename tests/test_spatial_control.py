import pytest
import torch

from affinereg.spatial import ControlPoints
from affinereg.spatial import displacement
from affinereg.spatial import tetrahedron_control_points


def test_tetrahedron_control_points() -> None:
    centre = torch.tensor([10, 20, 30], dtype=torch.float64)
    points = tetrahedron_control_points(centre, (100, 50, 20))
    assert points.shape == (4, 4)
    assert points.dtype == torch.float64
    assert points[3].tolist() == [1, 1, 1, 1]
    assert torch.allclose(points[:3].mean(dim=1), centre)
    assert points[:3, 0].tolist() == [60, -5, 20]
    assert points[:3, 3].tolist() == [60, 45, 40]


def test_displacement() -> None:
    points = tetrahedron_control_points(0, 2)
    reference = torch.eye(4, dtype=torch.float64)
    matrix = reference.clone()
    matrix[:3, 3] = torch.tensor([0.5, -1, 0])
    diff = displacement(matrix, reference, points)
    assert diff.shape == (3, 4)
    assert torch.allclose(diff[0], torch.full((4,), 0.5, dtype=torch.float64))
    assert torch.allclose(diff[1], torch.ones(4, dtype=torch.float64))
    assert torch.allclose(diff[2], torch.zeros(4, dtype=torch.float64))


def test_control_points_criteria() -> None:
    cp = ControlPoints(
        points=tetrahedron_control_points(0, 10),
        coherence_distance=1.0,
        stop_length=(0.5, 0.5, 0.5),
        voxel_spacing=(2, 2, 2),
    )
    assert cp.coherence_distance.tolist() == [1, 1, 1]
    assert cp.reciprocal_spacing.tolist() == [0.5, 0.5, 0.5]
    reference = torch.eye(4, dtype=torch.float64)
    assert cp.coherent(reference, reference)
    assert cp.converged(reference, reference)

    matrix = reference.clone()
    matrix[0, 3] = 0.8  # 0.4 voxels
    assert cp.coherent(matrix, reference)
    assert cp.converged(matrix, reference)

    matrix[0, 3] = 1.2
    assert not cp.coherent(matrix, reference)
    assert not cp.converged(matrix, reference)


def test_control_points_validation() -> None:
    points = tetrahedron_control_points(0, 10)
    with pytest.raises(ValueError):
        ControlPoints(points[:3], 1, 1, 1)
    invalid = points.clone()
    invalid[3, 0] = 0
    with pytest.raises(ValueError):
        ControlPoints(invalid, 1, 1, 1)
    with pytest.raises(ValueError):
        ControlPoints(points, -1, 1, 1)
    with pytest.raises(ValueError):
        ControlPoints(points, 1, 1, (1, 0, 1))
    with pytest.raises(ValueError):
        ControlPoints(points, (1, 1), 1, 1)
