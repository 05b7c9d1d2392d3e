import math

import pytest
import torch

from affinereg.core.linalg import as_homogeneous_matrix
from affinereg.core.linalg import homogeneous_transform
from affinereg.core.linalg import is_approx
from affinereg.core.linalg import positive_determinant
from affinereg.core.linalg import sqrtm


def translation_matrix(*offset: float) -> torch.Tensor:
    matrix = torch.eye(4, dtype=torch.float64)
    matrix[:3, 3] = torch.tensor(offset, dtype=torch.float64)
    return matrix


def test_as_homogeneous_matrix() -> None:
    arg = torch.arange(12, dtype=torch.float64).reshape(3, 4)
    matrix = as_homogeneous_matrix(arg)
    assert matrix.shape == (4, 4)
    assert torch.equal(matrix[:3], arg)
    assert matrix[3].tolist() == [0, 0, 0, 1]

    # Homogeneous row of sum of matrices is reset
    arg = torch.eye(4, dtype=torch.float64).mul(2)
    matrix = as_homogeneous_matrix(arg)
    assert matrix[3].tolist() == [0, 0, 0, 1]
    assert matrix is not arg

    with pytest.raises(TypeError):
        as_homogeneous_matrix([[1, 0, 0, 0]])  # type: ignore
    with pytest.raises(ValueError):
        as_homogeneous_matrix(torch.eye(3))


def test_homogeneous_transform() -> None:
    matrix = translation_matrix(1, 2, 3)
    matrix[0, 0] = 2
    points = torch.tensor([[0, 0, 0], [1, 1, 1]], dtype=torch.float64)
    result = homogeneous_transform(matrix, points)
    assert result.shape == points.shape
    assert torch.allclose(result, torch.tensor([[1, 2, 3], [3, 3, 4]], dtype=torch.float64))
    vectors = homogeneous_transform(matrix, points, vectors=True)
    assert torch.allclose(vectors, torch.tensor([[0, 0, 0], [2, 1, 1]], dtype=torch.float64))


def test_is_approx() -> None:
    a = torch.tensor([1.0, 2.0, 3.0], dtype=torch.float64)
    assert is_approx(a, a.clone())
    assert is_approx(a, a + 1e-14)
    assert not is_approx(a, a + 1e-6)
    assert not is_approx(a, torch.zeros(3, dtype=torch.float64))
    assert is_approx(torch.zeros(3), torch.zeros(3))
    assert is_approx(a, a + 1e-6, precision=1e-5)
    with pytest.raises(ValueError):
        is_approx(a, torch.zeros(4))


def test_positive_determinant() -> None:
    matrix = torch.eye(4, dtype=torch.float64)
    assert positive_determinant(matrix)
    matrix[0, 0] = -1
    assert not positive_determinant(matrix)
    matrix[0, 0] = 0
    assert not positive_determinant(matrix)


def test_sqrtm_of_translation() -> None:
    # Homogeneous matrix of translation is not diagonalizable
    matrix = translation_matrix(2, -4, 6)
    root = sqrtm(matrix)
    assert root.dtype == matrix.dtype
    assert torch.allclose(root, translation_matrix(1, -2, 3))
    assert torch.allclose(root.matmul(root), matrix)


def test_sqrtm_of_rotation() -> None:
    angle = 0.4
    c, s = math.cos(angle), math.sin(angle)
    matrix = torch.eye(4, dtype=torch.float64)
    matrix[:2, :2] = torch.tensor([[c, -s], [s, c]], dtype=torch.float64)
    root = sqrtm(matrix)
    c, s = math.cos(angle / 2), math.sin(angle / 2)
    expected = torch.eye(4, dtype=torch.float64)
    expected[:2, :2] = torch.tensor([[c, -s], [s, c]], dtype=torch.float64)
    assert torch.allclose(root, expected)


def test_sqrtm_without_real_root() -> None:
    # Rotation by 180 degrees has positive determinant, but negative real eigenvalues
    matrix = torch.diag(torch.tensor([-1, -1, 1, 1], dtype=torch.float64))
    assert positive_determinant(matrix)
    with pytest.raises(ValueError):
        sqrtm(matrix)
    with pytest.raises(ValueError):
        sqrtm(torch.ones((3, 4)))
