import math

import pytest
import torch
from torch import Tensor

from affinereg.core.errors import InvalidLengthError
from affinereg.spatial import check_params, jacobian_matrix, jacobian_vector
from affinereg.spatial import matrix_to_params, params_to_matrix


IDENTITY_PARAMS = [1, 0, 0, 0, 0, 1, 0, 0, 0, 0, 1, 0]


@pytest.fixture
def affine_matrix() -> Tensor:
    angle = math.radians(20)
    c, s = math.cos(angle), math.sin(angle)
    matrix = torch.tensor(
        [
            [1.1 * c, -s, 0.05, 10.0],
            [s, 0.9 * c, 0.0, -5.5],
            [0.0, 0.1, 1.2, 3.0],
            [0.0, 0.0, 0.0, 1.0],
        ],
        dtype=torch.float64,
    )
    assert torch.linalg.det(matrix) > 0
    return matrix


def test_identity_params() -> None:
    params = matrix_to_params(torch.eye(4))
    assert params.shape == (12,)
    assert params.dtype == torch.float64
    assert params.tolist() == IDENTITY_PARAMS
    matrix = params_to_matrix(params)
    assert torch.equal(matrix, torch.eye(4, dtype=torch.float64))


def test_params_matrix_round_trip(affine_matrix: Tensor) -> None:
    params = matrix_to_params(affine_matrix)
    assert params[:4].tolist() == affine_matrix[0].tolist()
    assert params[4:8].tolist() == affine_matrix[1].tolist()
    assert params[8:].tolist() == affine_matrix[2].tolist()
    assert torch.allclose(params_to_matrix(params), affine_matrix)
    assert torch.equal(matrix_to_params(params_to_matrix(params)), params)


def test_matrix_to_params_ignores_last_row(affine_matrix: Tensor) -> None:
    matrix = affine_matrix.clone()
    matrix[3] = torch.tensor([1, 2, 3, 4])
    assert torch.equal(matrix_to_params(matrix), matrix_to_params(affine_matrix))
    assert torch.equal(matrix_to_params(affine_matrix[:3]), matrix_to_params(affine_matrix))
    with pytest.raises(ValueError):
        matrix_to_params(torch.eye(3))


def test_params_to_matrix_invalid_length() -> None:
    for length in (0, 11, 13, 16):
        with pytest.raises(InvalidLengthError) as exc_info:
            params_to_matrix(torch.zeros(length))
        assert exc_info.value.length == length
        assert exc_info.value.expected == 12
    # Subclass of built-in exception type
    with pytest.raises(ValueError):
        params_to_matrix([1, 0, 0])


def test_params_to_matrix_requires_vector() -> None:
    matrix = torch.eye(4, dtype=torch.float64)[:3]
    with pytest.raises(ValueError) as exc_info:
        params_to_matrix(matrix)
    assert not isinstance(exc_info.value, InvalidLengthError)
    with pytest.raises(ValueError):
        check_params(matrix.reshape(1, 12))
    assert check_params(matrix.flatten()).shape == (12,)


def test_params_to_matrix_does_not_share_memory() -> None:
    params = torch.tensor(IDENTITY_PARAMS, dtype=torch.float64)
    matrix = params_to_matrix(params)
    matrix[0, 0] = 2
    assert params[0] == 1


def test_jacobian_vector() -> None:
    vec = jacobian_vector((1, 2, 3), (0.5, 0.5, 0.5))
    assert vec.tolist() == [0.5, 1.5, 2.5, 1.0]
    with pytest.raises(ValueError):
        jacobian_vector((1, 2), (0, 0, 0))
    with pytest.raises(ValueError):
        jacobian_vector((1, 2, 3), (0, 0))


def test_jacobian_matrix() -> None:
    jac = jacobian_matrix((1, 2, 3), (0, 0, 0))
    assert jac.shape == (3, 12)
    assert jac[0].tolist() == [1, 2, 3, 1, 0, 0, 0, 0, 0, 0, 0, 0]
    assert jac[1].tolist() == [0, 0, 0, 0, 1, 2, 3, 1, 0, 0, 0, 0]
    assert jac[2].tolist() == [0, 0, 0, 0, 0, 0, 0, 0, 1, 2, 3, 1]


def test_jacobian_matrix_of_points(affine_matrix: Tensor) -> None:
    points = torch.randn((5, 7, 3), generator=torch.Generator().manual_seed(0), dtype=torch.float64)
    centre = torch.tensor([1, -1, 2], dtype=torch.float64)
    jac = jacobian_matrix(points, centre)
    assert jac.shape == (5, 7, 3, 12)
    assert torch.allclose(jac[2, 3], jacobian_matrix(points[2, 3], centre))

    # Derivative of linear function of parameters is exact
    params = matrix_to_params(affine_matrix)
    dx = torch.randn(12, generator=torch.Generator().manual_seed(1), dtype=torch.float64)

    def transform(params: Tensor) -> Tensor:
        matrix = params_to_matrix(params)
        return (points - centre).matmul(matrix[:3, :3].t()) + matrix[:3, 3]

    expected = transform(params + dx) - transform(params)
    assert torch.allclose(jac.matmul(dx), expected)
