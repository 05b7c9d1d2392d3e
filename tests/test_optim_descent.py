import logging

import pytest
import torch
from torch import Tensor

from affinereg.optim import AffineUpdate, DoubleExpSmoothingCheck, RobustAffineUpdate
from affinereg.optim import StopReason, gradient_descent
from affinereg.spatial import AffineTransform, matrix_to_params


@pytest.fixture
def target() -> Tensor:
    matrix = torch.tensor(
        [
            [1.05, 0.02, 0.0, 2.0],
            [0.0, 0.95, 0.0, -1.0],
            [0.0, 0.0, 1.0, 0.5],
        ],
        dtype=torch.float64,
    )
    return matrix_to_params(matrix)


def quadratic_gradient(target: Tensor):
    def gradient(params: Tensor) -> Tensor:
        return params - target

    return gradient


def test_gradient_descent_robust_update(target: Tensor) -> None:
    model = AffineTransform()
    monitor = DoubleExpSmoothingCheck(1e-7, buffer_len=4, min_iter=5)
    result = gradient_descent(
        model,
        quadratic_gradient(target),
        RobustAffineUpdate(),
        step_size=0.5,
        max_iter=500,
        monitor=monitor,
    )
    assert result.reason in (StopReason.CONVERGED, StopReason.UNCHANGED)
    assert result.iterations < 500
    assert torch.allclose(result.params, target, atol=1e-5)
    assert torch.allclose(model.get_parameter_vector(), result.params)


def test_gradient_descent_robust_update_to_reflection(target: Tensor) -> None:
    target = target.clone()
    target[0] = -0.5
    model = AffineTransform()
    result = gradient_descent(
        model, quadratic_gradient(target), RobustAffineUpdate(), step_size=0.5, max_iter=500
    )
    assert torch.allclose(result.params, target, atol=1e-5)
    assert torch.linalg.det(model.matrix()) < 0
    assert not model.has_half()


def test_gradient_descent_affine_update(target: Tensor) -> None:
    model = AffineTransform(centre=(0, 0, 0))
    result = gradient_descent(
        model, quadratic_gradient(target), AffineUpdate(), step_size=0.5, max_iter=500
    )
    assert result.reason is StopReason.UNCHANGED
    assert torch.allclose(result.params, target, atol=1e-5)
    assert torch.linalg.det(model.matrix()) > 0


def test_gradient_descent_max_iter(target: Tensor, caplog) -> None:
    model = AffineTransform()
    logger = logging.getLogger("affinereg.test")
    with caplog.at_level(logging.DEBUG, logger="affinereg.test"):
        result = gradient_descent(
            model,
            quadratic_gradient(target),
            RobustAffineUpdate(),
            step_size=0.1,
            max_iter=3,
            logger=logger,
        )
    assert result.reason is StopReason.MAX_ITER
    assert result.iterations == 3
    assert "Iteration 3" in caplog.text
    assert "stopped after 3 iterations" in caplog.text
    with pytest.raises(ValueError):
        gradient_descent(model, quadratic_gradient(target), RobustAffineUpdate(), 0.1, max_iter=0)
