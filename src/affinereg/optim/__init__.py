r"""Update rules and convergence checks for gradient descent of affine parameters."""

from .convergence import DoubleExpSmoothingCheck
from .convergence import SmoothingState

from .descent import DescentResult
from .descent import StopReason
from .descent import gradient_descent

from .update import AffineStepUpdate
from .update import AffineUpdate
from .update import RobustAffineUpdate
from .update import symmetric_update


__all__ = (
    "AffineStepUpdate",
    "AffineUpdate",
    "DescentResult",
    "DoubleExpSmoothingCheck",
    "RobustAffineUpdate",
    "SmoothingState",
    "StopReason",
    "gradient_descent",
    "symmetric_update",
)
