r"""Common types and state-less functions that operate on tensors.

Object-oriented APIs in ``affinereg.spatial`` and ``affinereg.optim`` use these functional
building blocks to realize their functionality.

"""

from .config import ConvergenceConfig
from .config import DataclassConfig
from .config import UpdateConfig

from .errors import InvalidLengthError
from .errors import UnimplementedRobustEstimateError
from .errors import UpdateDivergenceError

from .linalg import as_homogeneous_matrix
from .linalg import homogeneous_points
from .linalg import homogeneous_transform
from .linalg import is_approx
from .linalg import positive_determinant
from .linalg import sqrtm

from .tensor import as_double_tensor
from .tensor import as_tensor
from .tensor import cat_scalars
from .tensor import max_abs

from .typing import AffineMatrix
from .typing import AffineParams
from .typing import Array
from .typing import Device
from .typing import DType
from .typing import Scalar


__all__ = (
    "AffineMatrix",
    "AffineParams",
    "Array",
    "ConvergenceConfig",
    "DataclassConfig",
    "Device",
    "DType",
    "InvalidLengthError",
    "Scalar",
    "UnimplementedRobustEstimateError",
    "UpdateConfig",
    "UpdateDivergenceError",
    "as_double_tensor",
    "as_homogeneous_matrix",
    "as_tensor",
    "cat_scalars",
    "homogeneous_points",
    "homogeneous_transform",
    "is_approx",
    "max_abs",
    "positive_determinant",
    "sqrtm",
)
