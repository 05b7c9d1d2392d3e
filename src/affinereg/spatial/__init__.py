r"""Affine spatial transformation model, its parameterization, and update control points."""

from .affine import AffineTransform

from .control import ControlPoints
from .control import displacement
from .control import tetrahedron_control_points

from .params import NUM_PARAMS
from .params import check_params
from .params import jacobian_matrix
from .params import jacobian_vector
from .params import matrix_to_params
from .params import params_to_matrix


__all__ = (
    "AffineTransform",
    "ControlPoints",
    "NUM_PARAMS",
    "check_params",
    "displacement",
    "jacobian_matrix",
    "jacobian_vector",
    "matrix_to_params",
    "params_to_matrix",
    "tetrahedron_control_points",
)
