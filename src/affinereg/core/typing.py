r"""Type annotations used throughout the package."""

from typing import Sequence, Union

import torch

from torch import Tensor


Device = torch.device
DType = torch.dtype
Scalar = Union[int, float, Tensor]
Array = Union[Sequence[Scalar], Tensor]

# Flattened top three rows of a 4x4 homogeneous matrix in row-major order
AffineParams = Tensor
# 4x4 homogeneous matrix with last row [0, 0, 0, 1]
AffineMatrix = Tensor
