r"""Low-level tensor utility functions."""

from typing import Optional, Union

import torch
from torch import Tensor

from .typing import Array, Device, DType, Scalar


def as_tensor(
    arg: Union[Scalar, Array], dtype: Optional[DType] = None, device: Optional[Device] = None
) -> Tensor:
    r"""Create tensor from array if argument is not of type torch.Tensor.

    Unlike ``torch.as_tensor()``, this function preserves the tensor device if ``device=None``.

    """
    if device is None and isinstance(arg, Tensor):
        device = arg.device
    return torch.as_tensor(arg, dtype=dtype, device=device)  # type: ignore


def as_double_tensor(arg: Union[Scalar, Array]) -> Tensor:
    r"""Create detached tensor with double precision from argument.

    All transformation parameters and matrices are processed in double precision.
    The result never shares memory with a given input tensor, so that callers may
    modify the returned tensor in place without side effects.

    """
    if isinstance(arg, Tensor):
        return arg.detach().to(dtype=torch.float64, copy=True)
    return torch.tensor(arg, dtype=torch.float64)


def cat_scalars(
    arg: Union[Scalar, Array],
    *args: Scalar,
    num: int = 0,
    dtype: Optional[DType] = None,
    device: Optional[Device] = None,
) -> Tensor:
    r"""Join arguments into single 1-dimensional tensor.

    Args:
        arg: Either a single scalar or sequence of scalars.
        args: Additional scalars. If ``arg`` is a sequence, ``args`` must be empty.
        num: Number of expected scalar values. If a single scalar ``arg`` is given,
            it is repeated ``num`` times to create a 1-dimensional array. If ``num=0``,
            the length of the returned array corresponds to the number of given scalars.
        dtype: Data type of output tensor.
        device: Device on which to store tensor.

    Returns:
        Scalar arguments joined into a 1-dimensional tensor.

    """
    if args:
        if isinstance(arg, (tuple, list)) or isinstance(arg, Tensor):
            raise ValueError("arg and args must either be all scalars, or args empty")
        arg = torch.tensor((arg,) + args, dtype=dtype, device=device)
    else:
        arg = as_tensor(arg, dtype=dtype, device=device)
    if arg.ndim == 0:
        arg = arg.unsqueeze(0)
    if arg.ndim != 1:
        if num > 0:
            raise ValueError(f"Expected one scalar, a sequence of length {num}, or {num} args")
        raise ValueError("Expected one scalar, a sequence of scalars, or multiple scalars")
    if num > 0:
        if len(arg) == 1:
            arg = arg.repeat(num)
        elif len(arg) != num:
            raise ValueError(f"Expected one scalar, a sequence of length {num}, or {num} args")
    return arg


def max_abs(tensor: Tensor) -> float:
    r"""Maximum absolute value of tensor elements as Python float."""
    if tensor.numel() == 0:
        return 0.0
    return float(tensor.abs().max())
