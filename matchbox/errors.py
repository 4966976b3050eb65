"""
Shape-level exceptions raised by tensor operations.

Only tensor-algebra violations live here. Failures coming from the array
backend itself (e.g. a flat buffer that does not fit the requested shape,
or a CUDA request without CuPy) propagate unchanged.
"""
from typing import Sequence, Tuple


def _fmt_shape(shape: Sequence[int]) -> str:
    return "[" + ", ".join(str(int(d)) for d in shape) + "]"


class TensorError(ValueError):
    """Base class for shape and axis errors raised by :class:``Tensor`` operations."""


class ShapeMismatchError(TensorError):
    """
    Raised when the operand shapes of a binary operation are incompatible.

    Element-wise operations require identical shapes; matrix multiplication
    requires the contracted dimensions to agree.

    Attributes
    ----------
    a_shape : tuple of int
        Shape of the left operand (``self``).
    b_shape : tuple of int
        Shape of the right operand (``other``).
    op : str
        Name of the operation that rejected the operands (e.g. ``"Add"``).
    """

    def __init__(self, a_shape: Sequence[int], b_shape: Sequence[int], op: str) -> None:
        self.a_shape: Tuple[int, ...] = tuple(a_shape)
        self.b_shape: Tuple[int, ...] = tuple(b_shape)
        self.op = op
        super().__init__(
            f"Shape mismatch error during [{op}] operation: shape {_fmt_shape(self.a_shape)} "
            f"of self does not match shape {_fmt_shape(self.b_shape)} of other"
        )


class BroadcastError(TensorError):
    """
    Raised when a shape cannot be broadcast into a requested target shape.

    Attributes
    ----------
    got_shape : tuple of int
        The source shape.
    expected_shape : tuple of int
        The target shape the source was supposed to broadcast into.
    """

    def __init__(self, got_shape: Sequence[int], expected_shape: Sequence[int]) -> None:
        self.got_shape: Tuple[int, ...] = tuple(got_shape)
        self.expected_shape: Tuple[int, ...] = tuple(expected_shape)
        super().__init__(
            f"Broadcast error: could not broadcast shape {_fmt_shape(self.got_shape)} "
            f"into shape {_fmt_shape(self.expected_shape)}"
        )


class InvalidAxisError(TensorError):
    """
    Raised when reduction or permutation axes are out of range, repeated,
    or (for permutations) do not cover every dimension exactly once.

    Attributes
    ----------
    axes : tuple of int
        The axes as given by the caller.
    ndim : int
        Number of dimensions of the tensor the axes were applied to.
    op : str
        Name of the operation that rejected the axes.
    """

    def __init__(self, axes: Sequence[int], ndim: int, op: str) -> None:
        self.axes: Tuple[int, ...] = tuple(axes)
        self.ndim = ndim
        self.op = op
        super().__init__(
            f"Invalid axes {list(self.axes)} for [{op}] operation on a tensor with {ndim} dimension(s)"
        )
