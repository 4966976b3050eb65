import logging
import math
import numbers
from typing import Any, Dict, Iterator, List, Optional, Literal, Sequence, TextIO, Tuple, Union

import numpy as np
try:
    import cupy as cp
    _HAS_CUPY = True
except Exception:
    cp = None
    _HAS_CUPY = False

from matchbox.errors import BroadcastError, InvalidAxisError, ShapeMismatchError
from matchbox.ids import IdAllocator, default_allocator
from matchbox.op import Operator, OpKind

logger = logging.getLogger(__name__)


def _is_cupy_array(x: Any) -> bool:
    """
    Return whether ``x`` is a CuPy ndarray.

    Safe when CuPy is not installed: it short-circuits on ``_HAS_CUPY``.
    """
    return _HAS_CUPY and hasattr(cp, "ndarray") and isinstance(x, cp.ndarray)

_DeviceStr = Literal["cpu", "cuda"]
def _normalize_device(device: Optional[Union[str, _DeviceStr]]) -> Optional[_DeviceStr]:
    """
    Normalize a device specifier to 'cpu', 'cuda', or None.

    Parameters
    ----------
    device : {None, 'cpu', 'cuda', str}
        Device specifier. If a string starts with 'cuda' (e.g. 'cuda', 'cuda:0'),
        it is normalized to 'cuda'. 'cpu' is preserved. None is returned as None.

    Returns
    -------
    {'cpu', 'cuda', None}
        Normalized device identifier.

    Raises
    ------
    ValueError
        If ``device`` is a string that is neither 'cpu' nor startswith 'cuda'.

    Examples
    --------
    >>> _normalize_device('cuda:1')
    'cuda'
    >>> _normalize_device('gpu')
    Traceback (most recent call last):
        ...
    ValueError: Unknown device spec: 'gpu'
    """
    if device is None:
        return None
    if isinstance(device, str):
        dev = device.lower()
        if dev.startswith("cuda"):
            return "cuda"
        if dev == "cpu":
            return "cpu"
    raise ValueError(f"Unknown device spec: {device!r}")

def _backend_for(device: Optional[str]) -> Any:
    """Return the array module (``numpy`` or ``cupy``) for ``device``; None means CPU."""
    dev = _normalize_device(device) or "cpu"
    if dev == "cuda":
        if not _HAS_CUPY:
            raise RuntimeError("CUDA requested but CuPy is not installed/available.")
        return cp
    return np

def _as_shape(shape: Sequence[Any]) -> Tuple[int, ...]:
    """
    Turn variadic or sequence shape arguments into a tuple of ints.

    Accepts both ``f(2, 3)`` and ``f((2, 3))`` call styles. Negative sizes
    raise ``ValueError``.
    """
    if len(shape) == 1 and isinstance(shape[0], (tuple, list)):
        shape = shape[0]
    dims = tuple(int(d) for d in shape)
    if any(d < 0 for d in dims):
        raise ValueError(f"Shape dimensions must be non-negative, got {list(dims)}")
    return dims

def _normalize_axes(
    axes: Optional[Union[int, Sequence[int]]],
    ndim: int,
    op: str,
) -> Tuple[int, ...]:
    """
    Normalize axis arguments to a tuple of non-negative, distinct axes.

    ``None`` selects every axis. Each axis must lie in ``[-ndim, ndim)``.

    Raises
    ------
    InvalidAxisError
        If an axis is out of range or appears twice.
    """
    if axes is None:
        return tuple(range(ndim))
    given = (axes,) if isinstance(axes, numbers.Integral) else tuple(axes)

    normalized = []
    for a in given:
        a = int(a)
        if not -ndim <= a < ndim:
            logger.debug("%s rejected: axis %d out of range for %d dim(s)", op, a, ndim)
            raise InvalidAxisError(given, ndim, op)
        a = a % ndim
        if a in normalized:
            logger.debug("%s rejected: axis %d repeated in %s", op, a, list(given))
            raise InvalidAxisError(given, ndim, op)
        normalized.append(a)
    return tuple(normalized)

def _check_broadcastable(src: Tuple[int, ...], target: Tuple[int, ...]) -> None:
    """
    Validate that ``src`` broadcasts into ``target`` under NumPy rules.

    Shapes are aligned on the right; every source dim must equal the
    target dim or be 1, and the target may not have fewer dims.
    """
    if len(src) > len(target):
        raise BroadcastError(src, target)
    for s, t in zip(reversed(src), reversed(target)):
        if s != t and s != 1:
            raise BroadcastError(src, target)

def _check_batch_dims(a: Tuple[int, ...], b: Tuple[int, ...]) -> None:
    """Validate that two batch shapes broadcast against each other."""
    for da, db in zip(reversed(a), reversed(b)):
        if da != db and da != 1 and db != 1:
            logger.debug("MatMul rejected: batch dims %s and %s do not broadcast", a, b)
            raise BroadcastError(a, b)

_ELEMENTWISE_KERNELS: Dict[OpKind, str] = {
    OpKind.ADD: "add",
    OpKind.SUB: "subtract",
    OpKind.MUL: "multiply",
    OpKind.DIV: "divide",
}

_grad_enabled = True
"""bool: Global flag indicating whether gradient tracking is enabled.

Toggled by the :class:``no_grad`` and :class:``enable_grad`` context managers.
While it is ``False``, every newly constructed tensor gets
``requires_grad=False``. Operator tags are still recorded.
"""

class no_grad:
    """
    Context manager that temporarily disables gradient tracking.

    Tensors created inside the block (leaves and derived tensors alike) have
    ``requires_grad=False``. The computation graph itself is still recorded,
    so :meth:``Tensor.print_comp_tree`` keeps working.

    Examples
    --------
    >>> x = Tensor.randn(2, 3, requires_grad=True)
    >>> with no_grad():
    ...     y = x.add(x)
    >>> y.requires_grad
    False

    Notes
    -----
    It is safe to nest ``no_grad`` contexts; the previous state of
    ``_grad_enabled`` is restored upon exit.
    """
    def __enter__(self):
        global _grad_enabled
        self.prev = _grad_enabled
        _grad_enabled = False

    def __exit__(self, *args):
        global _grad_enabled
        _grad_enabled = self.prev

class enable_grad:
    """Context manager that re-enables gradient tracking, e.g. inside a ``no_grad`` block."""
    def __enter__(self):
        global _grad_enabled
        self.prev = _grad_enabled
        _grad_enabled = True

    def __exit__(self, *args):
        global _grad_enabled
        _grad_enabled = self.prev

def is_grad_enabled() -> bool:
    """Return whether gradient tracking is currently enabled."""
    return _grad_enabled

class Tensor:
    """
    An immutable multi-dimensional array that records how it was produced.

    A tensor wraps a NumPy or CuPy array (selected per instance), a gradient
    flag, a unique integer id and an optional :class:``Operator`` describing
    the operation that produced it. Operations never modify their inputs;
    they validate shapes, compute eagerly on the array backend and return a
    new tensor whose operator references the inputs. The tensors and their
    operators form a directed acyclic computation graph.

    Notes
    -----
    - Backend is chosen per tensor: CPU uses NumPy, CUDA uses CuPy.
    - DType is normalized to ``float32`` on construction.
    - Payloads are copied on construction. NumPy payloads are additionally
      marked read-only.
    - Tensors compare and hash by identity, so they can key dicts and sets.
    """
    # ndarray operators defer to the reflected Tensor operators
    __array_ufunc__ = None

    def __init__(
        self,
        data: Any,
        op: Optional[Operator] = None,
        requires_grad: bool = False,
        device: Optional[str] = None,
        id_allocator: Optional[IdAllocator] = None,
    ) -> None:
        """
        Construct a tensor from array-like data and optional provenance.

        This is the universal constructor; every operation finalizes its
        result through it.

        Parameters
        ----------
        data : Any
            Array-like input (Python list/tuple, ``numpy.ndarray``, or
            ``cupy.ndarray``). If ``device`` is not provided, the backend is
            inferred from ``data``: CuPy if it is a CuPy array, otherwise NumPy.
            The data is copied and converted to ``float32``.
        op : Operator, optional
            How this tensor was produced. ``None`` makes a leaf tensor.
        requires_grad : bool, default False
            Whether a future backward pass should track this tensor. Forced to
            False while grad mode is disabled (see :class:``no_grad``).
        device : {'cpu', 'cuda', 'cuda:0', ...} or None, optional
            Desired device. If None, the device is inferred from ``data``.
        id_allocator : IdAllocator, optional
            Source of the tensor id. Defaults to the allocator of the first
            operand of ``op``, or the process-wide default allocator for leaves.

        Raises
        ------
        RuntimeError
            If ``device`` requests CUDA but CuPy is not installed/available.
        ValueError
            If ``device`` is not a known device spec.

        Examples
        --------
        >>> Tensor([1, 2, 3])                        # CPU by default
        >>> Tensor(np.ones((2,3), np.float64))       # cast to float32
        >>> Tensor([1,2,3], requires_grad=True)
        """
        dev = _normalize_device(device)

        if dev == "cuda":
            backend = _backend_for(dev)
            data = cp.array(data, dtype=cp.float32)
        elif dev == "cpu":
            backend = np
            if _is_cupy_array(data):
                data = cp.asnumpy(data)
            data = np.array(data, dtype=np.float32)
        else:
            if _is_cupy_array(data):
                backend = cp
                data = data.astype(cp.float32)
            else:
                backend = np
                data = np.array(data, dtype=np.float32)

        if backend is np:
            data.flags.writeable = False

        if id_allocator is None:
            id_allocator = op.operands[0]._ids if op is not None else default_allocator

        self._backend = backend
        self._data = data
        self._requires_grad = bool(requires_grad) and _grad_enabled
        self._op = op
        self._ids = id_allocator
        self._id = id_allocator.next_id()

    @property
    def id(self) -> int:
        """int: Unique identity assigned at construction."""
        return self._id

    @property
    def data(self) -> Any:
        """numpy.ndarray or cupy.ndarray: The underlying ``float32`` payload (read-only)."""
        return self._data

    @property
    def op(self) -> Optional[Operator]:
        """Operator or None: Provenance of this tensor; ``None`` for leaves."""
        return self._op

    @property
    def requires_grad(self) -> bool:
        """bool: Whether a future backward pass should track this tensor."""
        return self._requires_grad

    @property
    def is_leaf(self) -> bool:
        """bool: True if the tensor was created from data rather than by an operation."""
        return self._op is None

    @property
    def shape(self) -> Tuple[int, ...]:
        """tuple of int: The tensor's shape."""
        return tuple(self._data.shape)

    @property
    def dtype(self) -> Union[np.dtype, str]:
        """numpy.dtype: The data type of the tensor."""
        return self._data.dtype

    @property
    def ndim(self) -> int:
        """int: The number of dimensions of the tensor."""
        return self._data.ndim

    @property
    def size(self) -> int:
        """int: Total number of elements in the tensor."""
        return int(self._data.size)

    def numel(self) -> int:
        """Total number of elements; same as :attr:``size``."""
        return self.size

    @property
    def is_empty(self) -> bool:
        """bool: True if the tensor holds no elements."""
        return self.size == 0

    @property
    def device(self) -> str:
        """str: ``'cuda'`` for CuPy-backed tensors, otherwise ``'cpu'``."""
        return "cuda" if (_HAS_CUPY and self._backend is cp) else "cpu"

    def xp(self) -> Any:
        """Return the current array backend (NumPy or CuPy)."""
        return self._backend

    @property
    def T(self) -> "Tensor":
        """Tensor: Tensor with all axes reversed."""
        return self.permute()

    def _elementwise(self, other: Union["Tensor", Any], kind: OpKind) -> "Tensor":
        """
        Shared body of ``add``/``sub``/``mul``/``div``.

        Requires identical shapes (no implicit broadcasting), applies the
        backend kernel registered for ``kind`` and records a binary operator
        referencing both operands.
        """
        other = Tensor._ensure_tensor(other, self._backend, self._ids)

        if self.shape != other.shape:
            logger.debug("%s rejected: shapes %s and %s differ", kind.label, self.shape, other.shape)
            raise ShapeMismatchError(self.shape, other.shape, kind.label)

        kernel = getattr(self._backend, _ELEMENTWISE_KERNELS[kind])
        out_data = kernel(self._data, other._data)

        requires_grad = self.requires_grad or other.requires_grad
        return Tensor(out_data, Operator.binary(kind, self, other), requires_grad=requires_grad)

    def add(self, other: Union["Tensor", Any]) -> "Tensor":
        """
        Elementwise addition of two tensors of identical shape.

        Parameters
        ----------
        other : Tensor or array-like
            Value to add. If not a ``Tensor``, it is converted to a tensor on
            the same backend as ``self``.

        Returns
        -------
        Tensor
            ``self + other``, tagged ``Add(self, other)``. ``requires_grad`` is
            True if either operand requires gradients.

        Raises
        ------
        ShapeMismatchError
            If ``self.shape != other.shape``. No broadcasting is performed.

        Examples
        --------
        >>> a = Tensor.from_vec([1., 2., -2., 1.], (2, 2))
        >>> b = Tensor.from_vec([2., -5., 1., 6.], (2, 2))
        >>> a.add(b).data
        array([[ 3., -3.],
               [-1.,  7.]], dtype=float32)
        """
        return self._elementwise(other, OpKind.ADD)

    def sub(self, other: Union["Tensor", Any]) -> "Tensor":
        """Elementwise subtraction; same contract as :meth:``add``."""
        return self._elementwise(other, OpKind.SUB)

    def mul(self, other: Union["Tensor", Any]) -> "Tensor":
        """Elementwise (Hadamard) product; same contract as :meth:``add``."""
        return self._elementwise(other, OpKind.MUL)

    def div(self, other: Union["Tensor", Any]) -> "Tensor":
        """
        Elementwise division; same contract as :meth:``add``.

        Division by zero follows backend semantics (``inf``/``nan``).
        """
        return self._elementwise(other, OpKind.DIV)

    def matmul(self, other: Union["Tensor", Any]) -> "Tensor":
        """
        Matrix multiply over the last two axes, with NumPy/CuPy semantics.

        - 2D inputs: ``(m, k) @ (k, n) -> (m, n)``.
        - >=3D inputs: batched matmul, leading batch dims broadcast:
          ``(..., m, k) @ (..., k, n) -> (..., m, n)``.
        - A 1-D right operand is treated as a vector: ``(..., m, k) @ (k,)``.

        Parameters
        ----------
        other : Tensor or array-like
            Right-hand operand.

        Returns
        -------
        Tensor
            The matrix product, tagged ``MatMul(self, other)``.

        Raises
        ------
        ShapeMismatchError
            If either operand is 0-D, or ``self.shape[-1]`` does not equal the
            contracted dim of ``other`` (``other.shape[-2]``, or
            ``other.shape[0]`` for 1-D).
        BroadcastError
            If the batch dimensions cannot be broadcast together.

        Examples
        --------
        >>> a = Tensor.randn(5, 2, 3)
        >>> b = Tensor.randn(3, 4)
        >>> a.matmul(b).shape
        (5, 2, 4)
        """
        other = Tensor._ensure_tensor(other, self._backend, self._ids)
        a, b = self.shape, other.shape
        label = OpKind.MATMUL.label

        if len(a) == 0 or len(b) == 0:
            logger.debug("%s rejected: 0-d operand in %s @ %s", label, a, b)
            raise ShapeMismatchError(a, b, label)
        contracted = b[0] if len(b) == 1 else b[-2]
        if a[-1] != contracted:
            logger.debug("%s rejected: inner dims %d and %d differ", label, a[-1], contracted)
            raise ShapeMismatchError(a, b, label)
        _check_batch_dims(a[:-2], b[:-2])

        out_data = self._backend.matmul(self._data, other._data)

        requires_grad = self.requires_grad or other.requires_grad
        return Tensor(out_data, Operator.binary(OpKind.MATMUL, self, other), requires_grad=requires_grad)

    def scalar_mul(self, value: float) -> "Tensor":
        """
        Multiply every element by a real scalar.

        Raises
        ------
        TypeError
            If ``value`` is not a real number.
        """
        value = Tensor._as_scalar(value, "scalar_mul")
        out_data = self._data * value
        return Tensor(out_data, Operator.scalar_op(OpKind.SCALAR_MUL, self, value), requires_grad=self.requires_grad)

    def pow(self, exponent: float) -> "Tensor":
        """
        Raise every element to a real scalar power.

        Parameters
        ----------
        exponent : float
            The exponent.

        Returns
        -------
        Tensor
            ``self ** exponent``, tagged ``Pow(self, exponent)``.

        Notes
        -----
        Negative bases with non-integer exponents produce NaN, and ``0 ** -1``
        produces ``inf``; both follow backend semantics.

        Raises
        ------
        TypeError
            If ``exponent`` is not a real number.
        """
        exponent = Tensor._as_scalar(exponent, "pow")
        out_data = self._backend.power(self._data, exponent)
        return Tensor(out_data, Operator.scalar_op(OpKind.POW, self, exponent), requires_grad=self.requires_grad)

    def sum(
        self,
        dim: Optional[Union[int, Sequence[int]]] = None,
        keepdim: bool = False,
    ) -> "Tensor":
        """
        Sum of elements over the given dimension(s).

        Parameters
        ----------
        dim : int or sequence of int, optional
            Dimension(s) to reduce; negative values count from the end. If
            ``None``, all dimensions are reduced.
        keepdim : bool, default=False
            If True, retains reduced dimensions with length 1.

        Returns
        -------
        Tensor
            The summed value(s), tagged with the normalized (non-negative)
            axes, e.g. ``Sum over axes: [1]``.

        Raises
        ------
        InvalidAxisError
            If an axis is out of range or repeated.

        Examples
        --------
        >>> x = Tensor([[1., 2.], [3., 4.]])
        >>> x.sum(dim=-1).data
        array([3., 7.], dtype=float32)
        >>> x.sum().op.axes
        (0, 1)
        """
        axes = _normalize_axes(dim, self.ndim, OpKind.SUM.label)
        out_data = self._backend.sum(self._data, axis=axes, keepdims=keepdim)
        op = Operator.with_axes(OpKind.SUM, self, axes, keepdim=keepdim)
        return Tensor(out_data, op, requires_grad=self.requires_grad)

    def mean(
        self,
        dim: Optional[Union[int, Sequence[int]]] = None,
        keepdim: bool = False,
    ) -> "Tensor":
        """
        Mean of elements over the given dimension(s).

        Same axis handling and errors as :meth:``sum``. The mean of an empty
        selection is NaN, as in the backend.
        """
        axes = _normalize_axes(dim, self.ndim, OpKind.MEAN.label)
        out_data = self._backend.mean(self._data, axis=axes, keepdims=keepdim)
        op = Operator.with_axes(OpKind.MEAN, self, axes, keepdim=keepdim)
        return Tensor(out_data, op, requires_grad=self.requires_grad)

    def permute(
        self,
        *dims: int,
    ) -> "Tensor":
        """
        Permute (reorder) the tensor's dimensions.

        Parameters
        ----------
        dims : int
            A permutation of the axes, given variadically or as one sequence.
            Negative axes are allowed. If omitted, the axes are reversed.

        Returns
        -------
        Tensor
            Tensor with axes reordered, tagged ``Transpose axes: [...]`` with
            the full non-negative permutation.

        Raises
        ------
        InvalidAxisError
            If ``dims`` is not a permutation of ``range(self.ndim)``.

        Examples
        --------
        >>> x = Tensor.randn(2, 3, 4)
        >>> x.permute(0, 2, 1).shape
        (2, 4, 3)
        """
        if len(dims) == 1 and isinstance(dims[0], (tuple, list)):
            dims = tuple(dims[0])

        label = OpKind.TRANSPOSE.label
        if not dims:
            perm = tuple(reversed(range(self.ndim)))
        else:
            perm = _normalize_axes(dims, self.ndim, label)
            if len(perm) != self.ndim:
                logger.debug("%s rejected: %s is not a permutation of %d axes", label, list(dims), self.ndim)
                raise InvalidAxisError(dims, self.ndim, label)

        out_data = self._backend.transpose(self._data, perm)
        op = Operator.with_axes(OpKind.TRANSPOSE, self, perm)
        return Tensor(out_data, op, requires_grad=self.requires_grad)

    def transpose(
        self,
        dim0: int,
        dim1: int,
    ) -> "Tensor":
        """
        Swap two dimensions of the tensor.

        Equivalent to :meth:``permute`` with those two axes exchanged.

        Examples
        --------
        >>> x = Tensor.randn(2, 3, 4)
        >>> x.transpose(1, 2).shape
        (2, 4, 3)
        """
        label = OpKind.TRANSPOSE.label
        (d0,) = _normalize_axes(dim0, self.ndim, label)
        (d1,) = _normalize_axes(dim1, self.ndim, label)

        dims = list(range(self.ndim))
        dims[d0], dims[d1] = dims[d1], dims[d0]

        return self.permute(*dims)

    def broadcast_to(
        self,
        *shape: int,
    ) -> "Tensor":
        """
        Broadcast the tensor to a larger shape (NumPy rules).

        Shapes are aligned on the right; each source dimension must equal the
        target dimension or be 1. Missing leading dimensions are added.

        Parameters
        ----------
        shape : int
            Target shape, given variadically or as one sequence.

        Returns
        -------
        Tensor
            Tensor of shape ``shape``, tagged ``Broadcast to shape: [...]``.

        Raises
        ------
        BroadcastError
            If ``self.shape`` cannot be broadcast into ``shape``.

        Examples
        --------
        >>> Tensor([1., 2., 3.]).broadcast_to(2, 3).shape
        (2, 3)
        """
        target = _as_shape(shape)
        try:
            _check_broadcastable(self.shape, target)
        except BroadcastError:
            logger.debug("Broadcast rejected: %s -> %s", self.shape, target)
            raise

        out_data = self._backend.broadcast_to(self._data, target)
        op = Operator.with_axes(OpKind.BROADCAST, self, target)
        return Tensor(out_data, op, requires_grad=self.requires_grad)

    def sigmoid(self) -> "Tensor":
        """
        Element-wise logistic sigmoid function.

        Computes :math:``y_i = \\frac{1}{1 + e^{-x_i}}`` for each element of the tensor.

        Examples
        --------
        >>> x = Tensor([-1.0, 0.0, 1.0])
        >>> x.sigmoid().data
        array([0.26894143, 0.5, 0.7310586], dtype=float32)
        """
        out_data = 1 / (1 + self._backend.exp(-self._data))
        return Tensor(out_data, Operator.unary(OpKind.SIGMOID, self), requires_grad=self.requires_grad)

    def relu(self) -> "Tensor":
        """
        Element-wise Rectified Linear Unit (ReLU) activation.

        Computes :math:``y_i = \\max(0, x_i)`` for each element of the tensor.

        Examples
        --------
        >>> x = Tensor([-1.0, 0.0, 2.0])
        >>> x.relu().data
        array([0., 0., 2.], dtype=float32)
        """
        out_data = self._backend.maximum(0, self._data)
        return Tensor(out_data, Operator.unary(OpKind.RELU, self), requires_grad=self.requires_grad)

    def detach(self) -> "Tensor":
        """Return a new leaf tensor with the same values and no history (``requires_grad=False``)."""
        return Tensor(self._data, requires_grad=False, id_allocator=self._ids)

    def __add__(self, other: Union["Tensor", Any]) -> "Tensor":
        return self.add(other)

    def __sub__(self, other: Union["Tensor", Any]) -> "Tensor":
        return self.sub(other)

    def __mul__(self, other: Union["Tensor", Any]) -> "Tensor":
        """Elementwise product with a tensor, or :meth:``scalar_mul`` with a real number."""
        if Tensor._is_real(other):
            return self.scalar_mul(other)
        return self.mul(other)

    def __truediv__(self, other: Union["Tensor", Any]) -> "Tensor":
        return self.div(other)

    def __pow__(self, exponent: float) -> "Tensor":
        return self.pow(exponent)

    def __matmul__(self, other: Union["Tensor", Any]) -> "Tensor":
        return self.matmul(other)

    def __neg__(self) -> "Tensor":
        """Elementwise negation (returns ``-self``)."""
        return self.scalar_mul(-1.0)

    def __radd__(self, other: Union["Tensor", Any]) -> "Tensor":
        """Right-hand addition: ``other + self``."""
        return Tensor._ensure_tensor(other, self._backend, self._ids).add(self)

    def __rsub__(self, other: Union["Tensor", Any]) -> "Tensor":
        """Right-hand subtraction: ``other - self``."""
        return Tensor._ensure_tensor(other, self._backend, self._ids).sub(self)

    def __rmul__(self, other: Union["Tensor", Any]) -> "Tensor":
        """Right-hand multiplication: ``other * self``."""
        if Tensor._is_real(other):
            return self.scalar_mul(other)
        return Tensor._ensure_tensor(other, self._backend, self._ids).mul(self)

    def __rtruediv__(self, other: Union["Tensor", Any]) -> "Tensor":
        """Right-hand division: ``other / self``."""
        return Tensor._ensure_tensor(other, self._backend, self._ids).div(self)

    def __rmatmul__(self, other: Union["Tensor", Any]) -> "Tensor":
        return Tensor._ensure_tensor(other, self._backend, self._ids).matmul(self)

    def walk(self) -> Iterator[Tuple["Tensor", int]]:
        """
        Depth-first, pre-order traversal of the computation graph.

        Yields ``(tensor, depth)`` pairs starting with ``(self, 0)``. The
        operands of each node are visited in their declared order (left before
        right). A tensor reachable along several paths is yielded once per
        path, so the output describes the graph as a tree.

        Notes
        -----
        The traversal uses an explicit stack; arbitrarily deep graphs do not
        hit Python's recursion limit.
        """
        stack: List[Tuple["Tensor", int]] = [(self, 0)]
        while stack:
            node, depth = stack.pop()
            yield node, depth
            if node._op is not None:
                for operand in reversed(node._op.operands):
                    stack.append((operand, depth + 1))

    def comp_tree(self) -> str:
        """
        Render the computation graph rooted at this tensor as indented text.

        One line per node: id, gradient flag, shape and, for derived tensors,
        the operator name. Each level is indented by four more spaces.

        Examples
        --------
        >>> a = Tensor.from_vec([1., 2.], (2,))
        >>> b = Tensor.from_vec([3., 4.], (2,), requires_grad=True)
        >>> print(a.add(b).comp_tree())       # doctest: +SKIP
        tensor id: 3, use grad: True, shape: [2] with op: Add
            tensor id: 1, use grad: False, shape: [2]
            tensor id: 2, use grad: True, shape: [2]
        """
        lines = []
        for node, depth in self.walk():
            info = f"tensor id: {node.id}, use grad: {node.requires_grad}, shape: {list(node.shape)}"
            if node._op is not None:
                info += f" with op: {node._op.name}"
            lines.append(" " * (4 * depth) + info)
        return "\n".join(lines)

    def print_comp_tree(self, file: Optional[TextIO] = None) -> None:
        """Print :meth:``comp_tree`` to ``file`` (stdout by default)."""
        print(self.comp_tree(), file=file)

    def graph_nodes(self) -> List["Tensor"]:
        """
        Return every distinct tensor in the graph, in topological order.

        Nodes are deduplicated by object identity. Operands always come before
        the tensors derived from them, so leaves come first and ``self`` last.
        This is the order a backward pass walks in reverse.

        Notes
        -----
        Ids are only unique per :class:`IdAllocator`, so they are not used as
        the deduplication key. The sort uses an explicit stack; arbitrarily deep
        graphs do not hit Python's recursion limit.
        """
        visited = set()
        topo = []

        stack: List[Tuple["Tensor", bool]] = [(self, False)]
        while stack:
            node, expanded = stack.pop()
            if expanded:
                topo.append(node)
                continue
            if node in visited:
                continue
            visited.add(node)
            stack.append((node, True))
            if node._op is not None:
                for child in reversed(node._op.operands):
                    if child not in visited:
                        stack.append((child, False))

        return topo

    def __repr__(self) -> str:
        """
        Returns a readable string representation of the tensor.

        Examples
        --------
        >>> x = Tensor([[1, 2], [3, 4]], requires_grad=True)
        >>> print(x)                                   # doctest: +SKIP
        tensor([[1., 2.],
                [3., 4.]], dtype=float32, requires_grad=True, device='cpu', id=7)
        """
        data_str = self._backend.array2string(self._data, separator=', ', prefix='tensor(')
        details = [f"dtype={self._data.dtype}, requires_grad={self.requires_grad}"]
        details.append(f"device='{self.device}'")
        details.append(f"id={self.id}")
        if self._op is not None:
            details.append(f"op='{self._op.name}'")

        return f"tensor({data_str}, {', '.join(details)})"

    @staticmethod
    def _is_real(x: Any) -> bool:
        return isinstance(x, numbers.Real) and not isinstance(x, Tensor)

    @staticmethod
    def _as_scalar(x: Any, op: str) -> float:
        """Validate that ``x`` is a real number and return it as ``float``."""
        if not Tensor._is_real(x):
            raise TypeError(f"{op} expects a real scalar, got {type(x).__name__}")
        return float(x)

    @staticmethod
    def _ensure_tensor(
        x: Union["Tensor", Any],
        backend: Any,
        id_allocator: Optional[IdAllocator] = None,
    ) -> "Tensor":
        """
        Ensure that ``x`` is a :class:``Tensor`` on the specified backend.

        If ``x`` is already a ``Tensor``, it is returned unchanged. Otherwise,
        ``x`` is converted to a new leaf tensor placed on the device implied
        by ``backend`` (NumPy → CPU, CuPy → CUDA).
        """
        if isinstance(x, Tensor):
            return x
        return Tensor(
            x,
            device="cuda" if _HAS_CUPY and backend is cp else "cpu",
            id_allocator=id_allocator,
        )

    @staticmethod
    def from_vec(
        values: Sequence[float],
        shape: Sequence[int],
        requires_grad: bool = False,
        device: Optional[str] = "cpu",
        id_allocator: Optional[IdAllocator] = None,
    ) -> "Tensor":
        """
        Create a leaf tensor from a flat sequence of values and an explicit shape.

        Parameters
        ----------
        values : sequence of float
            Elements in row-major (C) order.
        shape : sequence of int
            Target shape. ``len(values)`` must equal ``prod(shape)``.
        requires_grad : bool, default=False
            Gradient flag of the new tensor.
        device : str or None, default="cpu"
            Target device for the tensor (``"cpu"`` or ``"cuda"``).
        id_allocator : IdAllocator, optional
            Source of the tensor id.

        Returns
        -------
        Tensor
            A float32 leaf tensor of the given shape.

        Raises
        ------
        ValueError
            If a dimension is negative, or (raised by the backend) if the
            number of values does not match the shape.

        Examples
        --------
        >>> Tensor.from_vec([1., 2., 3., 4., 5., 6.], (2, 3)).shape
        (2, 3)
        """
        xp = _backend_for(device)
        dims = _as_shape(tuple(shape))
        data = xp.asarray(values, dtype=xp.float32).reshape(dims)
        return Tensor(data, requires_grad=requires_grad, device=device, id_allocator=id_allocator)

    @staticmethod
    def zeros(
        *shape: int,
        requires_grad: bool = False,
        device: Optional[str] = "cpu",
    ) -> "Tensor":
        """Create a leaf tensor filled with zeros."""
        xp = _backend_for(device)
        data = xp.zeros(_as_shape(shape), dtype=xp.float32)
        return Tensor(data, requires_grad=requires_grad, device=device)

    @staticmethod
    def ones(
        *shape: int,
        requires_grad: bool = False,
        device: Optional[str] = "cpu",
    ) -> "Tensor":
        """Create a leaf tensor filled with ones."""
        xp = _backend_for(device)
        data = xp.ones(_as_shape(shape), dtype=xp.float32)
        return Tensor(data, requires_grad=requires_grad, device=device)

    @staticmethod
    def randn(
        *shape: int,
        requires_grad: bool = False,
        scale: float = 1.0,
        device: Optional[str] = "cpu",
        rng: Optional[Any] = None,
    ) -> "Tensor":
        """
        Create a leaf tensor with values sampled from a normal distribution.

        Samples i.i.d. values from ``N(0, 1)`` and scales them by ``scale``,
        resulting in a distribution ``N(0, scale^2)``.

        Parameters
        ----------
        *shape : int
            Shape of the output tensor (variadic or a single sequence).
        requires_grad : bool, default=False
            Gradient flag of the new tensor.
        scale : float, default=1.0
            Multiplicative scale applied to the sampled values.
        device : str or None, default="cpu"
            Target device for the tensor (``"cpu"`` or ``"cuda"``).
        rng : numpy.random.Generator, optional
            Generator to draw from. Defaults to the backend's global RNG.

        Returns
        -------
        Tensor
            A float32 tensor with normally distributed values.

        Examples
        --------
        >>> Tensor.randn(200, 1, rng=np.random.default_rng(0)).shape
        (200, 1)
        """
        xp = _backend_for(device)
        dims = _as_shape(shape)
        source = xp.random if rng is None else rng
        data = scale * source.standard_normal(dims).astype(np.float32)
        logger.debug("Sampled N(0, %s^2) tensor of shape %s", scale, dims)
        return Tensor(data, requires_grad=requires_grad, device=device)

    @staticmethod
    def rand_uniform(
        low: float,
        high: float,
        *shape: int,
        requires_grad: bool = False,
        device: Optional[str] = "cpu",
        rng: Optional[Any] = None,
    ) -> "Tensor":
        """
        Create a leaf tensor with values drawn uniformly from ``[low, high)``.

        Parameters
        ----------
        low, high : float
            Bounds of the half-open sampling interval.
        *shape : int
            Shape of the output tensor (variadic or a single sequence).
        requires_grad : bool, default=False
            Gradient flag of the new tensor.
        device : str or None, default="cpu"
            Target device for the tensor (``"cpu"`` or ``"cuda"``).
        rng : numpy.random.Generator, optional
            Generator to draw from. Defaults to the backend's global RNG.

        Raises
        ------
        ValueError
            If either bound is not finite or ``low >= high``.

        Examples
        --------
        >>> x = Tensor.rand_uniform(-1., 1., 200, 1)
        >>> bool((x.data >= -1).all() and (x.data < 1).all())
        True
        """
        low, high = float(low), float(high)
        if not (math.isfinite(low) and math.isfinite(high)) or not low < high:
            raise ValueError(f"rand_uniform requires finite bounds with low < high, got [{low}, {high})")

        xp = _backend_for(device)
        dims = _as_shape(shape)
        source = xp.random if rng is None else rng
        data = source.uniform(low, high, dims).astype(np.float32)
        # float32 rounding can land exactly on `high`
        data = data.clip(None, np.nextafter(np.float32(high), np.float32(low)))
        logger.debug("Sampled U[%s, %s) tensor of shape %s", low, high, dims)
        return Tensor(data, requires_grad=requires_grad, device=device)
