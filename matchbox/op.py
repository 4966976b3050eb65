from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Sequence, Tuple

if TYPE_CHECKING:
    from matchbox.tensor import Tensor


class Arity(Enum):
    """Which fields of an :class:``Operator`` a given kind populates."""
    BINARY = "binary"      # two tensor operands
    SCALAR = "scalar"      # one tensor operand + a scalar
    AXES = "axes"          # one tensor operand + axes or a target shape
    UNARY = "unary"        # one tensor operand


class OpKind(Enum):
    """
    The closed vocabulary of operations that can produce a tensor.

    Each member's value is ``(arity, label)``; ``label`` is the prefix used
    when the operator is rendered as text.
    """
    ADD = (Arity.BINARY, "Add")
    SUB = (Arity.BINARY, "Sub")
    MUL = (Arity.BINARY, "Mul")
    DIV = (Arity.BINARY, "Div")
    MATMUL = (Arity.BINARY, "MatMul")

    SCALAR_MUL = (Arity.SCALAR, "Scalar multiplication")
    POW = (Arity.SCALAR, "Scalar exponentiation")

    SUM = (Arity.AXES, "Sum over axes")
    MEAN = (Arity.AXES, "Mean over axes")
    TRANSPOSE = (Arity.AXES, "Transpose axes")
    BROADCAST = (Arity.AXES, "Broadcast to shape")

    SIGMOID = (Arity.UNARY, "Sigmoid activation")
    RELU = (Arity.UNARY, "ReLU activation")

    @property
    def arity(self) -> Arity:
        return self.value[0]

    @property
    def label(self) -> str:
        return self.value[1]


_REDUCTIONS = (OpKind.SUM, OpKind.MEAN)


@dataclass(frozen=True, eq=False)
class Operator:
    """
    Provenance record of a derived tensor.

    An ``Operator`` says which operation produced a tensor and holds
    references to the operand tensors plus any scalar or axis arguments.
    It is embedded in the tensor it describes and never changes after
    construction.

    Attributes
    ----------
    kind : OpKind
        The operation.
    operands : tuple of Tensor
        Input tensors in declared order (left before right for binary ops).
    scalar : float or None
        Scalar argument of ``SCALAR_MUL`` / ``POW``.
    axes : tuple of int or None
        Reduction axes (``SUM``/``MEAN``), axis permutation (``TRANSPOSE``)
        or target shape (``BROADCAST``).
    keepdim : bool
        Whether reduced axes were kept as size-1 dims (``SUM``/``MEAN`` only).

    Notes
    -----
    Use the ``binary``/``scalar_op``/``with_axes``/``unary`` constructors.
    Direct construction is validated against ``kind.arity``; a mismatch is
    an internal error and raises ``ValueError``.
    """
    kind: OpKind
    operands: Tuple["Tensor", ...]
    scalar: Optional[float] = None
    axes: Optional[Tuple[int, ...]] = None
    keepdim: bool = False

    def __post_init__(self) -> None:
        arity = self.kind.arity
        expected = 2 if arity is Arity.BINARY else 1
        if len(self.operands) != expected:
            raise ValueError(f"{self.kind.name} expects {expected} operand(s), got {len(self.operands)}")
        if (self.scalar is not None) != (arity is Arity.SCALAR):
            raise ValueError(f"{self.kind.name}: scalar argument does not match arity {arity.value}")
        if (self.axes is not None) != (arity is Arity.AXES):
            raise ValueError(f"{self.kind.name}: axes argument does not match arity {arity.value}")
        if self.keepdim and self.kind not in _REDUCTIONS:
            raise ValueError(f"{self.kind.name} does not take keepdim")

    @classmethod
    def binary(cls, kind: OpKind, lhs: "Tensor", rhs: "Tensor") -> "Operator":
        return cls(kind, (lhs, rhs))

    @classmethod
    def scalar_op(cls, kind: OpKind, operand: "Tensor", value: float) -> "Operator":
        return cls(kind, (operand,), scalar=value)

    @classmethod
    def with_axes(
        cls,
        kind: OpKind,
        operand: "Tensor",
        axes: Sequence[int],
        keepdim: bool = False,
    ) -> "Operator":
        return cls(kind, (operand,), axes=tuple(int(a) for a in axes), keepdim=keepdim)

    @classmethod
    def unary(cls, kind: OpKind, operand: "Tensor") -> "Operator":
        return cls(kind, (operand,))

    @property
    def name(self) -> str:
        """str: Human-readable description, e.g. ``"Add"`` or ``"Sum over axes: [0, 1]"``."""
        if self.kind.arity is Arity.AXES:
            return f"{self.kind.label}: {list(self.axes)}"
        return self.kind.label

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        ids = ", ".join(str(t.id) for t in self.operands)
        return f"Operator({self.kind.name}, operands=[{ids}])"
