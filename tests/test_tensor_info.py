import numpy as np
import pytest

from matchbox.tensor import Tensor
from tests.utils import tdata


def test_tensor_info():
    a = Tensor(np.full((2, 3), 1.), None, False)

    assert a.ndim == 2
    assert a.size == 6
    assert a.numel() == 6
    assert a.shape == (2, 3)
    assert a.is_empty is False
    assert a.requires_grad is False
    assert a.op is None
    assert isinstance(a.id, int)


@pytest.mark.parametrize("shape", [(), (0,), (4,), (2, 0, 3), (2, 3, 4, 5)])
def test_introspection_consistent_with_shape(shape):
    t = Tensor.zeros(*shape)

    assert t.shape == shape
    assert t.ndim == len(shape)
    assert t.size == int(np.prod(shape))
    assert t.is_empty == (t.size == 0)


def test_data_is_copied_and_read_only():
    src = np.array([1., 2., 3.], dtype=np.float32)
    t = Tensor(src)

    src[0] = 100.
    assert tdata(t)[0] == 1.

    with pytest.raises(ValueError):
        t.data[0] = 5.
    assert src.flags.writeable


def test_attributes_cannot_be_reassigned():
    t = Tensor([1., 2.])
    for name, value in [("data", np.zeros(2)), ("requires_grad", True), ("id", 0), ("op", None), ("shape", (1,))]:
        with pytest.raises(AttributeError):
            setattr(t, name, value)


def test_input_is_cast_to_float32():
    t = Tensor(np.arange(4, dtype=np.int64))
    assert t.dtype == np.float32


def test_repr_mentions_id_and_op():
    a = Tensor([1., 2.], requires_grad=True)
    r = repr(a.add(a))

    assert r.startswith("tensor(")
    assert "requires_grad=True" in r
    assert "device='cpu'" in r
    assert "op='Add'" in r
    assert f"id={a.id}" in repr(a)
