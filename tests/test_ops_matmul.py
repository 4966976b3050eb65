import numpy as np
import pytest

from matchbox.errors import BroadcastError, ShapeMismatchError
from matchbox.op import OpKind
from tests.utils import make_tensor, make_torch, tdata, assert_close, operand_ids


@pytest.mark.parametrize(
    "a_shape, b_shape",
    [
        ((6, 10), (10, 4)),                # 2D
        ((2, 3, 6, 10), (2, 3, 10, 5)),    # B1,B2,M,K @ B1,B2,K,N
        ((4, 6, 10), (1, 10, 5)),          # batch broadcast
        ((4, 6, 10), (10, 5)),             # batched @ matrix
        ((6, 10), (10,)),                  # matrix @ vector
        ((10,), (10, 3)),                  # vector @ matrix
    ],
)
def test_matmul_forward(rng, device, a_shape, b_shape):
    a_np = rng.normal(size=a_shape).astype(np.float32)
    b_np = rng.normal(size=b_shape).astype(np.float32)

    at = make_torch(a_np)
    bt = make_torch(b_np)
    a = make_tensor(a_np, device=device)
    b = make_tensor(b_np, device=device)

    yt = at @ bt
    y = a @ b

    assert y.shape == tuple(yt.shape)
    assert_close(tdata(y), yt.numpy(), atol=5e-6, rtol=5e-5)


def test_matmul_records_provenance(rng):
    a = make_tensor(rng.normal(size=(2, 3)), requires_grad=True)
    b = make_tensor(rng.normal(size=(3, 4)))

    y = a.matmul(b)

    assert y.op.kind is OpKind.MATMUL
    assert y.op.name == "MatMul"
    assert operand_ids(y) == [a.id, b.id]
    assert y.requires_grad is True


@pytest.mark.parametrize(
    "a_shape, b_shape",
    [
        ((2, 3), (4, 5)),
        ((2, 3), (2, 3)),
        ((5, 2, 3), (5, 4, 2)),
        ((3,), (4,)),
        ((2, 3), (4,)),
    ],
)
def test_matmul_inner_dim_mismatch_raises(device, a_shape, b_shape):
    a = make_tensor(np.ones(a_shape, dtype=np.float32), device=device)
    b = make_tensor(np.ones(b_shape, dtype=np.float32), device=device)

    with pytest.raises(ShapeMismatchError) as exc:
        a @ b

    assert exc.value.op == "MatMul"
    assert exc.value.a_shape == a_shape
    assert exc.value.b_shape == b_shape


def test_matmul_rejects_zero_dim_operands():
    a = make_tensor(np.float32(2.0))
    b = make_tensor(np.ones((2, 2), dtype=np.float32))

    with pytest.raises(ShapeMismatchError):
        a.matmul(b)
    with pytest.raises(ShapeMismatchError):
        b.matmul(a)


def test_matmul_incompatible_batch_dims_raise():
    a = make_tensor(np.ones((3, 2, 4), dtype=np.float32))
    b = make_tensor(np.ones((5, 4, 6), dtype=np.float32))

    with pytest.raises(BroadcastError) as exc:
        a.matmul(b)

    assert exc.value.got_shape == (3,)
    assert exc.value.expected_shape == (5,)
