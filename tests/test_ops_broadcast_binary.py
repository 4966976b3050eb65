import numpy as np
import pytest

from matchbox.errors import BroadcastError, ShapeMismatchError
from matchbox.op import OpKind
from tests.utils import make_tensor, make_torch, tdata, assert_close


def make_broadcastable_shapes(rng, min_nd=1, max_nd=5, min_size=2, max_size=6):
    a_nd = int(rng.integers(min_nd, max_nd + 1))
    b_nd = int(rng.integers(min_nd, max_nd + 1))
    nd = max(a_nd, b_nd)

    a = []
    b = []
    for _ in range(nd):
        s = int(rng.integers(min_size, max_size + 1))
        r = float(rng.random())
        if r < 0.33:
            a.append(1); b.append(s)
        elif r < 0.66:
            a.append(s); b.append(1)
        else:
            a.append(s); b.append(s)

    a = tuple(a[nd - a_nd :])
    b = tuple(b[nd - b_nd :])
    return a, b


def broadcast_result(a, b):
    return tuple(np.broadcast_shapes(a, b))


@pytest.mark.parametrize("op", ["add", "sub", "mul", "div"])
def test_binary_ops_do_not_broadcast_implicitly(rng, op, device):
    for _ in range(10):
        a_shape, b_shape = make_broadcastable_shapes(rng)
        if a_shape == b_shape:
            continue
        a = make_tensor(rng.normal(size=a_shape), device=device)
        b = make_tensor(rng.normal(size=b_shape), device=device)

        with pytest.raises(ShapeMismatchError):
            getattr(a, op)(b)


@pytest.mark.parametrize("op", ["add", "sub", "mul", "div"])
def test_binary_ops_after_explicit_broadcast(rng, op, device):
    for _ in range(10):
        a_shape, b_shape = make_broadcastable_shapes(rng)
        out_shape = broadcast_result(a_shape, b_shape)
        a_np = rng.normal(size=a_shape).astype(np.float32)
        b_np = rng.normal(size=b_shape).astype(np.float32)

        if op == "div":
            b_np = b_np + 0.3 * np.sign(b_np) + 0.3 * (b_np == 0)

        at = make_torch(a_np)
        bt = make_torch(b_np)
        a = make_tensor(a_np, device=device).broadcast_to(*out_shape)
        b = make_tensor(b_np, device=device).broadcast_to(out_shape)

        if op == "add":
            yt = at + bt
            y = a + b
        elif op == "sub":
            yt = at - bt
            y = a - b
        elif op == "mul":
            yt = at * bt
            y = a * b
        elif op == "div":
            yt = at / bt
            y = a / b
        else:
            raise RuntimeError(op)

        assert_close(tdata(y), yt.numpy(), atol=1e-5, rtol=1e-5)


def test_broadcast_to_records_target_shape(rng):
    x = make_tensor(rng.normal(size=(3, 1)), requires_grad=True)

    y = x.broadcast_to(2, 3, 4)

    assert y.shape == (2, 3, 4)
    assert y.op.kind is OpKind.BROADCAST
    assert y.op.axes == (2, 3, 4)
    assert y.op.name == "Broadcast to shape: [2, 3, 4]"
    assert y.op.operands == (x,)
    assert y.requires_grad is True
    assert_close(tdata(y), np.broadcast_to(tdata(x), (2, 3, 4)))


def test_broadcast_to_same_shape_is_identity(rng):
    x_np = rng.normal(size=(2, 3)).astype(np.float32)
    y = make_tensor(x_np).broadcast_to(2, 3)
    assert np.array_equal(tdata(y), x_np)


@pytest.mark.parametrize(
    "src, target",
    [
        ((3,), (4,)),
        ((2, 3), (3, 2)),
        ((2, 3), (3,)),
        ((2, 1, 3), (2, 4, 4)),
        ((5,), ()),
    ],
)
def test_broadcast_to_incompatible_raises(src, target, device):
    x = make_tensor(np.zeros(src, dtype=np.float32), device=device)

    with pytest.raises(BroadcastError) as exc:
        x.broadcast_to(target)

    assert exc.value.got_shape == src
    assert exc.value.expected_shape == target


def test_broadcast_to_rejects_negative_dims():
    x = make_tensor(np.zeros((3,), dtype=np.float32))
    with pytest.raises(ValueError):
        x.broadcast_to(-1, 3)


def test_broadcast_result_is_read_only_and_source_unchanged(rng):
    x_np = rng.normal(size=(1, 3)).astype(np.float32)
    x = make_tensor(x_np)

    y = x.broadcast_to(4, 3)

    with pytest.raises(ValueError):
        y.data[0, 0] = 1.0
    assert np.array_equal(tdata(x), x_np)
