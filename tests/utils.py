import numpy as np
import torch

from matchbox.tensor import Tensor

ATOL = 1e-6
RTOL = 1e-5

def _is_cupy(x):
    return x.__class__.__module__.startswith("cupy")

def to_numpy(x):
    if _is_cupy(x):
        import cupy as cp
        return cp.asnumpy(x)
    return np.asarray(x)

def tdata(t: Tensor):
    return to_numpy(t.data)

def make_tensor(x_np: np.ndarray, requires_grad: bool = False, device: str = "cpu") -> Tensor:
    return Tensor(np.asarray(x_np, dtype=np.float32), requires_grad=requires_grad, device=device)

def make_torch(x_np: np.ndarray) -> torch.Tensor:
    return torch.tensor(np.asarray(x_np, dtype=np.float32))

def assert_close(a, b, atol=ATOL, rtol=RTOL):
    a = to_numpy(a)
    b = to_numpy(b)
    assert a.shape == b.shape, f"shape {a.shape} != {b.shape}"
    assert np.allclose(a, b, atol=atol, rtol=rtol), f"max|diff|={np.max(np.abs(a-b))}"

def operand_ids(t: Tensor):
    return [o.id for o in t.op.operands]
