"""Linear-algebra conveniences built on einsum kernels."""

from __future__ import annotations

from functools import reduce
from typing import Any

import numpy as np

from .core.chain import ChainPlan, check_chain_shapes, execute_chain, plan_chain
from .core.engine import compile_spec, einsum
from .core.exceptions import ArgumentCountError, ShapeMismatchError
from .core.tensor import as_tensor, shape

# Fixed specs are compiled once at import.
_MATMUL = compile_spec("ij,jk->ik")
_INNER = compile_spec("i,i->")
_OUTER = compile_spec("i,j->ij")
_TRACE = compile_spec("ii->")
_DIAGONAL = compile_spec("ii->i")
_KRON = compile_spec("ij,kl->ikjl")


def matmul(a: Any, b: Any, out: Any = None) -> np.ndarray:
    return _MATMUL(a, b, out=out)


def plan_matmul_chain(*operands: Any) -> ChainPlan:
    return plan_chain([shape(as_tensor(value)) for value in operands])


def matmul_chain(*operands: Any) -> np.ndarray:
    """Multiply ``operands`` left to right in the cheapest association order."""
    if not operands:
        raise ArgumentCountError("matmul_chain needs at least one operand", expected=(1,))
    tensors = [as_tensor(value) for value in operands]
    if len(tensors) == 1:
        check_chain_shapes([shape(tensors[0])])
        return tensors[0]
    if len(tensors) == 2:
        check_chain_shapes([shape(t) for t in tensors])
        return matmul(tensors[0], tensors[1])
    plan = plan_chain([shape(t) for t in tensors])
    return execute_chain(plan, tensors, matmul)


def matmul_chain_naive(*operands: Any) -> np.ndarray:
    """Left fold with no planning; same values as :func:`matmul_chain`."""
    if not operands:
        raise ArgumentCountError("matmul_chain_naive needs at least one operand", expected=(1,))
    tensors = [as_tensor(value) for value in operands]
    check_chain_shapes([shape(t) for t in tensors])
    return reduce(matmul, tensors)


def transpose(a: Any) -> np.ndarray:
    """Reverse the axis order of ``a``."""
    tensor = as_tensor(a)
    axes = list(range(tensor.ndim))
    return einsum([axes, "->", axes[::-1]], tensor)


def inner(a: Any, b: Any) -> np.ndarray:
    return _INNER(a, b)


def outer(a: Any, b: Any) -> np.ndarray:
    return _OUTER(a, b)


def trace(a: Any) -> np.ndarray:
    return _TRACE(a)


def diagonal(a: Any) -> np.ndarray:
    return _DIAGONAL(a)


def tensordot(a: Any, b: Any, axes: int = 2) -> np.ndarray:
    """Contract the last ``axes`` axes of ``a`` with the first ``axes`` of ``b``."""
    left = as_tensor(a)
    right = as_tensor(b)
    axes = int(axes)
    if axes < 0 or axes > left.ndim or axes > right.ndim:
        raise ShapeMismatchError(
            f"Cannot contract {axes} axes of shapes {shape(left)} and {shape(right)}"
        )
    left_labels = list(range(left.ndim))
    shared = left_labels[left.ndim - axes :]
    right_labels = shared + list(range(left.ndim, left.ndim + right.ndim - axes))
    out_labels = left_labels[: left.ndim - axes] + right_labels[axes:]
    return einsum([left_labels, right_labels, "->", out_labels], left, right)


def kron(a: Any, b: Any) -> np.ndarray:
    left = as_tensor(a)
    right = as_tensor(b)
    if left.ndim != 2 or right.ndim != 2:
        raise ShapeMismatchError(
            f"kron expects matrices, got shapes {shape(left)} and {shape(right)}"
        )
    blocks = _KRON(left, right)
    rows = left.shape[0] * right.shape[0]
    cols = left.shape[1] * right.shape[1]
    return blocks.reshape(rows, cols)
