"""Tensor contract used by the engine.

numpy arrays are the storage; the engine only reaches them through these
helpers and through element indexing in generated kernels.
"""

from __future__ import annotations

from typing import Any, Sequence, Tuple

import numpy as np


def as_tensor(value: Any) -> np.ndarray:
    if isinstance(value, np.ndarray):
        return value
    return np.asarray(value)


def allocate(shape: Sequence[int], element_type: Any) -> np.ndarray:
    return np.zeros(tuple(int(dim) for dim in shape), dtype=element_type)


def shape(tensor: np.ndarray) -> Tuple[int, ...]:
    return tuple(int(dim) for dim in tensor.shape)


def element_type(tensor: np.ndarray) -> np.dtype:
    return tensor.dtype


def element_at(tensor: np.ndarray, index: Sequence[int]) -> Any:
    return tensor[tuple(index)]


def set_element_at(tensor: np.ndarray, index: Sequence[int], value: Any) -> None:
    tensor[tuple(index)] = value


def promote_types(element_types: Sequence[Any]) -> np.dtype:
    if not element_types:
        return np.dtype(np.float64)
    return np.result_type(*element_types)
