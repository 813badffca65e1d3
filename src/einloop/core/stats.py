from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Sequence

from .ir import NormalizedSpec


def _prod(values: Iterable[int]) -> int:
    result = 1
    for value in values:
        result *= int(value)
    return int(result)


def compute_einsum_stats(
    spec: NormalizedSpec,
    dims: Mapping[int, int],
    operand_itemsizes: Sequence[int],
    result_itemsize: int,
) -> Dict[str, Any]:
    """Cost figures for one kernel invocation.

    ``iterations`` is the trip count of the innermost loop body. Each trip
    multiplies the input elements together and accumulates into every output,
    which is what ``flops`` counts.
    """
    output_ids = []
    for ids in spec.outputs:
        for idx in ids:
            if idx not in output_ids:
                output_ids.append(idx)
    contracted = [idx for idx in spec.ids if idx not in output_ids]

    iterations = _prod(dims[idx] for idx in spec.ids)
    ops_per_trip = max(len(spec.inputs) - 1, 0) + 1
    flops = float(iterations * ops_per_trip * len(spec.outputs))

    bytes_in = 0
    for ids, itemsize in zip(spec.inputs, operand_itemsizes):
        bytes_in += _prod(dims[idx] for idx in ids) * int(itemsize)
    bytes_out = 0
    for ids in spec.outputs:
        bytes_out += _prod(dims[idx] for idx in ids) * int(result_itemsize)

    return {
        "iterations": iterations,
        "flops": flops,
        "bytes_in": int(bytes_in),
        "bytes_out": int(bytes_out),
        "bytes_total": int(bytes_in + bytes_out),
        "contracted": [spec.label_for(idx) for idx in contracted],
        "output_indices": [spec.label_for(idx) for idx in output_ids],
        "reductions": int(iterations - _prod(dims[idx] for idx in output_ids)),
    }
