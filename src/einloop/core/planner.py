"""Loop nesting order for a normalized spec.

Without stride information, locality is approximated from axis positions: an
id that tends to sit later in the operand specs (closer to the contiguous
end in row-major storage) should vary in an inner loop.
"""

from __future__ import annotations

from functools import cmp_to_key
from typing import Callable, Dict, Sequence, Tuple

from .ir import NormalizedSpec

PLANNERS = ("locality", "declared")


def _first_positions(spec: Sequence[int]) -> Dict[int, int]:
    positions: Dict[int, int] = {}
    for axis, idx in enumerate(spec):
        positions.setdefault(idx, axis)
    return positions


def violation_scores(
    ids: Sequence[int],
    specs: Sequence[Sequence[int]],
) -> Dict[Tuple[int, int], int]:
    """``scores[a, b]`` counts the specs in which ``b`` sits before ``a``."""
    scores: Dict[Tuple[int, int], int] = {}
    for a in ids:
        for b in ids:
            if a != b:
                scores[(a, b)] = 0
    for spec in specs:
        positions = _first_positions(spec)
        for a, pos_a in positions.items():
            for b, pos_b in positions.items():
                if a != b and pos_b < pos_a:
                    scores[(a, b)] += 1
    return scores


def locality_order(
    ids: Sequence[int],
    specs: Sequence[Sequence[int]],
) -> Tuple[int, ...]:
    scores = violation_scores(ids, specs)

    def _compare(a: int, b: int) -> int:
        forward = scores[(a, b)]
        backward = scores[(b, a)]
        if forward < backward:
            return -1
        if backward < forward:
            return 1
        return 0

    return tuple(sorted(ids, key=cmp_to_key(_compare)))


def declared_order(ids: Sequence[int], specs: Sequence[Sequence[int]]) -> Tuple[int, ...]:
    return tuple(ids)


_PLANNER_FUNCS: Dict[str, Callable[[Sequence[int], Sequence[Sequence[int]]], Tuple[int, ...]]] = {
    "locality": locality_order,
    "declared": declared_order,
}


def plan_loop_order(spec: NormalizedSpec, planner: str = "locality") -> Tuple[int, ...]:
    try:
        func = _PLANNER_FUNCS[planner]
    except KeyError:
        raise ValueError(f"Unsupported loop planner: {planner}") from None
    return func(spec.ids, spec.specs)
