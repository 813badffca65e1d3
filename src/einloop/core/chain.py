"""Matrix-chain ordering.

Classic O(N^3) dynamic program over contiguous sub-chains: each cell holds
the cheapest scalar-multiplication count for its range, the resulting shape
and the split achieving it. Ties keep the smallest split index.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple

from .exceptions import NonMultipliableShapesError, ShapeMismatchError

Shape = Tuple[int, int]


@dataclass(frozen=True)
class ChainCell:
    cost: int
    shape: Shape
    split: Optional[int] = None


@dataclass(frozen=True)
class ChainNode:
    start: int
    stop: int  # inclusive
    shape: Shape
    cost: int
    left: Optional["ChainNode"] = None
    right: Optional["ChainNode"] = None

    @property
    def is_leaf(self) -> bool:
        return self.left is None

    def render(self, names: Optional[Sequence[str]] = None) -> str:
        if self.is_leaf:
            return names[self.start] if names is not None else f"A{self.start}"
        return f"({self.left.render(names)} {self.right.render(names)})"


@dataclass(frozen=True)
class ChainPlan:
    shapes: Tuple[Shape, ...]
    root: ChainNode
    naive_cost: int

    @property
    def cost(self) -> int:
        return self.root.cost

    def render(self, names: Optional[Sequence[str]] = None) -> str:
        return self.root.render(names)


def check_chain_shapes(shapes: Sequence[Sequence[int]]) -> Tuple[Shape, ...]:
    if not shapes:
        raise ShapeMismatchError("Matrix chain needs at least one operand")
    checked: List[Shape] = []
    for pos, dims in enumerate(shapes):
        dims = tuple(int(d) for d in dims)
        if len(dims) != 2:
            raise ShapeMismatchError(
                f"Chain operand {pos} must be a matrix, got shape {dims}",
                actual=dims,
            )
        checked.append(dims)
    for pos in range(len(checked) - 1):
        left, right = checked[pos], checked[pos + 1]
        if left[1] != right[0]:
            raise NonMultipliableShapesError(
                f"Chain operands {pos} {left} and {pos + 1} {right} are not multipliable",
                position=pos,
                left=left,
                right=right,
            )
    return tuple(checked)


def chain_cost_table(shapes: Sequence[Sequence[int]]) -> List[List[Optional[ChainCell]]]:
    return _cost_table(check_chain_shapes(shapes))


def _cost_table(checked: Sequence[Shape]) -> List[List[Optional[ChainCell]]]:
    n = len(checked)
    table: List[List[Optional[ChainCell]]] = [[None] * n for _ in range(n)]
    for i, dims in enumerate(checked):
        table[i][i] = ChainCell(cost=0, shape=dims)

    for length in range(2, n + 1):
        for i in range(n - length + 1):
            j = i + length - 1
            best: Optional[ChainCell] = None
            for split in range(i, j):
                left = table[i][split]
                right = table[split + 1][j]
                cost = left.cost + right.cost + left.shape[0] * left.shape[1] * right.shape[1]
                if best is None or cost < best.cost:
                    best = ChainCell(cost=cost, shape=(left.shape[0], right.shape[1]), split=split)
            table[i][j] = best
    return table


def naive_chain_cost(shapes: Sequence[Sequence[int]]) -> int:
    return _naive_cost(check_chain_shapes(shapes))


def _naive_cost(checked: Sequence[Shape]) -> int:
    rows = checked[0][0]
    cost = 0
    for inner, cols in checked[1:]:
        cost += rows * inner * cols
    return cost


def plan_chain(shapes: Sequence[Sequence[int]]) -> ChainPlan:
    checked = check_chain_shapes(shapes)
    table = _cost_table(checked)

    def _build(i: int, j: int) -> ChainNode:
        cell = table[i][j]
        if i == j:
            return ChainNode(start=i, stop=j, shape=cell.shape, cost=0)
        return ChainNode(
            start=i,
            stop=j,
            shape=cell.shape,
            cost=cell.cost,
            left=_build(i, cell.split),
            right=_build(cell.split + 1, j),
        )

    return ChainPlan(
        shapes=checked,
        root=_build(0, len(checked) - 1),
        naive_cost=_naive_cost(checked),
    )


def execute_chain(
    plan: ChainPlan,
    operands: Sequence[Any],
    multiply: Callable[[Any, Any], Any],
) -> Any:
    """Evaluate ``plan`` post-order, calling ``multiply`` at each inner node."""
    if len(operands) != len(plan.shapes):
        raise ShapeMismatchError(
            f"Plan covers {len(plan.shapes)} operands, got {len(operands)}",
        )

    def _walk(node: ChainNode) -> Any:
        if node.is_leaf:
            return operands[node.start]
        return multiply(_walk(node.left), _walk(node.right))

    return _walk(plan.root)
