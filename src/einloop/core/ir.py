from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, List, Sequence, Tuple, Union

import numpy as _np

SEPARATOR = "->"

# Functions a transform expression may call, with their arity.
TRANSFORM_FUNCTIONS: Dict[str, int] = {
    "abs": 1,
    "exp": 1,
    "log": 1,
    "sqrt": 1,
    "sin": 1,
    "cos": 1,
    "tanh": 1,
    "min": 2,
    "max": 2,
}


# Transform expression AST ----------------------------------------------------
#
# Nodes are frozen so a whole normalized spec can be hashed and used as a
# kernel cache key.


@dataclass(frozen=True)
class Number:
    value: Union[int, float]


@dataclass(frozen=True)
class InputRef:
    position: int  # 0-based; written as $1, $2, ...


@dataclass(frozen=True)
class OutputRef:
    position: int  # 0-based; written as @1, @2, ...


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: Any


@dataclass(frozen=True)
class BinOp:
    op: str
    left: Any
    right: Any


@dataclass(frozen=True)
class Call:
    name: str
    args: Tuple[Any, ...]


Expr = Any  # Number | InputRef | OutputRef | UnaryOp | BinOp | Call


def default_transform(output: int, n_inputs: int) -> Expr:
    """``@k + $1 * ... * $n``: accumulate the product of all inputs."""
    product: Expr = Number(1)
    for position in range(n_inputs):
        ref = InputRef(position)
        product = ref if position == 0 else BinOp("*", product, ref)
    return BinOp("+", OutputRef(output), product)


def format_transform(expr: Expr) -> str:
    if isinstance(expr, Number):
        return repr(expr.value)
    if isinstance(expr, InputRef):
        return f"${expr.position + 1}"
    if isinstance(expr, OutputRef):
        return f"@{expr.position + 1}"
    if isinstance(expr, UnaryOp):
        return f"({expr.op}{format_transform(expr.operand)})"
    if isinstance(expr, BinOp):
        return f"({format_transform(expr.left)} {expr.op} {format_transform(expr.right)})"
    if isinstance(expr, Call):
        args = ", ".join(format_transform(arg) for arg in expr.args)
        return f"{expr.name}({args})"
    raise TypeError(f"Not a transform expression: {expr!r}")


def transform_refs(expr: Expr) -> Tuple[List[int], List[int]]:
    """Return the input and output positions an expression reads."""
    inputs: List[int] = []
    outputs: List[int] = []

    def _walk(node: Expr) -> None:
        if isinstance(node, InputRef):
            inputs.append(node.position)
        elif isinstance(node, OutputRef):
            outputs.append(node.position)
        elif isinstance(node, UnaryOp):
            _walk(node.operand)
        elif isinstance(node, BinOp):
            _walk(node.left)
            _walk(node.right)
        elif isinstance(node, Call):
            for arg in node.args:
                _walk(arg)

    _walk(expr)
    return inputs, outputs


# Normalized specification ----------------------------------------------------


@dataclass(frozen=True)
class NormalizedSpec:
    inputs: Tuple[Tuple[int, ...], ...]
    transforms: Tuple[Expr, ...]
    outputs: Tuple[Tuple[int, ...], ...]
    # Original spelling of each id; not part of the structural identity.
    labels: Tuple[Hashable, ...] = field(default=(), compare=False, hash=False)

    @property
    def ids(self) -> Tuple[int, ...]:
        seen: Dict[int, None] = {}
        for spec in self.inputs + self.outputs:
            for idx in spec:
                seen.setdefault(idx, None)
        return tuple(sorted(seen))

    @property
    def specs(self) -> Tuple[Tuple[int, ...], ...]:
        return self.inputs + self.outputs

    def label_for(self, idx: int) -> Hashable:
        if 0 <= idx < len(self.labels):
            return self.labels[idx]
        return idx

    def is_default_transform(self, output: int) -> bool:
        return self.transforms[output] == default_transform(output, len(self.inputs))

    def to_raw(self) -> List[Any]:
        raw: List[Any] = [list(spec) for spec in self.inputs]
        raw.append(SEPARATOR)
        raw.extend(format_transform(expr) for expr in self.transforms)
        raw.append(SEPARATOR)
        raw.extend(list(spec) for spec in self.outputs)
        return raw

    def format(self) -> str:
        def _spec(spec: Sequence[int]) -> str:
            names = [self.label_for(idx) for idx in spec]
            if all(isinstance(n, str) and len(n) == 1 for n in names):
                return "".join(names)
            return "(" + " ".join(str(n) for n in names) + ")"

        text = ",".join(_spec(spec) for spec in self.inputs)
        if not all(self.is_default_transform(k) for k in range(len(self.outputs))):
            text += SEPARATOR + ",".join(format_transform(expr) for expr in self.transforms)
        return text + SEPARATOR + ",".join(_spec(spec) for spec in self.outputs)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "inputs": [list(spec) for spec in self.inputs],
            "transforms": [format_transform(expr) for expr in self.transforms],
            "outputs": [list(spec) for spec in self.outputs],
            "labels": [json_ready(label) for label in self.labels],
        }


def json_ready(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (_np.integer, _np.floating)):
        return value.item()
    if isinstance(value, _np.ndarray):
        return value.tolist()
    if isinstance(value, dict):
        return {str(k): json_ready(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [json_ready(v) for v in value]
    return str(value)
