from __future__ import annotations

import itertools
import linecache
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .exceptions import (
    ArgumentCountError,
    DimensionMismatchError,
    KernelError,
    ShapeMismatchError,
    TypeMismatchError,
)
from .ir import BinOp, Call, Expr, InputRef, NormalizedSpec, Number, OutputRef, UnaryOp
from .normalizer import RawSpec, normalize
from .planner import plan_loop_order
from .tensor import allocate, as_tensor, element_type, promote_types, shape

_KERNEL_COUNTER = itertools.count()

_FUNCTION_NAMES = {
    "abs": "_np.abs",
    "exp": "_np.exp",
    "log": "_np.log",
    "sqrt": "_np.sqrt",
    "sin": "_np.sin",
    "cos": "_np.cos",
    "tanh": "_np.tanh",
    "min": "_np.minimum",
    "max": "_np.maximum",
}


def _index_text(spec: Sequence[int]) -> str:
    if not spec:
        return "()"
    return ", ".join(f"i{idx}" for idx in spec)


def _literal(value: Any) -> str:
    if isinstance(value, float) and not math.isfinite(value):
        if math.isnan(value):
            return "_np.nan"
        return "_np.inf" if value > 0 else "(-_np.inf)"
    return repr(value)


def _render(expr: Expr, spec: NormalizedSpec) -> str:
    if isinstance(expr, Number):
        return _literal(expr.value)
    if isinstance(expr, InputRef):
        return f"v{expr.position}"
    if isinstance(expr, OutputRef):
        return f"out{expr.position}[{_index_text(spec.outputs[expr.position])}]"
    if isinstance(expr, UnaryOp):
        return f"({expr.op}{_render(expr.operand, spec)})"
    if isinstance(expr, BinOp):
        return f"({_render(expr.left, spec)} {expr.op} {_render(expr.right, spec)})"
    if isinstance(expr, Call):
        args = ", ".join(_render(arg, spec) for arg in expr.args)
        return f"{_FUNCTION_NAMES[expr.name]}({args})"
    raise KernelError(f"Cannot generate code for transform node {expr!r}")


def generate_source(spec: NormalizedSpec, loop_order: Sequence[int], name: str) -> str:
    """Emit Python source for the nested-loop kernel of ``spec``."""
    params = [f"in{n}" for n in range(len(spec.inputs))]
    params += [f"out{k}" for k in range(len(spec.outputs))]
    params += [f"d{idx}" for idx in loop_order]
    lines = [f"def {name}({', '.join(params)}):"]

    # Each input element is loaded once, in the shallowest loop where all of
    # its ids are bound.
    used_inputs = sorted(
        {
            node.position
            for expr in spec.transforms
            for node in _walk(expr)
            if isinstance(node, InputRef)
        }
    )
    depth_of = {idx: depth for depth, idx in enumerate(loop_order)}
    loads: Dict[int, List[int]] = {}
    for position in used_inputs:
        ids = spec.inputs[position]
        depth = max((depth_of[idx] + 1 for idx in ids), default=0)
        loads.setdefault(depth, []).append(position)

    indent = "    "
    for depth in range(len(loop_order) + 1):
        for position in loads.get(depth, []):
            lines.append(
                f"{indent}v{position} = in{position}[{_index_text(spec.inputs[position])}]"
            )
        if depth < len(loop_order):
            idx = loop_order[depth]
            lines.append(f"{indent}for i{idx} in range(d{idx}):")
            indent += "    "

    for k, expr in enumerate(spec.transforms):
        target = f"out{k}[{_index_text(spec.outputs[k])}]"
        lines.append(f"{indent}{target} = {_render(expr, spec)}")
    lines.append("    return None")
    return "\n".join(lines) + "\n"


def _walk(expr: Expr):
    yield expr
    if isinstance(expr, UnaryOp):
        yield from _walk(expr.operand)
    elif isinstance(expr, BinOp):
        yield from _walk(expr.left)
        yield from _walk(expr.right)
    elif isinstance(expr, Call):
        for arg in expr.args:
            yield from _walk(arg)


class CompiledKernel:
    """Executable nested-loop realization of one (spec, loop order) pair."""

    def __init__(self, spec: NormalizedSpec, loop_order: Sequence[int], planner: str = ""):
        self.spec = spec
        self.loop_order: Tuple[int, ...] = tuple(loop_order)
        self.planner = planner
        serial = next(_KERNEL_COUNTER)
        self.name = f"_einsum_kernel_{serial}"
        self.filename = f"<einloop-kernel-{serial}>"
        self.source = generate_source(spec, self.loop_order, self.name)
        self._function = self._compile()

    def _compile(self):
        try:
            code = compile(self.source, self.filename, "exec")
        except SyntaxError as exc:  # pragma: no cover - generator bug
            raise KernelError(f"Generated kernel failed to compile: {exc}") from exc
        linecache.cache[self.filename] = (
            len(self.source),
            None,
            self.source.splitlines(keepends=True),
            self.filename,
        )
        namespace: Dict[str, Any] = {"_np": np}
        exec(code, namespace)
        return namespace[self.name]

    # Public API ----------------------------------------------------------------
    def __call__(self, *operands: Any, out: Any = None):
        inputs, outputs = bind_operands(self.spec, operands, out)
        results = self.execute(inputs, outputs)
        if len(results) == 1:
            return results[0]
        return tuple(results)

    def execute(
        self,
        inputs: Sequence[Any],
        outputs: Optional[Sequence[Optional[np.ndarray]]] = None,
    ) -> List[np.ndarray]:
        tensors = [as_tensor(value) for value in inputs]
        dims = self.dimensions(tensors)
        results = self.prepare_outputs(tensors, dims, outputs)
        self.run(tensors, results, dims)
        return results

    def run(
        self,
        inputs: Sequence[np.ndarray],
        outputs: Sequence[np.ndarray],
        dims: Dict[int, int],
    ) -> None:
        """Run the loops on already validated tensors."""
        self._function(*inputs, *outputs, *(dims[idx] for idx in self.loop_order))

    def dimensions(
        self,
        inputs: Sequence[np.ndarray],
        spec: Optional[NormalizedSpec] = None,
    ) -> Dict[int, int]:
        """Map every id to its extent, checking all input occurrences agree.

        ``spec`` only supplies label names for error messages; it must be
        structurally equal to the kernel's own spec.
        """
        spec = spec if spec is not None else self.spec
        occurrences: Dict[int, List[Tuple[int, int, int]]] = {}
        for n, (ids, tensor) in enumerate(zip(self.spec.inputs, inputs)):
            dims = shape(tensor)
            if len(dims) != len(ids):
                raise ShapeMismatchError(
                    f"Input {n + 1} has rank {len(dims)} (shape {dims}) "
                    f"but its spec names {len(ids)} axes",
                    actual=dims,
                )
            for axis, (idx, size) in enumerate(zip(ids, dims)):
                occurrences.setdefault(idx, []).append((n, axis, size))

        sizes: Dict[int, int] = {}
        for idx, occ in occurrences.items():
            distinct = sorted({size for _, _, size in occ})
            if len(distinct) > 1:
                label = spec.label_for(idx)
                where = ", ".join(f"input {n + 1} axis {axis} = {size}" for n, axis, size in occ)
                raise DimensionMismatchError(
                    f"Label '{label}' has inconsistent sizes {distinct}: {where}",
                    label=label,
                    sizes=distinct,
                    occurrences=occ,
                )
            sizes[idx] = occ[0][2]
        return sizes

    def output_shapes(self, dims: Dict[int, int]) -> List[Tuple[int, ...]]:
        return [tuple(dims[idx] for idx in ids) for ids in self.spec.outputs]

    def prepare_outputs(
        self,
        inputs: Sequence[np.ndarray],
        dims: Dict[int, int],
        outputs: Optional[Sequence[Optional[np.ndarray]]] = None,
    ) -> List[np.ndarray]:
        n_out = len(self.spec.outputs)
        supplied = list(outputs) if outputs is not None else [None] * n_out
        expected_type = promote_types([element_type(t) for t in inputs])
        expected_shapes = self.output_shapes(dims)

        # Validate everything before allocating anything.
        for k, (tensor, expected) in enumerate(zip(supplied, expected_shapes)):
            if tensor is None:
                continue
            if not isinstance(tensor, np.ndarray):
                raise TypeMismatchError(
                    f"Output {k + 1} must be a numpy.ndarray, got {type(tensor).__name__}",
                    expected=np.ndarray,
                    actual=type(tensor),
                )
            actual = shape(tensor)
            if actual != expected:
                raise ShapeMismatchError(
                    f"Output {k + 1} has shape {actual}, expected {expected}",
                    expected=expected,
                    actual=actual,
                )
            if element_type(tensor) != expected_type:
                raise TypeMismatchError(
                    f"Output {k + 1} has element type {element_type(tensor)}, "
                    f"expected {expected_type}",
                    expected=expected_type,
                    actual=element_type(tensor),
                )

        return [
            allocate(expected, expected_type) if tensor is None else tensor
            for tensor, expected in zip(supplied, expected_shapes)
        ]


def bind_operands(
    spec: NormalizedSpec,
    operands: Sequence[Any],
    out: Any = None,
) -> Tuple[List[Any], List[Optional[np.ndarray]]]:
    """Split positional operands into inputs and (optional) outputs."""
    n_in = len(spec.inputs)
    n_out = len(spec.outputs)
    if out is not None:
        if len(operands) != n_in:
            raise ArgumentCountError(
                f"Spec declares {n_in} input(s) but {len(operands)} operand(s) "
                "were given alongside out=",
                expected=(n_in,),
                actual=len(operands),
            )
        outputs = list(out) if isinstance(out, (list, tuple)) else [out]
        if len(outputs) != n_out:
            raise ArgumentCountError(
                f"Spec declares {n_out} output(s) but out= holds {len(outputs)}",
                expected=(n_out,),
                actual=len(outputs),
            )
        return list(operands), outputs
    if len(operands) == n_in:
        return list(operands), [None] * n_out
    if len(operands) == n_in + n_out:
        return list(operands[:n_in]), list(operands[n_in:])
    raise ArgumentCountError(
        f"Spec declares {n_in} input(s) and {n_out} output(s); "
        f"expected {n_in} or {n_in + n_out} operands, got {len(operands)}",
        expected=(n_in, n_in + n_out),
        actual=len(operands),
    )


def compile_kernel(
    spec: NormalizedSpec,
    loop_order: Optional[Sequence[int]] = None,
    *,
    planner: str = "locality",
) -> CompiledKernel:
    if loop_order is None:
        loop_order = plan_loop_order(spec, planner)
    elif sorted(loop_order) != list(spec.ids):
        raise ValueError(
            f"Loop order {tuple(loop_order)} is not a permutation of ids {spec.ids}"
        )
    return CompiledKernel(spec, loop_order, planner=planner)


def build_kernel(raw: RawSpec, *, planner: str = "locality") -> CompiledKernel:
    """Normalize, plan and compile ``raw`` in one step."""
    return compile_kernel(normalize(raw), planner=planner)
