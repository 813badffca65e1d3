"""Subscript normalization.

A raw contraction spec is rewritten into a :class:`NormalizedSpec` whose
labels are small integers assigned in order of first appearance (inputs
before outputs). Two specs that differ only in label spelling normalize to
equal objects, which is what lets them share a compiled kernel.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Hashable, List, Sequence, Tuple, Union

from .exceptions import ConsistencyError, MalformedSpecError
from .ir import (
    SEPARATOR,
    BinOp,
    Call,
    Expr,
    InputRef,
    NormalizedSpec,
    Number,
    OutputRef,
    UnaryOp,
    default_transform,
    transform_refs,
)
from .parser import parse_transform, tokenize_spec

RawSpec = Union[str, Sequence[Any], NormalizedSpec]

_EXPR_TYPES = (Number, InputRef, OutputRef, UnaryOp, BinOp, Call)


def normalize(raw: RawSpec) -> NormalizedSpec:
    if isinstance(raw, NormalizedSpec):
        return raw
    if isinstance(raw, str):
        tokens = tokenize_spec(raw)
    else:
        tokens = list(raw)

    segments = _split_segments(tokens)
    inputs = [_operand_labels(token) for token in segments[0]]

    transforms_raw: List[Any] = []
    if len(segments) == 1:
        outputs = [_outer_merge(inputs)]
    else:
        if len(segments) == 3:
            transforms_raw = segments[1]
        outputs = [_operand_labels(token) for token in segments[-1]]
        if not outputs:
            outputs = [[]]

    if len(transforms_raw) > len(outputs):
        raise MalformedSpecError(
            f"{len(transforms_raw)} transform(s) given for {len(outputs)} output(s)"
        )

    ids: Dict[Hashable, int] = {}
    for spec in inputs:
        for label in spec:
            ids.setdefault(label, len(ids))
    input_labels = set(ids)
    undefined = []
    for spec in outputs:
        for label in spec:
            if label not in input_labels and label not in undefined:
                undefined.append(label)
            ids.setdefault(label, len(ids))
    if undefined:
        names = ", ".join(str(label) for label in undefined)
        raise ConsistencyError(
            f"Output spec uses label(s) {{{names}}} that appear in no input spec",
            labels=undefined,
        )

    transforms: List[Expr] = []
    for k in range(len(outputs)):
        if k < len(transforms_raw):
            expr = _transform(transforms_raw[k])
            _check_refs(expr, k, len(inputs), len(outputs))
            _check_literals(expr, k)
        else:
            expr = default_transform(k, len(inputs))
        transforms.append(expr)

    labels: List[Hashable] = [None] * len(ids)
    for label, idx in ids.items():
        labels[idx] = label

    return NormalizedSpec(
        inputs=tuple(tuple(ids[label] for label in spec) for spec in inputs),
        transforms=tuple(transforms),
        outputs=tuple(tuple(ids[label] for label in spec) for spec in outputs),
        labels=tuple(labels),
    )


def _split_segments(tokens: Sequence[Any]) -> List[List[Any]]:
    segments: List[List[Any]] = [[]]
    for token in tokens:
        if isinstance(token, str) and token == SEPARATOR:
            segments.append([])
            if len(segments) > 3:
                raise MalformedSpecError(
                    f"At most two '{SEPARATOR}' separators are allowed",
                    token=SEPARATOR,
                )
            continue
        segments[-1].append(token)
    return segments


def _operand_labels(token: Any) -> List[Hashable]:
    if isinstance(token, str):
        for char in token:
            if not char.isalpha():
                raise MalformedSpecError(
                    f"Invalid label character {char!r} in operand spec '{token}'",
                    token=token,
                )
        return list(token)
    if isinstance(token, (list, tuple)):
        return list(token)
    raise MalformedSpecError(f"Unsupported operand spec {token!r}", token=repr(token))


def _outer_merge(inputs: Sequence[Sequence[Hashable]]) -> List[Hashable]:
    # Sorted by label, not by order of appearance.
    union: Dict[Hashable, None] = {}
    for spec in inputs:
        for label in spec:
            union.setdefault(label, None)
    return sorted(union, key=_label_sort_key)


def _label_sort_key(label: Hashable) -> Tuple[str, Any]:
    if isinstance(label, (int, float, str)):
        return (type(label).__name__, label)
    return (type(label).__name__, repr(label))


def _transform(token: Any) -> Expr:
    if isinstance(token, str):
        return parse_transform(token)
    if isinstance(token, _EXPR_TYPES):
        return token
    raise MalformedSpecError(f"Unsupported transform {token!r}", token=repr(token))


def _check_refs(expr: Expr, output: int, n_inputs: int, n_outputs: int) -> None:
    inputs, outputs = transform_refs(expr)
    for position in inputs:
        if position >= n_inputs:
            raise MalformedSpecError(
                f"Transform for output {output + 1} reads ${position + 1} "
                f"but only {n_inputs} input(s) are declared",
                token=f"${position + 1}",
            )
    for position in outputs:
        if position >= n_outputs:
            raise MalformedSpecError(
                f"Transform for output {output + 1} reads @{position + 1} "
                f"but only {n_outputs} output(s) are declared",
                token=f"@{position + 1}",
            )


def _check_literals(expr: Expr, output: int) -> None:
    if isinstance(expr, Number):
        if isinstance(expr.value, float) and not math.isfinite(expr.value):
            raise MalformedSpecError(
                f"Transform for output {output + 1} uses non-finite literal {expr.value!r}",
                token=repr(expr.value),
            )
    elif isinstance(expr, UnaryOp):
        _check_literals(expr.operand, output)
    elif isinstance(expr, BinOp):
        _check_literals(expr.left, output)
        _check_literals(expr.right, output)
    elif isinstance(expr, Call):
        for arg in expr.args:
            _check_literals(arg, output)
