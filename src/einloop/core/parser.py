from __future__ import annotations

import ast
import math
from functools import lru_cache
from pathlib import Path
from typing import Any, List, Optional

from lark import Lark, Token, Transformer
from lark.exceptions import LarkError, UnexpectedInput, VisitError

from .exceptions import EinloopError, MalformedSpecError
from .ir import (
    SEPARATOR,
    TRANSFORM_FUNCTIONS,
    BinOp,
    Call,
    Expr,
    InputRef,
    Number,
    OutputRef,
    UnaryOp,
)

GRAMMAR_PATH = Path(__file__).with_name("transform_grammar.lark")


@lru_cache(maxsize=1)
def _build_lark() -> Lark:
    grammar = GRAMMAR_PATH.read_text()
    return Lark(
        grammar,
        parser="lalr",
        start="start",
        propagate_positions=True,
        maybe_placeholders=False,
    )


class TransformBuilder(Transformer):
    def __init__(self, spec_text: str, offset: int = 0):
        super().__init__()
        self.spec_text = spec_text
        self.offset = offset

    # ------------------------------------------------------------------ helpers
    def _error_token(self, token: Token, message: str) -> None:
        raise MalformedSpecError(
            message,
            token=str(token),
            column=self.offset + (token.column or 1),
            spec_text=self.spec_text,
        )

    def _reference(self, token: Token) -> int:
        position = int(token.value[1:])
        if position < 1:
            self._error_token(token, f"References are 1-based; got '{token.value}'")
        return position - 1

    # ------------------------------------------------------------------ visitors
    def transforms(self, items):
        return list(items)

    def number(self, items):
        token: Token = items[0]
        value = ast.literal_eval(token.value)
        if isinstance(value, float) and not math.isfinite(value):
            self._error_token(token, f"Numeric literal '{token.value}' is not finite")
        return Number(value)

    def input_ref(self, items):
        return InputRef(self._reference(items[0]))

    def output_ref(self, items):
        return OutputRef(self._reference(items[0]))

    def call(self, items):
        name_token: Token = items[0]
        args = tuple(items[1:])
        name = name_token.value
        arity = TRANSFORM_FUNCTIONS.get(name)
        if arity is None:
            self._error_token(name_token, f"Unknown function '{name}' in transform")
        if len(args) != arity:
            self._error_token(
                name_token,
                f"{name} expects {arity} argument(s), got {len(args)}",
            )
        return Call(name=name, args=args)

    def neg(self, items):
        return UnaryOp("-", items[0])

    def pos(self, items):
        return items[0]

    def add(self, items):
        return BinOp("+", items[0], items[1])

    def sub(self, items):
        return BinOp("-", items[0], items[1])

    def mul(self, items):
        return BinOp("*", items[0], items[1])

    def div(self, items):
        return BinOp("/", items[0], items[1])

    def pow(self, items):
        return BinOp("**", items[0], items[1])


def parse_transforms(
    text: str,
    *,
    offset: int = 0,
    spec_text: Optional[str] = None,
) -> List[Expr]:
    """Parse a comma separated list of transform expressions.

    ``offset`` shifts reported columns so errors point into ``spec_text`` when
    ``text`` is a slice of a larger spec string.
    """
    if not text.strip():
        return []
    spec_text = text if spec_text is None else spec_text
    parser = _build_lark()
    try:
        tree = parser.parse(text)
    except UnexpectedInput as exc:
        column = getattr(exc, "column", None)
        if column is None or column < 1:
            column = len(text)
        raise MalformedSpecError(
            "Syntax error in transform expression",
            token=text,
            column=offset + column,
            spec_text=spec_text,
        ) from exc
    except LarkError as exc:  # pragma: no cover
        raise MalformedSpecError(str(exc), token=text) from exc

    try:
        return TransformBuilder(spec_text, offset).transform(tree)
    except VisitError as exc:
        if isinstance(exc.orig_exc, EinloopError):
            raise exc.orig_exc from None
        raise


def parse_transform(text: str) -> Expr:
    exprs = parse_transforms(text)
    if len(exprs) != 1:
        raise MalformedSpecError(
            f"Expected exactly one transform expression, got {len(exprs)}",
            token=text,
        )
    return exprs[0]


def _check_bare_token(token: str, column: int, spec_text: str) -> None:
    for pos, char in enumerate(token):
        if not char.isalpha():
            raise MalformedSpecError(
                f"Invalid label character {char!r} in operand spec '{token}'",
                token=token,
                column=column + pos,
                spec_text=spec_text,
            )


def _split_operands(segment: str, start: int, spec_text: str) -> List[str]:
    if not segment.strip():
        return []
    tokens: List[str] = []
    column = start + 1
    for piece in segment.split(","):
        stripped = piece.strip()
        lead = len(piece) - len(piece.lstrip())
        _check_bare_token(stripped, column + lead, spec_text)
        tokens.append(stripped)
        column += len(piece) + 1
    return tokens


def tokenize_spec(spec_text: str) -> List[Any]:
    """Turn the string spelling ``"ij,jk->ik"`` into the sequence spelling.

    Operand specs come back as bare label strings, separators as ``"->"`` and
    transform expressions as parsed AST nodes.
    """
    starts: List[int] = []
    pos = spec_text.find(SEPARATOR)
    while pos != -1:
        starts.append(pos)
        pos = spec_text.find(SEPARATOR, pos + len(SEPARATOR))
    if len(starts) > 2:
        raise MalformedSpecError(
            f"At most two '{SEPARATOR}' separators are allowed, found {len(starts)}",
            token=SEPARATOR,
            column=starts[2] + 1,
            spec_text=spec_text,
        )

    bounds = [0] + [s + len(SEPARATOR) for s in starts]
    ends = starts + [len(spec_text)]
    segments = [(spec_text[b:e], b) for b, e in zip(bounds, ends)]

    tokens: List[Any] = list(_split_operands(segments[0][0], segments[0][1], spec_text))
    if len(segments) == 3:
        text, start = segments[1]
        tokens.append(SEPARATOR)
        tokens.extend(parse_transforms(text, offset=start, spec_text=spec_text))
    if len(segments) >= 2:
        text, start = segments[-1]
        tokens.append(SEPARATOR)
        tokens.extend(_split_operands(text, start, spec_text))
    return tokens
