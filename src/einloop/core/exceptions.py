from __future__ import annotations

from typing import Any, Optional, Sequence, Tuple


class EinloopError(Exception):
    """Base class for einloop-specific exceptions."""


class MalformedSpecError(EinloopError, ValueError):
    def __init__(
        self,
        message: str,
        *,
        token: Optional[str] = None,
        column: Optional[int] = None,
        spec_text: Optional[str] = None,
    ):
        detail = _format_location(column, spec_text)
        super().__init__(f"{message}{detail}")
        self.token = token
        self.column = column
        self.spec_text = spec_text


class ConsistencyError(EinloopError, ValueError):
    def __init__(self, message: str, *, labels: Sequence[Any] = ()):
        super().__init__(message)
        self.labels = tuple(labels)


class DimensionMismatchError(EinloopError, ValueError):
    def __init__(
        self,
        message: str,
        *,
        label: Any = None,
        sizes: Sequence[int] = (),
        occurrences: Sequence[Tuple[int, int, int]] = (),
    ):
        super().__init__(message)
        self.label = label
        self.sizes = tuple(sizes)
        # (operand, axis, size) triples
        self.occurrences = tuple(occurrences)


class ShapeMismatchError(EinloopError, ValueError):
    def __init__(
        self,
        message: str,
        *,
        expected: Optional[Tuple[int, ...]] = None,
        actual: Optional[Tuple[int, ...]] = None,
    ):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class TypeMismatchError(EinloopError, TypeError):
    def __init__(self, message: str, *, expected: Any = None, actual: Any = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class NonMultipliableShapesError(EinloopError, ValueError):
    def __init__(
        self,
        message: str,
        *,
        position: Optional[int] = None,
        left: Optional[Tuple[int, ...]] = None,
        right: Optional[Tuple[int, ...]] = None,
    ):
        super().__init__(message)
        self.position = position
        self.left = left
        self.right = right


class ArgumentCountError(EinloopError, TypeError):
    def __init__(self, message: str, *, expected: Sequence[int] = (), actual: int = 0):
        super().__init__(message)
        self.expected = tuple(expected)
        self.actual = actual


class KernelError(EinloopError, RuntimeError):
    pass


class CacheError(EinloopError, RuntimeError):
    pass


def _format_location(column: Optional[int], spec_text: Optional[str]) -> str:
    if column is None:
        return ""
    location_str = f" (col {column})"
    if spec_text is None or column < 1:
        return location_str
    caret = " " * (column - 1) + "^"
    return f"{location_str}\n  {spec_text}\n  {caret}"
