# Copyright Max R. P. Grossmann, Holger Gerhardt, et al., 2026.
# SPDX-License-Identifier: LGPL-3.0-or-later

"""
Uniform cursor over any query result shape.

``new_value_iter`` picks the cursor for the value it is given; callers then
walk strings, scalars, vectors and matrices the same way::

    it = new_value_iter(result.data)
    while it.advance():
        print(it.labels, it.timestamp, it.string_value)
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from datetime import datetime
from enum import Enum
from typing import Any, NamedTuple

from promlib.codec import format_value
from promlib.types import (
    LabelSet,
    Matrix,
    Sample,
    SamplePair,
    SampleStream,
    ScalarValue,
    StringValue,
    Vector,
    time_from_millis,
)

EMPTY_LABELS = LabelSet()


class IterState(Enum):
    NOT_STARTED = "not_started"
    POSITIONED = "positioned"
    EXHAUSTED = "exhausted"


class Point(NamedTuple):
    labels: LabelSet
    timestamp: int
    value: float
    text: str


class ValueIter(ABC):
    """Cursor over the elements of a result value.

    Accessors are only meaningful while the last ``advance()`` returned True;
    before the first advance and after exhaustion they return empty values."""

    def __init__(self) -> None:
        self.state = IterState.NOT_STARTED

    @abstractmethod
    def _step(self) -> bool: ...

    @abstractmethod
    def _labels(self) -> LabelSet: ...

    @abstractmethod
    def _timestamp(self) -> int: ...

    @abstractmethod
    def _float(self) -> float: ...

    @abstractmethod
    def _string(self) -> str: ...

    def advance(self) -> bool:
        if self.state is IterState.EXHAUSTED:
            return False

        if self._step():
            self.state = IterState.POSITIONED
            return True

        self.state = IterState.EXHAUSTED
        return False

    @property
    def positioned(self) -> bool:
        return self.state is IterState.POSITIONED

    @property
    def labels(self) -> LabelSet:
        return self._labels() if self.positioned else EMPTY_LABELS

    @property
    def timestamp_ms(self) -> int:
        return self._timestamp() if self.positioned else 0

    @property
    def timestamp(self) -> datetime | None:
        return time_from_millis(self._timestamp()) if self.positioned else None

    @property
    def float_value(self) -> float:
        return self._float() if self.positioned else 0.0

    @property
    def string_value(self) -> str:
        return self._string() if self.positioned else ""

    def __iter__(self) -> Iterator[Point]:
        while self.advance():
            yield Point(self.labels, self.timestamp_ms, self.float_value, self.string_value)


class EmptyIter(ValueIter):
    def _step(self) -> bool:
        return False

    def _labels(self) -> LabelSet:
        return EMPTY_LABELS

    def _timestamp(self) -> int:
        return 0

    def _float(self) -> float:
        return 0.0

    def _string(self) -> str:
        return ""


class MatrixIter(ValueIter):
    """Flattens every stream's pairs into one sequence; empty streams are skipped."""

    def __init__(self, matrix: Matrix) -> None:
        super().__init__()
        self.streams = matrix.streams
        self.i = 0
        self.j = 0
        self.stream: SampleStream | None = None
        self.pair: SamplePair | None = None

    def _step(self) -> bool:
        while self.i < len(self.streams):
            stream = self.streams[self.i]
            if self.j >= len(stream.values):
                self.i += 1
                self.j = 0
                continue

            self.stream = stream
            self.pair = stream.values[self.j]
            self.j += 1
            return True

        return False

    def _labels(self) -> LabelSet:
        assert self.stream is not None
        return self.stream.metric

    def _timestamp(self) -> int:
        assert self.pair is not None
        return self.pair.timestamp

    def _float(self) -> float:
        assert self.pair is not None
        return self.pair.value

    def _string(self) -> str:
        return format_value(self._float())


class VectorIter(ValueIter):
    def __init__(self, vector: Vector) -> None:
        super().__init__()
        self.samples = vector.samples
        self.i = 0
        self.sample: Sample | None = None

    def _step(self) -> bool:
        if self.i >= len(self.samples):
            return False

        self.sample = self.samples[self.i]
        self.i += 1
        return True

    def _labels(self) -> LabelSet:
        assert self.sample is not None
        return self.sample.metric

    def _timestamp(self) -> int:
        assert self.sample is not None
        return self.sample.timestamp

    def _float(self) -> float:
        assert self.sample is not None
        return self.sample.value

    def _string(self) -> str:
        return format_value(self._float())


class ScalarIter(ValueIter):
    def __init__(self, scalar: ScalarValue) -> None:
        super().__init__()
        self.scalar = scalar
        self.consumed = False

    def _step(self) -> bool:
        if self.consumed:
            return False

        self.consumed = True
        return True

    def _labels(self) -> LabelSet:
        return EMPTY_LABELS

    def _timestamp(self) -> int:
        return self.scalar.timestamp

    def _float(self) -> float:
        return self.scalar.value

    def _string(self) -> str:
        return format_value(self.scalar.value)


class StringIter(ValueIter):
    def __init__(self, string: StringValue) -> None:
        super().__init__()
        self.string = string
        self.consumed = False

    def _step(self) -> bool:
        if self.consumed:
            return False

        self.consumed = True
        return True

    def _labels(self) -> LabelSet:
        return EMPTY_LABELS

    def _timestamp(self) -> int:
        return self.string.timestamp

    def _float(self) -> float:
        # strings carry no numeric interpretation
        return 0.0

    def _string(self) -> str:
        return self.string.value


def new_value_iter(value: Any) -> ValueIter:
    match value:
        case Matrix():
            return MatrixIter(value)
        case Vector():
            return VectorIter(value)
        case ScalarValue():
            return ScalarIter(value)
        case StringValue():
            return StringIter(value)
        case _:
            return EmptyIter()
