# Copyright Max R. P. Grossmann, Holger Gerhardt, et al., 2026.
# SPDX-License-Identifier: LGPL-3.0-or-later

"""
Result model for Prometheus queries.

A query result holds exactly one of four value shapes (string, scalar,
vector, matrix) or nothing at all. Timestamps are Unix milliseconds.
"""

from collections.abc import Iterator, Mapping
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, ClassVar

from pydantic import GetCoreSchemaHandler
from pydantic.dataclasses import dataclass as validated_dataclass
from pydantic_core import core_schema

from promlib.utils import ensure, float_key, same_float

METRIC_NAME_LABEL = "__name__"


def time_from_millis(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=UTC)


def millis(t: datetime) -> int:
    if t.tzinfo is None:
        t = t.replace(tzinfo=UTC)

    return round(t.timestamp() * 1000)


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


class ValueType(StrEnum):
    STRING = "string"
    SCALAR = "scalar"
    VECTOR = "vector"
    MATRIX = "matrix"


class LabelSet(Mapping[str, str]):
    """Immutable mapping of label names to label values identifying a series."""

    __slots__ = ("_labels",)

    def __init__(self, labels: Mapping[str, str] | None = None, /, **kwargs: str) -> None:
        merged = dict(labels or {})
        merged.update(kwargs)

        ensure(
            all(isinstance(k, str) and isinstance(v, str) for k, v in merged.items()),
            TypeError,
            "label names and values must be strings",
        )

        object.__setattr__(self, "_labels", merged)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("LabelSet is immutable")

    def __getitem__(self, key: str) -> str:
        return self._labels[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._labels)

    def __len__(self) -> int:
        return len(self._labels)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Mapping):
            return NotImplemented

        return self._labels == dict(other.items())

    def __hash__(self) -> int:
        return hash(frozenset(self._labels.items()))

    @property
    def name(self) -> str:
        return self._labels.get(METRIC_NAME_LABEL, "")

    def to_dict(self) -> dict[str, str]:
        return dict(self._labels)

    def __str__(self) -> str:
        pairs = sorted(f"{k}={_quote(v)}" for k, v in self._labels.items() if k != METRIC_NAME_LABEL)

        if not pairs:
            return self.name or "{}"

        return f"{self.name}{{{', '.join(pairs)}}}"

    def __repr__(self) -> str:
        return f"LabelSet({self._labels!r})"

    @classmethod
    def _coerce(cls, value: Any) -> "LabelSet":
        if isinstance(value, LabelSet):
            return value
        if value is None:
            return cls()
        if not isinstance(value, Mapping):
            raise ValueError(f"expected a mapping of labels, got {type(value).__name__}")
        if not all(isinstance(k, str) and isinstance(v, str) for k, v in value.items()):
            raise ValueError("label names and values must be strings")

        return cls(value)

    @classmethod
    def __get_pydantic_core_schema__(cls, source: Any, handler: GetCoreSchemaHandler) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(cls._coerce)


@validated_dataclass(frozen=True, eq=False)
class SamplePair:
    timestamp: int
    value: float

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SamplePair):
            return NotImplemented

        return self.timestamp == other.timestamp and same_float(self.value, other.value)

    def __hash__(self) -> int:
        return hash((self.timestamp, float_key(self.value)))


@validated_dataclass(frozen=True, eq=False)
class Sample:
    metric: LabelSet
    timestamp: int
    value: float

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Sample):
            return NotImplemented

        return (
            self.metric == other.metric
            and self.timestamp == other.timestamp
            and same_float(self.value, other.value)
        )

    def __hash__(self) -> int:
        return hash((self.metric, self.timestamp, float_key(self.value)))


@validated_dataclass(frozen=True)
class SampleStream:
    metric: LabelSet
    values: tuple[SamplePair, ...] = ()


@validated_dataclass(frozen=True)
class StringValue:
    value_type: ClassVar[ValueType] = ValueType.STRING

    timestamp: int
    value: str


@validated_dataclass(frozen=True, eq=False)
class ScalarValue:
    value_type: ClassVar[ValueType] = ValueType.SCALAR

    timestamp: int
    value: float

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ScalarValue):
            return NotImplemented

        return self.timestamp == other.timestamp and same_float(self.value, other.value)

    def __hash__(self) -> int:
        return hash((self.timestamp, float_key(self.value)))


@validated_dataclass(frozen=True)
class Vector:
    value_type: ClassVar[ValueType] = ValueType.VECTOR

    samples: tuple[Sample, ...] = ()


@validated_dataclass(frozen=True)
class Matrix:
    value_type: ClassVar[ValueType] = ValueType.MATRIX

    streams: tuple[SampleStream, ...] = ()


ResultValue = StringValue | ScalarValue | Vector | Matrix


@validated_dataclass(frozen=True)
class Result:
    data: ResultValue | None = None
    error: str = ""
    warnings: tuple[str, ...] = ()

    @property
    def value_type(self) -> ValueType | None:
        return None if self.data is None else self.data.value_type
