# Copyright Max R. P. Grossmann, Holger Gerhardt, et al., 2026.
# SPDX-License-Identifier: LGPL-3.0-or-later

"""
Fake client answering queries from canned rules.

Rules are checked in order and the first whose target matches the query
wins. A target field left unset matches anything; query text is compared
after collapsing insignificant whitespace. Rules load from YAML::

    range_queries:
      - name: cpu
        target:
          query: sum(rate(cpu[5m]))
          start: 2024-01-01T00:00:00Z
        result: '{"resultType": "matrix", "result": []}'
      - name: broken
        target: {query: avg(up)}
        err: this is an error
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import IO, Annotated, Any, Self, TypeVar

import orjson
import yaml
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

from promlib.codec import Codec
from promlib.errors import PromError
from promlib.monthly import MonthlyQuery
from promlib.types import LabelSet, Result
from promlib.utils import normalize_query

_codec = Codec()
R = TypeVar("R", bound="Rule")


class CannedError(RuntimeError):
    """Error returned by a rule instead of a result."""


def _utc(t: datetime) -> datetime:
    if t.tzinfo is None:
        return t.replace(tzinfo=UTC)

    return t


def _same(want: Any, got: Any) -> bool:
    return want is None or want == got


UtcDatetime = Annotated[datetime, AfterValidator(_utc)]


class QueryTarget(BaseModel, ABC):
    model_config = ConfigDict(frozen=True, extra="forbid")

    @abstractmethod
    def matches(self, other: Any) -> bool: ...


class InstantQueryTarget(QueryTarget):
    query: str
    time: UtcDatetime | None = None

    def matches(self, other: "InstantQueryTarget") -> bool:
        return normalize_query(self.query) == normalize_query(other.query) and _same(self.time, other.time)


class RangeQueryTarget(QueryTarget):
    query: str
    start: UtcDatetime | None = None
    end: UtcDatetime | None = None
    step: timedelta | None = None

    def matches(self, other: "RangeQueryTarget") -> bool:
        return (
            normalize_query(self.query) == normalize_query(other.query)
            and _same(self.start, other.start)
            and _same(self.end, other.end)
            and _same(self.step, other.step)
        )


class SelectorQueryTarget(QueryTarget):
    selectors: frozenset[str] | None = None
    start: UtcDatetime | None = None
    end: UtcDatetime | None = None

    def matches(self, other: "SelectorQueryTarget") -> bool:
        return _same(self.selectors, other.selectors) and _same(self.start, other.start) and _same(self.end, other.end)


class LabelQueryTarget(SelectorQueryTarget):
    pass


class SeriesQueryTarget(SelectorQueryTarget):
    pass


class Rule(BaseModel):
    """A target query and its outcome: either an error or a result."""

    model_config = ConfigDict(extra="forbid")

    name: str = ""
    target: QueryTarget
    err: str | None = None

    def matches(self, query: Any) -> bool:
        return self.target.matches(query)


class ResultRule(Rule):
    result: Result | None = None

    @field_validator("result", mode="before")
    @classmethod
    def decode_result(cls, v: Any) -> Any:
        if isinstance(v, str):
            return _codec.decode(v)
        if isinstance(v, dict):
            return _codec.decode(orjson.dumps(v))

        return v


class InstantQueryRule(ResultRule):
    target: InstantQueryTarget


class RangeQueryRule(ResultRule):
    target: RangeQueryTarget


class LabelQueryRule(Rule):
    target: LabelQueryTarget
    result: list[str] = Field(default_factory=list)


class SeriesQueryRule(Rule):
    target: SeriesQueryTarget
    result: list[LabelSet] = Field(default_factory=list)


class Rules(BaseModel):
    model_config = ConfigDict(extra="forbid")

    instant_queries: list[InstantQueryRule] = Field(default_factory=list)
    range_queries: list[RangeQueryRule] = Field(default_factory=list)
    label_queries: list[LabelQueryRule] = Field(default_factory=list)
    series_queries: list[SeriesQueryRule] = Field(default_factory=list)

    @classmethod
    def from_yaml(cls, source: str | Path | IO[str]) -> Self:
        if isinstance(source, Path):
            with source.open() as f:
                raw = yaml.safe_load(f)
        else:
            raw = yaml.safe_load(source)

        return cls.model_validate(raw or {})


def find_matching_rule(rules: Sequence[R], query: Any) -> R:
    for rule in rules:
        if rule.matches(query):
            if rule.err is not None:
                raise CannedError(rule.err)
            return rule

    raise PromError(404, "matcher not found")


class FakeClient:
    """Drop-in replacement for Client serving canned results.

    Every query is recorded in ``requests`` in the order it was issued."""

    def __init__(self, rules: Rules | None = None) -> None:
        self.rules = rules or Rules()
        self.requests: list[QueryTarget] = []

    async def instant_query(self, query: str, time: datetime | None = None) -> Result:
        target = InstantQueryTarget(query=query, time=time)
        self.requests.append(target)
        rule = find_matching_rule(self.rules.instant_queries, target)
        return rule.result if rule.result is not None else Result()

    async def range_query(
        self,
        query: str,
        start: datetime | None,
        end: datetime | None,
        step: timedelta = timedelta(minutes=1),
    ) -> Result:
        target = RangeQueryTarget(query=query, start=start, end=end, step=step)
        self.requests.append(target)
        rule = find_matching_rule(self.rules.range_queries, target)
        return rule.result if rule.result is not None else Result()

    async def label_query(
        self,
        selectors: Iterable[str] = (),
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[str]:
        target = LabelQueryTarget(selectors=frozenset(selectors), start=start, end=end)
        self.requests.append(target)
        return list(find_matching_rule(self.rules.label_queries, target).result)

    async def series_query(
        self,
        selectors: Iterable[str] = (),
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[LabelSet]:
        target = SeriesQueryTarget(selectors=frozenset(selectors), start=start, end=end)
        self.requests.append(target)
        return list(find_matching_rule(self.rules.series_queries, target).result)

    def monthly_query(self, query: str) -> MonthlyQuery:
        return MonthlyQuery(self, query)
