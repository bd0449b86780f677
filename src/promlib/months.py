# Copyright Max R. P. Grossmann, Holger Gerhardt, et al., 2026.
# SPDX-License-Identifier: LGPL-3.0-or-later

import calendar
import re
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from typing import Annotated, Self

from pydantic import Field
from pydantic.dataclasses import dataclass as validated_dataclass

_MONTH_YEAR = re.compile(r"^(\d{4})-(\d{1,2})$")


@validated_dataclass(frozen=True, order=True)
class MonthYear:
    year: int
    month: Annotated[int, Field(ge=1, le=12)]

    @classmethod
    def parse(cls, text: str) -> Self:
        match = _MONTH_YEAR.match(text.strip())
        if match is None:
            raise ValueError(f"invalid month '{text}', expected YYYY-MM")

        return cls(int(match.group(1)), int(match.group(2)))

    @classmethod
    def of(cls, t: datetime) -> Self:
        return cls(t.year, t.month)

    def next_month(self) -> "MonthYear":
        if self.month == 12:
            return MonthYear(self.year + 1, 1)

        return MonthYear(self.year, self.month + 1)

    def days(self) -> int:
        return calendar.monthrange(self.year, self.month)[1]

    def month_start(self) -> datetime:
        return datetime(self.year, self.month, 1, tzinfo=UTC)

    def month_end(self) -> datetime:
        """Last instant (millisecond resolution) of the last day of the month."""
        return datetime(self.year, self.month, self.days(), 23, 59, 59, 999000, tzinfo=UTC)

    def step(self) -> timedelta:
        """A step spanning the whole month: its day count in seconds."""
        return timedelta(days=self.days())

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


def months_between(start: MonthYear, end: MonthYear) -> int:
    if end < start:
        start, end = end, start

    return (end.year * 12 + end.month) - (start.year * 12 + start.month) + 1


def month_range(start: MonthYear, end: MonthYear) -> Iterator[MonthYear]:
    """Every month from the earlier to the later of the two, inclusive."""
    if end < start:
        start, end = end, start

    month = start
    while month <= end:
        yield month
        month = month.next_month()
