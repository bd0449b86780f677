# Copyright Max R. P. Grossmann, Holger Gerhardt, et al., 2026.
# SPDX-License-Identifier: LGPL-3.0-or-later

"""
Range queries over whole calendar months.

The step of a monthly query depends on the month's length, so a range of
months is split into one range query per month. Those run concurrently
behind an admission gate and their matrices are stitched back together in
month order.
"""

import asyncio
import copy
from datetime import datetime, timedelta
from typing import Protocol, Self

from promlib.errors import QueryCancelledError
from promlib.months import MonthYear, month_range
from promlib.types import Matrix, Result, SampleStream
from promlib.utils import ensure


class RangeQueryExecutor(Protocol):
    async def range_query(
        self,
        query: str,
        start: datetime,
        end: datetime,
        step: timedelta,
    ) -> Result: ...


class MonthlyQuery:
    """A range query evaluated month by month.

    Builder methods return a modified copy, so a base query can be reused::

        q = MonthlyQuery(client, "sum(up)").start(MonthYear(2024, 1))
        result = await q.end(MonthYear(2024, 3)).max_parallel(2).do()
    """

    def __init__(self, executor: RangeQueryExecutor, query: str) -> None:
        self.executor = executor
        self.query = query
        self.start_month: MonthYear | None = None
        self.end_month: MonthYear | None = None
        self.parallelism = 0

    def start(self, month: MonthYear) -> Self:
        q = copy.copy(self)
        q.start_month = month
        return q

    def end(self, month: MonthYear) -> Self:
        q = copy.copy(self)
        q.end_month = month
        return q

    def max_parallel(self, n: int) -> Self:
        ensure(n >= 0, ValueError, "max_parallel must not be negative")
        q = copy.copy(self)
        q.parallelism = n
        return q

    async def do(self, *, timeout: float | None = None) -> Result:
        """Run every month's range query and merge the results.

        The first failing month's exception is raised as is. When ``timeout``
        seconds pass first, outstanding months are cancelled and
        QueryCancelledError is raised instead."""
        if self.start_month is None or self.end_month is None:
            raise ValueError("'start' and 'end' must be set for monthly queries")

        if timeout is None:
            return await self._run(self.start_month, self.end_month)

        deadline = asyncio.timeout(timeout)
        try:
            async with deadline:
                return await self._run(self.start_month, self.end_month)
        except TimeoutError as exc:
            if deadline.expired():
                raise QueryCancelledError(f"monthly query timed out after {timeout}s") from exc
            raise

    async def _run(self, first: MonthYear, last: MonthYear) -> Result:
        months = list(month_range(first, last))
        gate = asyncio.Semaphore(self.parallelism or len(months))
        results: list[Result | None] = [None] * len(months)
        failed = asyncio.Event()

        async def run_month(idx: int, month: MonthYear) -> None:
            async with gate:
                # a failure is flagged before its gate slot frees up, so queued months never start
                if failed.is_set():
                    return
                try:
                    results[idx] = await self.executor.range_query(
                        self.query,
                        month.month_start(),
                        month.month_end(),
                        month.step(),
                    )
                except BaseException:
                    failed.set()
                    raise

        tasks = [asyncio.create_task(run_month(i, m), name=f"monthly-query-{m}") for i, m in enumerate(months)]

        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        for task in tasks:
            if task in done and not task.cancelled() and (exc := task.exception()) is not None:
                raise exc

        return merge_monthly(months, results)


def merge_monthly(months: list[MonthYear], results: list[Result | None]) -> Result:
    streams: list[SampleStream] = []
    warnings: list[str] = []

    for month, r in zip(months, results, strict=True):
        if r is None or not isinstance(r.data, Matrix):
            got = "nothing" if r is None or r.data is None else type(r.data).__name__
            raise TypeError(f"range query for {month} returned {got}, expected a matrix")

        streams.extend(r.data.streams)
        warnings.extend(r.warnings)

    return Result(Matrix(tuple(streams)), warnings=tuple(warnings))


async def run_monthly_query(
    executor: RangeQueryExecutor,
    query: str,
    start: MonthYear,
    end: MonthYear,
    max_parallel: int = 0,
    *,
    timeout: float | None = None,
) -> Result:
    return await MonthlyQuery(executor, query).start(start).end(end).max_parallel(max_parallel).do(timeout=timeout)
