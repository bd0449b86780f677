# Copyright Max R. P. Grossmann, Holger Gerhardt, et al., 2026.
# SPDX-License-Identifier: LGPL-3.0-or-later

"""
Async HTTP client for the Prometheus query API.

Queries are POSTed form-encoded to ``/api/v1/*``. Non-2xx responses raise
PromError carrying the status code and response body.
"""

import logging
import os
from collections.abc import Iterable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Literal, Self

import httpx
import orjson
from pydantic import BaseModel, model_validator

from promlib.codec import Codec, decode_labels
from promlib.errors import DecodeError, PromError
from promlib.monthly import MonthlyQuery
from promlib.querylog import LoggedQuery, NopQueryLogger, QueryLogger
from promlib.types import LabelSet, Result, millis

PATH_INSTANT_QUERY = "/api/v1/query"
PATH_RANGE_QUERY = "/api/v1/query_range"
PATH_LABEL_QUERY = "/api/v1/labels"
PATH_SERIES_QUERY = "/api/v1/series"

CHRONO_PROMETHEUS_URL = "https://{tenant}.chronosphere.io/data/m3/"
API_TOKEN_ENV = "PROM_API_TOKEN"
DEFAULT_STEP = timedelta(minutes=1)

_DURATION_UNITS = (
    ("y", 1000 * 60 * 60 * 24 * 365, True),
    ("w", 1000 * 60 * 60 * 24 * 7, True),
    ("d", 1000 * 60 * 60 * 24, False),
    ("h", 1000 * 60 * 60, False),
    ("m", 1000 * 60, False),
    ("s", 1000, False),
    ("ms", 1, False),
)


def format_duration(d: timedelta) -> str:
    """Render a duration the way Prometheus does (``31d``, ``4w``, ``1h30m``).

    Years and weeks are only used when they divide the duration exactly."""
    ms = round(d.total_seconds() * 1000)
    if ms == 0:
        return "0s"

    out = "-" if ms < 0 else ""
    ms = abs(ms)

    for unit, mult, exact in _DURATION_UNITS:
        if exact and ms % mult != 0:
            continue
        if (n := ms // mult) > 0:
            out += f"{n}{unit}"
            ms -= n * mult

    return out


def unix_seconds(t: datetime) -> str:
    # naive datetimes are UTC, as everywhere else in the library
    return str(millis(t) // 1000)


def _parse_data(raw: bytes) -> Any:
    try:
        doc = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise DecodeError("", f"unable to parse wire format: {exc}") from exc

    if not isinstance(doc, dict):
        raise DecodeError("", f"expected an object, got {doc!r}")

    return doc.get("data")


def _selector_form(
    selectors: Iterable[str],
    start: datetime | None,
    end: datetime | None,
) -> dict[str, Any]:
    form: dict[str, Any] = {}

    if start is not None:
        form["start"] = unix_seconds(start)
    if end is not None:
        form["end"] = unix_seconds(end)

    sels = list(selectors)
    if sels:
        form["match[]"] = sels

    return form


class Client:
    """Client for running queries against a Prometheus-compatible backend."""

    def __init__(
        self,
        base_url: str = "",
        *,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        query_log: QueryLogger | NopQueryLogger | None = None,
        http: httpx.AsyncClient | None = None,
        codec: Codec | None = None,
    ) -> None:
        if http is None:
            http = httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout)
        elif headers:
            http.headers.update(headers)

        self.http = http
        self.query_log = query_log or NopQueryLogger()
        self.codec = codec or Codec()

    async def close(self) -> None:
        await self.http.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: Any) -> Literal[False]:
        await self.close()
        return False

    async def _post(self, path: str, form: dict[str, Any], log: LoggedQuery) -> bytes:
        try:
            resp = await self.http.post(path, data=form)
        except httpx.HTTPError as exc:
            log.failed(exc)
            raise

        if resp.is_error:
            err = PromError(resp.status_code, resp.text)
            log.failed(err)
            raise err

        return resp.content

    async def instant_query(self, query: str, time: datetime | None = None) -> Result:
        form = {"query": query}
        if time is not None:
            form["time"] = unix_seconds(time)

        log = self.query_log.begin_query("instant-query", query=query, time=time)
        result = self._decode(await self._post(PATH_INSTANT_QUERY, form, log), log)
        log.complete(result)
        return result

    async def range_query(
        self,
        query: str,
        start: datetime | None,
        end: datetime | None,
        step: timedelta = DEFAULT_STEP,
    ) -> Result:
        if start is None:
            raise ValueError("'start' must be set for range queries")
        if end is None:
            raise ValueError("'end' must be set for range queries")

        form = {
            "query": query,
            "start": unix_seconds(start),
            "end": unix_seconds(end),
            "step": format_duration(step),
        }

        log = self.query_log.begin_query("range-query", query=query, start=start, end=end, step=form["step"])
        result = self._decode(await self._post(PATH_RANGE_QUERY, form, log), log)
        log.complete(result)
        return result

    async def label_query(
        self,
        selectors: Iterable[str] = (),
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[str]:
        form = _selector_form(selectors, start, end)
        log = self.query_log.begin_query("labels-query", sels=form.get("match[]", []), start=start, end=end)

        raw = await self._post(PATH_LABEL_QUERY, form, log)
        try:
            data = _parse_data(raw)
            if not isinstance(data, list) or not all(isinstance(v, str) for v in data):
                raise DecodeError("data", f"expected a list of label names, got {data!r}")
        except DecodeError as exc:
            log.failed(exc)
            raise

        log.complete(data)
        return data

    async def series_query(
        self,
        selectors: Iterable[str] = (),
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[LabelSet]:
        form = _selector_form(selectors, start, end)
        log = self.query_log.begin_query("series-query", sels=form.get("match[]", []), start=start, end=end)

        raw = await self._post(PATH_SERIES_QUERY, form, log)
        try:
            data = _parse_data(raw)
            if not isinstance(data, list):
                raise DecodeError("data", f"expected a list of label sets, got {data!r}")
            series = [decode_labels(d, f"data[{i}]") for i, d in enumerate(data)]
        except DecodeError as exc:
            log.failed(exc)
            raise

        log.complete(series)
        return series

    def monthly_query(self, query: str) -> MonthlyQuery:
        return MonthlyQuery(self, query)

    def _decode(self, raw: bytes, log: LoggedQuery) -> Result:
        try:
            return self.codec.decode(raw)
        except DecodeError as exc:
            log.failed(exc)
            raise


class ClientOptions(BaseModel):
    """Options for building a Client, as set on a command line or in a config file."""

    api_token_file: Path | None = None
    server_url: str | None = None
    source_tenant: str | None = None
    log_queries: bool = False
    log_responses: bool = False
    timeout: float = 30.0

    @model_validator(mode="after")
    def validate_target(self) -> Self:
        if self.server_url and self.source_tenant:
            raise ValueError("only one of source_tenant or server_url must be specified")
        if not self.server_url and not self.source_tenant:
            raise ValueError("one of source_tenant or server_url must be specified")
        return self

    def base_url(self) -> str:
        if self.server_url:
            return self.server_url

        return CHRONO_PROMETHEUS_URL.format(tenant=self.source_tenant)

    def api_token(self) -> str | None:
        if self.api_token_file is not None:
            return self.api_token_file.read_text().strip()

        return os.environ.get(API_TOKEN_ENV)

    def client(self, log: logging.Logger | None = None) -> Client:
        headers = {}
        if token := self.api_token():
            headers["API-Token"] = token

        query_log: QueryLogger | None = None
        if self.log_queries or self.log_responses:
            query_log = QueryLogger(log, log_responses=self.log_responses)

        return Client(self.base_url(), headers=headers, timeout=self.timeout, query_log=query_log)
