# Copyright Max R. P. Grossmann, Holger Gerhardt, et al., 2026.
# SPDX-License-Identifier: LGPL-3.0-or-later

"""
Logging of queries issued by a client.

Each query gets an id when it begins; its completion (with elapsed time and,
optionally, the response body) or failure is logged under the same id.
"""

import itertools
import logging
import time
from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol

import orjson

from promlib.codec import Codec
from promlib.types import LabelSet, Result

logger = logging.getLogger("promlib.queries")

_response_codec = Codec(envelope="api")


class LoggedQuery(Protocol):
    def complete(self, result: Any) -> None: ...

    def failed(self, exc: BaseException) -> None: ...


class NopLoggedQuery:
    def complete(self, result: Any) -> None:
        pass

    def failed(self, exc: BaseException) -> None:
        pass


class NopQueryLogger:
    def begin_query(self, query_type: str, **fields: Any) -> LoggedQuery:
        return NopLoggedQuery()


def _render(value: Any) -> str:
    match value:
        case datetime():
            return value.isoformat()
        case str():
            return repr(value)
        case list() | tuple():
            return "[" + ", ".join(_render(v) for v in value) + "]"
        case _:
            return str(value)


def render_fields(fields: dict[str, Any]) -> str:
    return " ".join(f"{k}={_render(v)}" for k, v in fields.items())


def _default(obj: Any) -> Any:
    if isinstance(obj, LabelSet):
        return obj.to_dict()

    raise TypeError(f"cannot serialize {type(obj).__name__}")


def render_response(result: Any) -> str:
    try:
        if isinstance(result, Result):
            return _response_codec.encode(result).decode()

        return orjson.dumps(result, default=_default).decode()
    except TypeError as exc:
        return f"err marshalling: {exc}"


class QueryLogger:
    def __init__(
        self,
        log: logging.Logger | None = None,
        *,
        log_responses: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.log = log or logger
        self.log_responses = log_responses
        self.clock = clock
        self.ids = itertools.count(1)

    def begin_query(self, query_type: str, **fields: Any) -> LoggedQuery:
        query_id = next(self.ids)

        if not self.log.isEnabledFor(logging.INFO):
            return NopLoggedQuery()

        self.log.info("%s query_id=%d %s", query_type, query_id, render_fields(fields))
        return QueryLogEntry(self, query_type, query_id, fields, self.clock())


class QueryLogEntry:
    def __init__(
        self,
        owner: QueryLogger,
        query_type: str,
        query_id: int,
        fields: dict[str, Any],
        started: float,
    ) -> None:
        self.owner = owner
        self.query_type = query_type
        self.query_id = query_id
        self.fields = fields
        self.started = started

    def elapsed(self) -> float:
        return self.owner.clock() - self.started

    def complete(self, result: Any) -> None:
        fields = dict(self.fields)
        if isinstance(result, Result) and result.warnings:
            fields["warnings"] = list(result.warnings)

        self.owner.log.info(
            "%s query_id=%d elapsed_time=%.3fs %s",
            self.query_type,
            self.query_id,
            self.elapsed(),
            render_fields(fields),
        )

        if self.owner.log_responses:
            self.owner.log.info("%s query_id=%d result=%s", self.query_type, self.query_id, render_response(result))

    def failed(self, exc: BaseException) -> None:
        self.owner.log.error(
            "%s query_id=%d elapsed_time=%.3fs %s error=%s",
            self.query_type,
            self.query_id,
            self.elapsed(),
            render_fields(self.fields),
            exc,
        )
