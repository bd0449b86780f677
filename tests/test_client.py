import asyncio
import logging
import time
from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qs

import httpx
import orjson
import pytest
from pydantic import ValidationError

from promlib.client import Client, ClientOptions, format_duration, unix_seconds
from promlib.errors import DecodeError, PromError
from promlib.querylog import QueryLogger
from promlib.types import LabelSet, Matrix, Result, Sample, Vector

VECTOR_BODY = {
    "status": "success",
    "data": {
        "resultType": "vector",
        "result": [{"metric": {"job": "api"}, "value": [1700000000, "1"]}],
    },
    "warnings": ["partial"],
}


class Backend:
    """Mock transport recording requests and replying with a fixed body."""

    def __init__(self, body=None, status_code=200):
        self.body = VECTOR_BODY if body is None else body
        self.status_code = status_code
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        content = self.body if isinstance(self.body, bytes) else orjson.dumps(self.body)
        return httpx.Response(self.status_code, content=content)

    def form(self, i=-1):
        return parse_qs(self.requests[i].content.decode())

    def client(self, **kwargs):
        http = httpx.AsyncClient(base_url="http://prom.test", transport=httpx.MockTransport(self))
        return Client(http=http, **kwargs)


def run(backend, call, **kwargs):
    async def main():
        async with backend.client(**kwargs) as client:
            return await call(client)

    return asyncio.run(main())


T0 = datetime(2024, 1, 1, tzinfo=UTC)
T1 = datetime(2024, 1, 2, tzinfo=UTC)


def test_instant_query():
    backend = Backend()
    result = run(backend, lambda c: c.instant_query("up", T0))

    assert result == Result(Vector((Sample(LabelSet(job="api"), 1700000000000, 1.0),)), warnings=("partial",))

    request = backend.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/api/v1/query"
    assert backend.form() == {"query": ["up"], "time": [str(int(T0.timestamp()))]}


def test_instant_query_without_time():
    backend = Backend()
    run(backend, lambda c: c.instant_query("up"))

    assert backend.form() == {"query": ["up"]}


def test_range_query():
    backend = Backend({"status": "success", "data": {"resultType": "matrix", "result": []}})
    result = run(backend, lambda c: c.range_query("rate(x[5m])", T0, T1, timedelta(days=31)))

    assert result == Result(Matrix())
    assert backend.requests[0].url.path == "/api/v1/query_range"
    assert backend.form() == {
        "query": ["rate(x[5m])"],
        "start": ["1704067200"],
        "end": ["1704153600"],
        "step": ["31d"],
    }


def test_range_query_requires_bounds():
    with pytest.raises(ValueError, match="'start' must be set"):
        run(Backend(), lambda c: c.range_query("up", None, T1))

    with pytest.raises(ValueError, match="'end' must be set"):
        run(Backend(), lambda c: c.range_query("up", T0, None))


def test_label_query():
    backend = Backend({"status": "success", "data": ["__name__", "job"]})
    labels = run(backend, lambda c: c.label_query(["up", 'http_requests{job="api"}'], start=T0))

    assert labels == ["__name__", "job"]
    assert backend.requests[0].url.path == "/api/v1/labels"
    assert backend.form() == {
        "match[]": ["up", 'http_requests{job="api"}'],
        "start": ["1704067200"],
    }


def test_series_query():
    backend = Backend({"status": "success", "data": [{"__name__": "up", "job": "api"}, {"__name__": "up"}]})
    series = run(backend, lambda c: c.series_query(["up"], T0, T1))

    assert series == [LabelSet(__name__="up", job="api"), LabelSet(__name__="up")]
    assert backend.requests[0].url.path == "/api/v1/series"


def test_series_query_rejects_bad_payload():
    backend = Backend({"status": "success", "data": [{"job": 1}]})

    with pytest.raises(DecodeError) as info:
        run(backend, lambda c: c.series_query(["up"]))
    assert info.value.field == "data[0]"


def test_error_status():
    backend = Backend(b"bad query", status_code=400)

    with pytest.raises(PromError) as info:
        run(backend, lambda c: c.instant_query("up{"))

    assert info.value.status_code == 400
    assert info.value.message == "bad query"
    assert str(info.value) == "status_code: 400, msg=bad query"


def test_undecodable_body():
    with pytest.raises(DecodeError):
        run(Backend(b"<html>"), lambda c: c.instant_query("up"))


def test_transport_error():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    async def main():
        http = httpx.AsyncClient(base_url="http://prom.test", transport=httpx.MockTransport(refuse))
        async with Client(http=http) as client:
            await client.instant_query("up")

    with pytest.raises(httpx.ConnectError):
        asyncio.run(main())


def test_headers_applied():
    backend = Backend()
    run(backend, lambda c: c.instant_query("up"), headers={"API-Token": "s3cret"})

    assert backend.requests[0].headers["API-Token"] == "s3cret"


def test_query_logging(caplog):
    caplog.set_level(logging.INFO, logger="promlib.queries")
    backend = Backend()
    run(backend, lambda c: c.instant_query("up"), query_log=QueryLogger(log_responses=True))

    messages = [r.getMessage() for r in caplog.records if r.name == "promlib.queries"]
    assert len(messages) == 3
    assert messages[0].startswith("instant-query query_id=1 query='up'")
    assert "elapsed_time=" in messages[1]
    assert "warnings=['partial']" in messages[1]
    assert '"resultType":"vector"' in messages[2]


def test_query_logging_failure(caplog):
    caplog.set_level(logging.INFO, logger="promlib.queries")
    backend = Backend(b"nope", status_code=503)

    with pytest.raises(PromError):
        run(backend, lambda c: c.instant_query("up"), query_log=QueryLogger())

    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert "status_code: 503" in errors[0].getMessage()


def test_query_logging_disabled(caplog):
    caplog.set_level(logging.WARNING, logger="promlib.queries")
    run(Backend(), lambda c: c.instant_query("up"), query_log=QueryLogger())

    assert not [r for r in caplog.records if r.name == "promlib.queries"]


@pytest.mark.parametrize(
    ("delta", "text"),
    [
        (timedelta(0), "0s"),
        (timedelta(minutes=1), "1m"),
        (timedelta(hours=1, minutes=30), "1h30m"),
        (timedelta(days=28), "4w"),
        (timedelta(days=30), "30d"),
        (timedelta(days=31), "31d"),
        (timedelta(days=365), "1y"),
        (timedelta(seconds=1, milliseconds=500), "1s500ms"),
    ],
)
def test_format_duration(delta, text):
    assert format_duration(delta) == text


def test_options_server_url():
    opts = ClientOptions(server_url="http://localhost:9090")
    assert opts.base_url() == "http://localhost:9090"


def test_options_tenant():
    opts = ClientOptions(source_tenant="acme")
    assert opts.base_url() == "https://acme.chronosphere.io/data/m3/"


@pytest.mark.parametrize("kwargs", [{}, {"server_url": "http://x", "source_tenant": "acme"}])
def test_options_target_required(kwargs):
    with pytest.raises(ValidationError):
        ClientOptions(**kwargs)


def test_options_token_file(tmp_path, monkeypatch):
    monkeypatch.setenv("PROM_API_TOKEN", "from-env")
    token_file = tmp_path / "token"
    token_file.write_text("from-file\n")

    assert ClientOptions(server_url="http://x", api_token_file=token_file).api_token() == "from-file"
    assert ClientOptions(server_url="http://x").api_token() == "from-env"


def test_options_client(monkeypatch):
    monkeypatch.setenv("PROM_API_TOKEN", "tok")
    client = ClientOptions(source_tenant="acme", log_queries=True, timeout=5).client()

    try:
        assert client.http.headers["API-Token"] == "tok"
        assert str(client.http.base_url) == "https://acme.chronosphere.io/data/m3/"
        assert isinstance(client.query_log, QueryLogger)
    finally:
        asyncio.run(client.close())


def test_options_client_without_token(monkeypatch):
    monkeypatch.delenv("PROM_API_TOKEN", raising=False)
    client = ClientOptions(server_url="http://localhost:9090").client()

    try:
        assert "API-Token" not in client.http.headers
        assert not isinstance(client.query_log, QueryLogger)
    finally:
        asyncio.run(client.close())


@pytest.fixture
def new_york(monkeypatch):
    monkeypatch.setenv("TZ", "America/New_York")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


@pytest.mark.skipif(not hasattr(time, "tzset"), reason="needs time.tzset")
def test_naive_times_are_utc(new_york):
    assert unix_seconds(datetime(2024, 1, 1)) == "1704067200"

    backend = Backend({"status": "success", "data": {"resultType": "matrix", "result": []}})
    run(backend, lambda c: c.range_query("up", datetime(2024, 1, 1), datetime(2024, 1, 2)))

    assert backend.form()["start"] == ["1704067200"]
    assert backend.form()["end"] == ["1704153600"]
