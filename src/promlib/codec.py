# Copyright Max R. P. Grossmann, Holger Gerhardt, et al., 2026.
# SPDX-License-Identifier: LGPL-3.0-or-later

"""
Wire codec for Prometheus query results.

Wire format: a JSON object carrying a ``resultType`` discriminant and its
``result`` payload, either at the top level or nested under ``data`` as the
HTTP API returns it, plus ``error`` and ``warnings``. Sample values travel as
strings; timestamps as fractional Unix seconds.
"""

import math
from collections.abc import Callable
from decimal import Decimal
from typing import Any, Literal, cast

from orjson import JSONDecodeError
from orjson import dumps as jd
from orjson import loads as jl

from promlib.errors import DecodeError
from promlib.types import (
    LabelSet,
    Matrix,
    Result,
    ResultValue,
    Sample,
    SamplePair,
    SampleStream,
    ScalarValue,
    StringValue,
    ValueType,
    Vector,
)

Envelope = Literal["flat", "api"]


def format_value(v: float) -> str:
    """Shortest decimal that parses back to ``v``, never in exponent form."""
    if math.isnan(v):
        return "NaN"
    if math.isinf(v):
        return "+Inf" if v > 0 else "-Inf"

    text = format(Decimal(repr(v)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")

    return text


def parse_value(raw: Any, field: str) -> float:
    if not isinstance(raw, str):
        raise DecodeError(field, f"sample value must be a string, got {raw!r}")

    try:
        return float(raw)
    except ValueError:
        raise DecodeError(field, f"unparseable sample value {raw!r}") from None


def encode_timestamp(ms: int) -> int | float:
    if ms % 1000 == 0:
        return ms // 1000

    return ms / 1000


def decode_timestamp(raw: Any, field: str) -> int:
    if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
        raise DecodeError(field, f"timestamp must be a number, got {raw!r}")

    try:
        seconds = float(raw)
    except ValueError:
        raise DecodeError(field, f"unparseable timestamp {raw!r}") from None

    if not math.isfinite(seconds):
        raise DecodeError(field, f"timestamp must be finite, got {raw!r}")

    return round(seconds * 1000)


def decode_labels(raw: Any, field: str) -> LabelSet:
    if raw is None:
        return LabelSet()

    if not isinstance(raw, dict) or not all(isinstance(v, str) for v in raw.values()):
        raise DecodeError(field, f"label set must map names to strings, got {raw!r}")

    return LabelSet(raw)


def decode_pair(raw: Any, field: str) -> tuple[int, str]:
    if not isinstance(raw, list) or len(raw) != 2:
        raise DecodeError(field, f"expected a [timestamp, value] pair, got {raw!r}")

    if not isinstance(raw[1], str):
        raise DecodeError(f"{field}[1]", f"value must be a string, got {raw[1]!r}")

    return decode_timestamp(raw[0], f"{field}[0]"), raw[1]


def _object(raw: Any, field: str) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise DecodeError(field, f"expected an object, got {raw!r}")

    return raw


def _array(raw: Any, field: str) -> list[Any]:
    # a null vector or matrix is an empty one
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise DecodeError(field, f"expected an array, got {raw!r}")

    return raw


def decode_string(raw: Any, field: str) -> StringValue:
    ts, text = decode_pair(raw, field)
    return StringValue(ts, text)


def decode_scalar(raw: Any, field: str) -> ScalarValue:
    ts, text = decode_pair(raw, field)
    return ScalarValue(ts, parse_value(text, f"{field}[1]"))


def decode_vector(raw: Any, field: str) -> Vector:
    samples = []

    for i, elem in enumerate(_array(raw, field)):
        path = f"{field}[{i}]"
        obj = _object(elem, path)
        if "value" not in obj:
            raise DecodeError(f"{path}.value", "missing sample value")

        ts, text = decode_pair(obj["value"], f"{path}.value")
        samples.append(
            Sample(
                decode_labels(obj.get("metric"), f"{path}.metric"),
                ts,
                parse_value(text, f"{path}.value[1]"),
            )
        )

    return Vector(tuple(samples))


def decode_matrix(raw: Any, field: str) -> Matrix:
    streams = []

    for i, elem in enumerate(_array(raw, field)):
        path = f"{field}[{i}]"
        obj = _object(elem, path)

        pairs = []
        for j, pair in enumerate(_array(obj.get("values"), f"{path}.values")):
            pair_path = f"{path}.values[{j}]"
            ts, text = decode_pair(pair, pair_path)
            pairs.append(SamplePair(ts, parse_value(text, f"{pair_path}[1]")))

        streams.append(SampleStream(decode_labels(obj.get("metric"), f"{path}.metric"), tuple(pairs)))

    return Matrix(tuple(streams))


def encode_string(value: StringValue) -> Any:
    return [encode_timestamp(value.timestamp), value.value]


def encode_scalar(value: ScalarValue) -> Any:
    return [encode_timestamp(value.timestamp), format_value(value.value)]


def encode_vector(value: Vector) -> Any:
    return [
        {
            "metric": s.metric.to_dict(),
            "value": [encode_timestamp(s.timestamp), format_value(s.value)],
        }
        for s in value.samples
    ]


def encode_matrix(value: Matrix) -> Any:
    return [
        {
            "metric": s.metric.to_dict(),
            "values": [[encode_timestamp(p.timestamp), format_value(p.value)] for p in s.values],
        }
        for s in value.streams
    ]


class Codec:
    def __init__(self, *, envelope: Envelope = "flat", vigilant: bool = False) -> None:
        # encoder dispatch by value class
        self.encoders: dict[type, tuple[str, Callable[[Any], Any]]] = {}
        # decoder dispatch by resultType
        self.decoders: dict[str, Callable[[Any, str], Any]] = {}
        self.envelope: Envelope = envelope
        self.vigilant = vigilant

        self.register_builtins()

    def register(
        self,
        cls: type,
        result_type: str,
        encoder: Callable[[Any], Any],
        decoder: Callable[[Any, str], Any],
    ) -> None:
        """Register a result shape for encoding/decoding.

        Args:
            cls: The Python type holding the result value.
            result_type: The ``resultType`` discriminant used on the wire.
            encoder: Function that takes a value and returns its JSON-ready ``result`` payload.
            decoder: Function that takes a parsed ``result`` payload and the field path
                used in error messages, and returns a value.
        """
        result_type = str(result_type)
        existing = next((c for c, (rt, _) in self.encoders.items() if rt == result_type), None)
        if existing is not None and existing is not cls:
            raise ValueError(f"Result type {result_type!r} already registered for {existing.__name__}")

        self.encoders[cls] = (result_type, encoder)
        self.decoders[result_type] = decoder

    def result_types(self) -> tuple[str, ...]:
        return tuple(self.decoders)

    def encode(self, result: Result) -> bytes:
        """Encode a result to its JSON wire form."""
        result_type, payload = self.encode_value(result.data)
        body: dict[str, Any] = {"resultType": result_type, "result": payload}

        if self.envelope == "api":
            doc: dict[str, Any] = {"status": "error" if result.error else "success", "data": body}
        else:
            doc = body

        if result.error:
            doc["error"] = result.error
        doc["warnings"] = list(result.warnings)

        raw = jd(doc)

        if self.vigilant and self.decode(raw) != result:
            raise ValueError(f"Result {result!r} failed round-trip encoding.")

        return raw

    def encode_value(self, value: ResultValue | None) -> tuple[str | None, Any]:
        """Encode a result value, returning (resultType, payload) separately."""
        if value is None:
            return None, None

        exact = self.encoders.get(type(value))
        if exact is not None:
            result_type, encoder = exact
            return result_type, encoder(value)

        for cls, (result_type, encoder) in self.encoders.items():
            if isinstance(value, cls):
                return result_type, encoder(value)

        raise NotImplementedError(f"{value!r} has invalid type: {type(value)}")

    def decode(self, raw: bytes | str) -> Result:
        """Decode a JSON document into a result, or raise DecodeError."""
        try:
            doc = jl(raw)
        except JSONDecodeError as exc:
            raise DecodeError("", f"unable to parse wire format: {exc}") from exc

        doc = _object(doc, "")

        if "data" in doc:
            body = doc["data"]
            prefix = "data."
        else:
            body = doc
            prefix = ""

        data = None if body is None else self.decode_value(_object(body, "data"), prefix)

        error = doc.get("error") or ""
        if not isinstance(error, str):
            raise DecodeError("error", f"expected a string, got {error!r}")

        warnings = doc.get("warnings") or []
        if not isinstance(warnings, list) or not all(isinstance(w, str) for w in warnings):
            raise DecodeError("warnings", f"expected a list of strings, got {warnings!r}")

        return Result(data, error, tuple(warnings))

    def decode_value(self, body: dict[str, Any], prefix: str = "") -> ResultValue | None:
        result_type = body.get("resultType")
        payload = body.get("result")

        if result_type is None:
            if payload is not None:
                raise DecodeError(f"{prefix}resultType", "missing result type")
            return None

        decoder = self.decoders.get(result_type) if isinstance(result_type, str) else None
        if decoder is None:
            raise DecodeError(f"{prefix}resultType", f"unexpected value type {result_type!r}")

        return cast("ResultValue", decoder(payload, f"{prefix}result"))

    def register_builtins(self) -> None:
        """Register the four Prometheus result shapes."""
        self.register(StringValue, ValueType.STRING, encode_string, decode_string)
        self.register(ScalarValue, ValueType.SCALAR, encode_scalar, decode_scalar)
        self.register(Vector, ValueType.VECTOR, encode_vector, decode_vector)
        self.register(Matrix, ValueType.MATRIX, encode_matrix, decode_matrix)


_default_codec = Codec()


def decode_result(raw: bytes | str) -> Result:
    return _default_codec.decode(raw)


def encode_result(result: Result) -> bytes:
    return _default_codec.encode(result)
