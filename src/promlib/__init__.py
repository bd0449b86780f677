# Copyright Max R. P. Grossmann & Holger Gerhardt, 2026.
# SPDX-License-Identifier: LGPL-3.0-or-later

from promlib.client import Client, ClientOptions, format_duration
from promlib.codec import Codec, decode_result, encode_result, format_value
from promlib.errors import DecodeError, PromError, QueryCancelledError
from promlib.iterator import Point, ValueIter, new_value_iter
from promlib.monthly import MonthlyQuery, RangeQueryExecutor, run_monthly_query
from promlib.months import MonthYear
from promlib.querylog import NopQueryLogger, QueryLogger
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

__all__ = [
    "Client",
    "ClientOptions",
    "Codec",
    "DecodeError",
    "LabelSet",
    "Matrix",
    "MonthYear",
    "MonthlyQuery",
    "NopQueryLogger",
    "Point",
    "PromError",
    "QueryCancelledError",
    "QueryLogger",
    "RangeQueryExecutor",
    "Result",
    "ResultValue",
    "Sample",
    "SamplePair",
    "SampleStream",
    "ScalarValue",
    "StringValue",
    "ValueIter",
    "ValueType",
    "Vector",
    "decode_result",
    "encode_result",
    "format_duration",
    "format_value",
    "new_value_iter",
    "run_monthly_query",
]

__version_info__ = 0, 1, 0
__version__ = ".".join(map(str, __version_info__))
__author__ = "Max R. P. Grossmann, Holger Gerhardt"
