# Copyright Max R. P. Grossmann, Holger Gerhardt, et al., 2026.
# SPDX-License-Identifier: LGPL-3.0-or-later

import math

QUOTES = "\"'`"


def ensure(
    condition: bool,
    exctype: type[Exception] = ValueError,
    msg: str | None = None,
) -> None:
    if not condition:
        msg = "Constraint violation: " + msg if msg else "Constraint violation"

        raise exctype(msg)


def same_float(a: float, b: float) -> bool:
    # NaN samples must compare equal, otherwise no result holding one survives a round trip
    if math.isnan(a) and math.isnan(b):
        return True

    return a == b


def float_key(x: float) -> float | str:
    return "NaN" if math.isnan(x) else x


def _is_word(ch: str) -> bool:
    return ch.isalnum() or ch in "_:."


def normalize_query(query: str) -> str:
    """Collapse insignificant whitespace in a query expression.

    Whitespace inside quoted strings is kept, and a single space survives
    between two word characters (``sum by (x)`` keeps ``sum by``)."""
    out: list[str] = []
    quote: str | None = None
    escaped = False
    pending_space = False

    for ch in query:
        if quote is not None:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = None
            continue

        if ch.isspace():
            pending_space = True
            continue

        if pending_space and out and _is_word(out[-1]) and _is_word(ch):
            out.append(" ")
        pending_space = False

        if ch in QUOTES:
            quote = ch
        out.append(ch)

    return "".join(out)
