# Copyright Max R. P. Grossmann, Holger Gerhardt, et al., 2026.
# SPDX-License-Identifier: LGPL-3.0-or-later


class DecodeError(ValueError):
    """A wire payload that does not describe a valid query result."""

    def __init__(self, field: str, msg: str) -> None:
        self.field = field
        super().__init__(f"{field}: {msg}" if field else msg)


class PromError(Exception):
    """An error response from the metrics backend."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(status_code, message)

    def __str__(self) -> str:
        return f"status_code: {self.status_code}, msg={self.message}"


class QueryCancelledError(TimeoutError):
    """A query abandoned because its deadline passed."""
