"""Exceptions raised while reading a transaction stream.

Only structural problems with the stream are errors. Semantic rejections
(duplicate IDs, locked accounts, insufficient funds, bad dispute references)
are reported as processing outcomes instead.
"""

from typing import Optional


class PaymentsEngineError(Exception):
    """Base engine error."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class MalformedRecord(PaymentsEngineError):
    """A row that cannot be turned into a transaction record."""

    def __init__(self, message: str, line: Optional[int] = None) -> None:
        self.line = line
        super().__init__(message)

    def __str__(self) -> str:
        if self.line is None:
            return self.message
        return f"line {self.line}: {self.message}"


class InvalidAmount(MalformedRecord):
    def __init__(self, text: str, line: Optional[int] = None) -> None:
        self.text = text
        super().__init__(f"invalid amount {text!r}", line)


class IoFailure(PaymentsEngineError):
    """The underlying source could not be read."""


class AmountOverflow(PaymentsEngineError):
    """A sum or difference no longer fits four fractional digits."""
