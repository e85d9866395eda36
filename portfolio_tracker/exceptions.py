"""Errors raised by the portfolio tracker core."""

from typing import Optional


class InvalidTradeError(ValueError):
    """A trade record is structurally invalid and cannot be ingested."""

    def __init__(self, message: str, row: Optional[int] = None) -> None:
        self.row = row
        if row is not None:
            message = f"row {row}: {message}"
        super().__init__(message)


class QuoteUnavailable(RuntimeError):
    """No usable quote could be obtained for a symbol."""

    def __init__(self, symbol: str, reason: str = "") -> None:
        self.symbol = symbol
        super().__init__(f"No quote for {symbol}" + (f": {reason}" if reason else ""))


class CorruptStoreError(RuntimeError):
    """A store file exists but cannot be parsed; it is left untouched."""

    def __init__(self, path: str, reason: str = "") -> None:
        self.path = path
        super().__init__(f"Store file {path} is unreadable" + (f": {reason}" if reason else ""))
