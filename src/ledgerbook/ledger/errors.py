from __future__ import annotations


class LedgerError(Exception):
    """Base class for ledger failures."""


class EmptyStatementError(LedgerError):
    """Statement yielded no trades and no income; most likely the wrong file."""

    def __init__(self, message: str, warnings: list[str] | None = None) -> None:
        super().__init__(message)
        self.warnings = list(warnings or [])


class LedgerInvariantError(LedgerError):
    """A fold produced a position that cannot be persisted."""


class ConfigError(LedgerError):
    pass


class UnknownRecordError(LedgerError):
    """Import or trade id does not exist for the account."""
