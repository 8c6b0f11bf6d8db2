from .base import LedgerStore
from .sql import SqlLedgerStore

__all__ = ["LedgerStore", "SqlLedgerStore"]
