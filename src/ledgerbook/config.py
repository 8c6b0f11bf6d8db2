from __future__ import annotations

import argparse
import re
from dataclasses import dataclass
from decimal import Decimal

from ledgerbook.ledger.errors import ConfigError
from ledgerbook.ledger.extract import ALL_SCOPES_SET

CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


@dataclass(frozen=True)
class LedgerSettings:
    base_currency: str = "SGD"
    asset_scope: str = "stocks"
    database_url: str = "sqlite:///ledgerbook.db"
    account_id: str = "default"
    fx_max_workers: int = 8
    fx_window_padding_days: int = 5
    summary_tolerance: Decimal = Decimal("0.05")

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> LedgerSettings:
        """Settings from parsed CLI arguments; attributes that are absent keep defaults."""
        defaults = cls()
        settings = cls(
            base_currency=(
                getattr(args, "base_currency", None) or defaults.base_currency
            ).upper(),
            asset_scope=getattr(args, "asset_scope", None) or defaults.asset_scope,
            database_url=getattr(args, "db", None) or defaults.database_url,
            account_id=getattr(args, "account", None) or defaults.account_id,
            fx_max_workers=getattr(args, "fx_workers", None) or defaults.fx_max_workers,
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        if not CURRENCY_RE.match(self.base_currency):
            raise ConfigError(f"Invalid base currency code: {self.base_currency!r}")
        if self.asset_scope not in ALL_SCOPES_SET:
            raise ConfigError(
                f"Unknown asset scope {self.asset_scope!r}; "
                f"expected one of {sorted(ALL_SCOPES_SET)}"
            )
        if self.fx_max_workers <= 0:
            raise ConfigError("fx_max_workers must be positive")
        if self.fx_window_padding_days <= 0:
            raise ConfigError("fx_window_padding_days must be positive")
        if self.summary_tolerance < 0:
            raise ConfigError("summary_tolerance must not be negative")
        if not self.account_id:
            raise ConfigError("account_id must not be empty")
