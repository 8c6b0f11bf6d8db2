from __future__ import annotations

import datetime as dt
import logging
import re
from decimal import Decimal, InvalidOperation

NUM_CLEAN_RE = re.compile(r"[,\s]")  # remove thousands separators, spaces
PAREN_NEG_RE = re.compile(r"^\((.*)\)$")
DATE_SPLIT_RE = re.compile(r"[,;]")

PLACEHOLDERS = {"-", "--", "...", "N/A", "n/a"}

_MONTH_FORMATS = ("%B %d %Y", "%b %d %Y", "%d %B %Y", "%d %b %Y")

logger = logging.getLogger(__name__)


def _clean_number(s: str) -> str:
    """Strip separators and turn accounting parentheses into a leading minus."""
    s_clean = NUM_CLEAN_RE.sub("", s)
    m = PAREN_NEG_RE.match(s_clean)
    if m:
        inner = m.group(1)
        if inner.startswith("-"):
            raise InvalidOperation(f"double negative: {s!r}")
        s_clean = "-" + inner
    return s_clean


def to_dec(
    s: str | float | int | Decimal | None, default: Decimal = Decimal("0")
) -> Decimal:
    """Convert statement numeric strings to Decimal safely, coercing placeholders to default.

    Handles:
    - None, "" -> default
    - "-", "--" -> default (common IBKR nulls)
    - "...", "N/A" -> default (with warning for elided data)
    - "1,234.56" -> Decimal("1234.56")
    - "(1,234.56)" -> Decimal("-1234.56")
    """
    if s is None:
        return default
    if isinstance(s, Decimal):
        return s
    if isinstance(s, (int, float)):
        return Decimal(str(s))

    s_stripped = s.strip()
    if not s_stripped:
        return default

    # Silent placeholders
    if s_stripped in {"-", "--"}:
        return default

    # Warn on elided/missing data
    if s_stripped in {"...", "N/A", "n/a"}:
        logger.warning(
            'Encountered elided/unavailable value "%s"; treating as %s.',
            s_stripped,
            default,
        )
        return default

    try:
        value = Decimal(_clean_number(s_stripped))
    except InvalidOperation:
        # Log error but don't crash; return default
        logger.error("Failed to parse number from: %r; using %s", s, default)
        return default
    if not value.is_finite():
        logger.error("Non-finite number %r; using %s", s, default)
        return default
    return value


def to_dec_strict(s: str | float | int | Decimal | None) -> Decimal:
    """Convert statement numeric strings to Decimal.

    Raises ValueError on invalid/missing data, including NaN and infinities.
    Use this for critical fields (Quantity, Price) where 0 is not safe.
    """
    if s is None:
        raise ValueError("Value is None")
    if isinstance(s, Decimal):
        if not s.is_finite():
            raise ValueError(f"Value is not finite: {s!r}")
        return s
    if isinstance(s, (int, float)):
        return to_dec_strict(Decimal(str(s)))

    s_stripped = s.strip()
    if not s_stripped:
        raise ValueError("Value is empty string")

    if s_stripped in PLACEHOLDERS:
        raise ValueError(f"Value is a placeholder: {s_stripped!r}")

    try:
        value = Decimal(_clean_number(s_stripped))
    except InvalidOperation as e:
        raise ValueError(f"Invalid decimal format: {s!r}") from e
    if not value.is_finite():
        raise ValueError(f"Value is not finite: {s!r}")
    return value


def to_dec_opt(s: str | None) -> Decimal | None:
    """Parse an optional numeric cell; blanks and placeholders become None."""
    if s is None:
        return None
    s_stripped = s.strip()
    if not s_stripped or s_stripped in PLACEHOLDERS:
        return None
    try:
        return to_dec_strict(s_stripped)
    except ValueError:
        logger.debug("Ignoring unparseable optional number %r", s)
        return None


def parse_date(d: str) -> dt.date:
    """Parse date-like strings.

    Handles 'YYYY-MM-DD', 'YYYY-MM-DD, HH:MM:SS', 'YYYY-MM-DD;HHMMSS' and
    'YYYYMMDD'. Only the part before the first delimiter is considered.
    """
    d = DATE_SPLIT_RE.split(d, maxsplit=1)[0].strip()
    if len(d) == 8 and d.isdigit():
        return dt.date(int(d[:4]), int(d[4:6]), int(d[6:]))
    return dt.date.fromisoformat(d[:10])


def parse_long_date(s: str) -> dt.date:
    """Parse 'January 1, 2024' style dates, falling back to ISO."""
    s = s.strip()
    try:
        return dt.date.fromisoformat(s)
    except ValueError:
        pass
    compact = s.replace(",", " ")
    compact = " ".join(compact.split())
    for fmt in _MONTH_FORMATS:
        try:
            return dt.datetime.strptime(compact, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognized date: {s!r}")
