from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Iterable, List, Mapping, Optional, Tuple

from loguru import logger

from holdings_sync.core.errors import SkippedRecord
from holdings_sync.models.records import HoldingRecord

# Export column names (Wealthsimple holdings CSV)
COL_SYMBOL = "Symbol"
COL_NAME = "Name"
COL_ACCOUNT = "Account Name"
COL_QUANTITY = "Quantity"
COL_BOOK_VALUE = "Book Value (Market)"
COL_GAIN = "Market Unrealized Returns"
COL_EXCHANGE = "Exchange"

_ZERO = Decimal("0")
_CENTS = Decimal("0.01")
_DIV_PRECISION = 60


@dataclass(frozen=True)
class VenueRule:
    """
    Maps a broker venue onto the quote provider's key convention.
    A symbol matches when it ends with one of `suffixes` or the export's
    exchange field is one of `exchanges`; the suffix is then stripped and
    `provider_prefix:` prepended.
    """
    exchanges: Tuple[str, ...]
    suffixes: Tuple[str, ...]
    provider_prefix: str


# Checked in order; anything unmatched (NASDAQ, NYSE, unknown, blank) passes through.
VENUE_RULES: List[VenueRule] = [
    VenueRule(exchanges=("TSX",), suffixes=(".TO",), provider_prefix="TSE"),
]


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def parse_decimal(raw: Optional[str]) -> Decimal:
    """
    Lenient numeric parse: '1,234.50', '$12', '(3.10)' -> Decimal.
    Blank or unparseable input is 0.
    """
    s = _clean(raw)
    if s is None:
        return _ZERO
    negative = False
    if s.startswith("-"):
        negative, s = True, s[1:].lstrip()
    if s.startswith("$"):
        s = s[1:].lstrip()
    if s.startswith("(") and s.endswith(")"):
        negative, s = True, s[1:-1].strip()
    s = s.replace(",", "")
    try:
        d = Decimal(s)
    except InvalidOperation:
        logger.debug(f"Unparseable number {raw!r}; using 0")
        return _ZERO
    if not d.is_finite():
        return _ZERO
    return -abs(d) if negative else d


def round2(value: Decimal) -> Decimal:
    with localcontext() as ctx:
        # room for every integer digit plus the two cents digits
        ctx.prec = max(ctx.prec, value.adjusted() + 3)
        return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def average_price(book_value: Decimal, quantity: Decimal) -> Decimal:
    if quantity > 0:
        try:
            with localcontext() as ctx:
                ctx.prec = _DIV_PRECISION
                quotient = book_value / quantity
            return round2(quotient)
        except ArithmeticError as e:
            # exponent overflow on absurd inputs; decimal errors subclass ArithmeticError
            logger.warning(f"Average price out of range for {book_value} / {quantity}: {e!r}; using 0")
    return _ZERO


def quote_symbol(symbol: str, exchange: Optional[str] = None) -> str:
    """Venue-qualified lookup key for the sheet's price formula. Pure and total."""
    sym = (symbol or "").strip()
    exch = (exchange or "").strip().upper()
    upper = sym.upper()
    for rule in VENUE_RULES:
        suffix = next((sfx for sfx in rule.suffixes if upper.endswith(sfx)), None)
        if suffix is None and exch not in rule.exchanges:
            continue
        base = sym[: -len(suffix)] if suffix else sym
        return f"{rule.provider_prefix}:{base}"
    return sym


def normalize_record(raw: Mapping[str, Optional[str]]) -> HoldingRecord:
    """Raises SkippedRecord when the record carries no symbol."""
    symbol = _clean(raw.get(COL_SYMBOL))
    if not symbol:
        raise SkippedRecord("no symbol found")

    exchange = _clean(raw.get(COL_EXCHANGE))
    quantity = parse_decimal(raw.get(COL_QUANTITY))
    book_value = parse_decimal(raw.get(COL_BOOK_VALUE))

    return HoldingRecord(
        symbol=symbol,
        name=_clean(raw.get(COL_NAME)),
        account=_clean(raw.get(COL_ACCOUNT)),
        quantity=quantity,
        book_value=book_value,
        avg_price=average_price(book_value, quantity),
        unrealized_gain=_clean(raw.get(COL_GAIN)),
        exchange=exchange,
        quote_symbol=quote_symbol(symbol, exchange),
    )


def normalize_records(rows: Iterable[Mapping[str, Optional[str]]]) -> Tuple[List[HoldingRecord], int]:
    """Returns (records, skipped_count). Skips never abort the batch."""
    records: List[HoldingRecord] = []
    skipped = 0
    for i, raw in enumerate(rows, start=1):
        try:
            rec = normalize_record(raw)
        except SkippedRecord as e:
            skipped += 1
            logger.warning(f"Skipping record {i}: {e}")
            continue
        logger.debug(f"Record {i}: {rec.symbol} - {rec.account} -> {rec.quote_symbol}")
        records.append(rec)
    return records, skipped
