from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Sequence

from holdings_sync.models.records import CompiledRow, HoldingRecord

# Fixed destination layout; header text and order never change between runs.
HEADERS = [
    "Symbol",         # A
    "Name",           # B
    "Account",        # C
    "Quantity",       # D
    "Avg Price",      # E
    "Current Price",  # F  formula
    "Market Value",   # G  formula
    "Cost Basis",     # H  formula
    "Gain/Loss",      # I  from export
    "% Return",       # J  formula
    "Last Updated",   # K  formula
]
FIRST_COLUMN = "A"
LAST_COLUMN = "K"
LITERAL_COLUMNS = ["A", "B", "C", "D", "E", "F", "G", "H", "I"]
FORMULA_COLUMNS = ["F", "G", "H", "J", "K"]
FIRST_DATA_ROW = 2


def formulas_for(row: int, quote_key: str) -> Dict[str, str]:
    """Formula text per column; the sheet evaluates these, never us."""
    r = row
    return {
        "F": f'=GOOGLEFINANCE("{quote_key}")',
        "G": f"=D{r}*F{r}",
        "H": f"=D{r}*E{r}",
        "J": f"=IF(H{r}=0,0,I{r}/H{r})",
        "K": "=TODAY()",
    }


def _number(d: Decimal) -> Any:
    # JSON-friendly; integral values stay ints so the sheet shows "10", not "10.0"
    return int(d) if d == d.to_integral_value() else float(d)


def literal_cells(rec: HoldingRecord) -> List[Any]:
    return [
        rec.symbol,
        rec.name or "",
        rec.account or "",
        _number(rec.quantity),
        _number(rec.avg_price),
        None, None, None,            # F, G, H: formula placeholders
        rec.unrealized_gain or "",
    ]


def compile_rows(records: Sequence[HoldingRecord], start_row: int = FIRST_DATA_ROW) -> List[CompiledRow]:
    """
    One CompiledRow per record, rows numbered contiguously from start_row.
    Records dropped upstream never reach here, so they never consume a row.
    """
    if start_row < FIRST_DATA_ROW:
        raise ValueError(f"start_row must be >= {FIRST_DATA_ROW} (row 1 is the header)")
    return [
        CompiledRow(
            row=start_row + i,
            symbol=rec.symbol,
            literal_cells=literal_cells(rec),
            formula_cells=formulas_for(start_row + i, rec.quote_symbol),
        )
        for i, rec in enumerate(records)
    ]
