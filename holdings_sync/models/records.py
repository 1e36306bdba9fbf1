from decimal import Decimal
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

class HoldingRecord(BaseModel):
    # one position in one account, after normalization
    symbol: str
    name: Optional[str] = None
    account: Optional[str] = None
    quantity: Decimal = Decimal("0")
    book_value: Decimal = Decimal("0")
    avg_price: Decimal = Decimal("0")
    unrealized_gain: Optional[str] = None
    exchange: Optional[str] = None
    quote_symbol: str

    model_config = ConfigDict(frozen=True)


class CompiledRow(BaseModel):
    """
    Destination payload for one sheet row.
    literal_cells covers columns A..I; None marks a placeholder that the
    batched write must leave untouched (a formula column).
    """
    row: int = Field(ge=2)
    symbol: str
    literal_cells: List[Any]
    formula_cells: Dict[str, str]

    @model_validator(mode="after")
    def _disjoint_columns(self) -> "CompiledRow":
        written = {chr(ord("A") + i) for i, v in enumerate(self.literal_cells) if v is not None}
        overlap = written & set(self.formula_cells)
        if overlap:
            raise ValueError(f"literal and formula cells overlap on {sorted(overlap)}")
        return self
