from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import httpx
from loguru import logger

from holdings_sync.core.errors import CellWriteFailure
from holdings_sync.models.records import CompiledRow
from holdings_sync.services.compile import (
    FIRST_COLUMN,
    HEADERS,
    LAST_COLUMN,
    LITERAL_COLUMNS,
)
from holdings_sync.services.rate_limiter import RequestSpacer
from holdings_sync.services.sheets_client import SheetsClient, a1

# rejected request, transport fault, or an accepted write with an undecodable body
CELL_WRITE_ERRORS = (httpx.HTTPError, ValueError)


class TableGateway:
    """
    The only component that talks to the remote table.

    Every call goes through the spacer so that calls not sharing a batch are
    at least `min_interval` apart. Formula writes are isolated per cell: a
    rejected cell is logged, recorded in `failures`, and the caller moves on.
    """

    def __init__(self, client: SheetsClient, sheet: str, spacer: RequestSpacer):
        self.client = client
        self.sheet = sheet
        self.spacer = spacer
        self.failures: List[CellWriteFailure] = []

    def range(self, ref: str, sheet: Optional[str] = None) -> str:
        return a1(sheet or self.sheet, ref)

    async def set_headers(self) -> None:
        await self.spacer.wait()
        await self.client.update(self.range(f"{FIRST_COLUMN}1:{LAST_COLUMN}1"), [list(HEADERS)])
        logger.info("Headers set up successfully")

    async def clear_range(self, ref: str, sheet: Optional[str] = None) -> None:
        await self.spacer.wait()
        await self.client.clear(self.range(ref, sheet))
        logger.info(f"Cleared {self.range(ref, sheet)}")

    async def write_literals(self, start_row: int, rows: Sequence[Sequence[Any]]) -> int:
        """Writes the whole literal block A..I in one call. Returns rows written."""
        if not rows:
            return 0
        end_row = start_row + len(rows) - 1
        ref = f"{LITERAL_COLUMNS[0]}{start_row}:{LITERAL_COLUMNS[-1]}{end_row}"
        await self.spacer.wait()
        await self.client.update(self.range(ref), [list(r) for r in rows])
        logger.info(f"Batch updated {len(rows)} data rows at {ref}")
        return len(rows)

    async def write_formula(self, row: int, column: str, text: str) -> bool:
        await self.spacer.wait()
        try:
            await self.client.update(self.range(f"{column}{row}"), [[text]])
        except CELL_WRITE_ERRORS as e:
            failure = CellWriteFailure(row, column, e)
            self.failures.append(failure)
            logger.warning(f"Error setting formula {column}{row} ({text}): {e}")
            return False
        logger.debug(f"  {column}{row}: {text}")
        return True

    async def write_row_formulas(self, row: CompiledRow) -> int:
        """Returns the number of formula cells accepted for this row."""
        ok = 0
        for column, text in row.formula_cells.items():
            if await self.write_formula(row.row, column, text):
                ok += 1
        logger.info(f"Set up formulas for {row.symbol} in row {row.row} ({ok}/{len(row.formula_cells)})")
        return ok

    async def write_formulas_batched(self, rows: Sequence[CompiledRow]) -> int:
        """
        All formula cells of `rows` in a single batchUpdate call.
        The whole batch succeeds or fails together; a failure is recorded
        against every cell it covered.
        """
        data: List[Dict[str, Any]] = [
            {"range": self.range(f"{column}{r.row}"), "values": [[text]]}
            for r in rows
            for column, text in r.formula_cells.items()
        ]
        if not data:
            return 0
        await self.spacer.wait()
        try:
            await self.client.batch_update(data)
        except CELL_WRITE_ERRORS as e:
            for r in rows:
                for column in r.formula_cells:
                    self.failures.append(CellWriteFailure(r.row, column, e))
            logger.warning(f"Error setting {len(data)} formulas in batch: {e}")
            return 0
        logger.info(f"Batch set {len(data)} formulas for {len(rows)} rows")
        return len(data)

    async def read_range(self, ref: str, sheet: Optional[str] = None) -> List[List[Any]]:
        """Literal values in the range; trailing empties are simply absent."""
        await self.spacer.wait()
        return await self.client.get(self.range(ref, sheet))

    async def append_row(self, ref: str, values: Sequence[Any], sheet: Optional[str] = None) -> None:
        await self.spacer.wait()
        await self.client.append(self.range(ref, sheet), [list(values)])


def cell(rows: List[List[Any]], r: int, c: int, default: Any = None) -> Any:
    """0-based lookup into a read_range result; absent cells yield `default`."""
    if r < len(rows) and c < len(rows[r]) and rows[r][c] not in (None, ""):
        return rows[r][c]
    return default
