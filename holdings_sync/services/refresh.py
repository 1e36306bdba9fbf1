from __future__ import annotations

from datetime import date
from enum import Enum
from pathlib import Path
from typing import List, Optional

import httpx
from loguru import logger
from pydantic import BaseModel

from holdings_sync.core.errors import FileProcessingFailure, OrchestratorFailure
from holdings_sync.core.settings import Settings, settings as default_settings
from holdings_sync.models.records import CompiledRow
from holdings_sync.services.compile import (
    FIRST_COLUMN,
    FIRST_DATA_ROW,
    LAST_COLUMN,
    compile_rows,
    formulas_for,
)
from holdings_sync.services.gateway import TableGateway
from holdings_sync.services.io_utils import discover_files, load_export
from holdings_sync.services.normalize import normalize_records, quote_symbol
from holdings_sync.services.rate_limiter import RequestSpacer
from holdings_sync.services.report import generate_daily_report
from holdings_sync.services.sheets_client import open_client


class RunState(str, Enum):
    IDLE = "idle"
    HEADERS_SET = "headers_set"
    CLEARED = "cleared"
    POPULATING = "populating"
    DONE = "done"
    FAILED = "failed"


class RunReport(BaseModel):
    state: RunState = RunState.IDLE
    files_processed: List[str] = []
    files_failed: List[str] = []
    rows_written: int = 0
    records_skipped: int = 0
    cell_failures: int = 0


class RefreshRunner:
    """
    Full refresh of the holdings table: headers -> clear -> per-file populate.

    A failing file is logged and abandoned without consuming any rows; the
    next file picks up at the same row. Only errors escaping that boundary
    fail the run.
    """

    def __init__(self, gateway: TableGateway, cfg: Optional[Settings] = None):
        self.gateway = gateway
        self.cfg = cfg or default_settings
        self.report = RunReport()
        self.next_row = FIRST_DATA_ROW

    @property
    def state(self) -> RunState:
        return self.report.state

    async def run(self) -> RunReport:
        logger.info("Starting holdings refresh...")
        try:
            await self._set_headers()
            await self._clear_body()
            files = discover_files(self.cfg.csv_dir)
            self.report.state = RunState.POPULATING
            for path in files:
                await self._process_file_guarded(path)
            self.report.state = RunState.DONE
        except Exception as e:
            self.report.state = RunState.FAILED
            logger.exception(f"Error in holdings refresh: {e}")
            raise OrchestratorFailure(str(e)) from e
        finally:
            self.report.cell_failures = len(self.gateway.failures)

        logger.info(
            f"Holdings refresh completed: {self.report.rows_written} rows from "
            f"{len(self.report.files_processed)} file(s), "
            f"{len(self.report.files_failed)} failed file(s), "
            f"{self.report.records_skipped} skipped record(s), "
            f"{self.report.cell_failures} failed cell write(s)"
        )
        return self.report

    async def _set_headers(self) -> None:
        # headers are best-effort; rows are addressed absolutely either way
        try:
            await self.gateway.set_headers()
        except httpx.HTTPError as e:
            logger.error(f"Error setting up headers: {e}")
        self.report.state = RunState.HEADERS_SET

    async def _clear_body(self) -> None:
        last_row = await self._current_last_row()
        ref = f"{FIRST_COLUMN}{FIRST_DATA_ROW}:{LAST_COLUMN}{max(last_row, FIRST_DATA_ROW)}"
        try:
            await self.gateway.clear_range(ref)
        except httpx.HTTPError as e:
            logger.error(f"Error clearing holdings data ({ref}): {e}")
        self.report.state = RunState.CLEARED

    async def _current_last_row(self) -> int:
        ref = f"{FIRST_COLUMN}{FIRST_DATA_ROW}:{LAST_COLUMN}"
        try:
            rows = await self.gateway.read_range(ref)
        except httpx.HTTPError as e:
            logger.warning(f"Could not read current row count ({e}); clearing up to row {self.cfg.clear_row_limit}")
            return self.cfg.clear_row_limit
        return FIRST_DATA_ROW - 1 + len(rows)

    async def _process_file_guarded(self, path: Path) -> None:
        logger.info(f"Processing {path.name}...")
        try:
            await self.process_file(path)
        except Exception as e:
            failure = FileProcessingFailure(str(path), e)
            self.report.files_failed.append(path.name)
            logger.exception(f"Error processing {path.name}, file abandoned: {failure}")
            return
        self.report.files_processed.append(path.name)

    async def process_file(self, path: Path) -> int:
        raw, malformed = load_export(path, sep=self.cfg.csv_delimiter)
        records, skipped = normalize_records(raw)
        self.report.records_skipped += malformed + skipped

        rows = compile_rows(records, start_row=self.next_row)
        for r in rows:
            logger.debug(f"Prepared row {r.row}: {r.symbol} ({r.formula_cells['F']})")

        written = await self.gateway.write_literals(self.next_row, [r.literal_cells for r in rows])
        # rows are on the sheet now; later files start below them even if formulas fail
        self.next_row += written
        self.report.rows_written += written

        await self.write_formulas(rows)
        return written

    async def write_formulas(self, rows: List[CompiledRow]) -> None:
        if self.cfg.batch_formulas:
            await self.gateway.write_formulas_batched(rows)
            return
        logger.info("Setting up formulas with rate limiting...")
        for r in rows:
            await self.gateway.write_row_formulas(r)


async def refresh_formulas(gateway: TableGateway, max_row: int = 100) -> int:
    """
    Re-derive the formula columns from the symbols already in column A.
    Returns the number of rows whose formulas were rewritten.
    """
    logger.info("Setting up price formulas...")
    symbols = await gateway.read_range(f"A{FIRST_DATA_ROW}:A{max_row}")
    targets = [
        (FIRST_DATA_ROW + i, str(row[0]).strip())
        for i, row in enumerate(symbols)
        if row and str(row[0]).strip()
    ]
    if not targets:
        logger.info("No symbols found; nothing to refresh")
        return 0

    last_row = targets[-1][0]
    await gateway.clear_range(f"F{FIRST_DATA_ROW}:H{last_row}")
    await gateway.clear_range(f"J{FIRST_DATA_ROW}:K{last_row}")
    logger.info(f"Cleared formula columns F-H and J-K for rows {FIRST_DATA_ROW}-{last_row}")

    # blank rows in between keep their cleared formula cells
    for r, symbol in targets:
        row = CompiledRow(
            row=r,
            symbol=symbol,
            literal_cells=[],
            formula_cells=formulas_for(r, quote_symbol(symbol)),
        )
        await gateway.write_row_formulas(row)
    return len(targets)


def build_gateway(cfg: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> TableGateway:
    client = open_client(cfg, transport=transport)
    spacer = RequestSpacer.from_ms(cfg.write_delay_ms)
    return TableGateway(client, cfg.holdings_sheet, spacer)


async def run_once(
    cfg: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    today: Optional[date] = None,
) -> RunReport:
    """One complete run against the configured spreadsheet; raises OrchestratorFailure."""
    cfg = cfg or default_settings
    gateway = build_gateway(cfg, transport=transport)
    try:
        report = await RefreshRunner(gateway, cfg).run()
        if cfg.daily_report:
            try:
                await generate_daily_report(gateway, cfg, today=today)
            except httpx.HTTPError as e:
                logger.error(f"Error generating daily report: {e}")
        else:
            logger.info("Skipping daily report (disabled)")
        return report
    finally:
        await gateway.client.aclose()
