from __future__ import annotations

from datetime import date
from typing import Dict, Optional

from loguru import logger

from holdings_sync.core.settings import Settings, settings as default_settings
from holdings_sync.services.gateway import TableGateway, cell

METRICS_RANGE = "A3:B7"
REPORTS_RANGE = "A:D"
STRUCTURE_RANGE = "A1:W3"
MISSING = "N/A"


async def generate_daily_report(
    gateway: TableGateway,
    cfg: Optional[Settings] = None,
    today: Optional[date] = None,
) -> Dict[str, str]:
    """
    Snapshot the dashboard metrics into the reports sheet.
    Metric rows 3..5 hold net worth, savings rate and investment return in column B.
    """
    cfg = cfg or default_settings
    logger.info("Generating daily report...")
    metrics = await gateway.read_range(METRICS_RANGE, sheet=cfg.metrics_sheet)

    report = {
        "date": (today or date.today()).isoformat(),
        "net_worth": str(cell(metrics, 0, 1, MISSING)),
        "savings_rate": str(cell(metrics, 1, 1, MISSING)),
        "investment_return": str(cell(metrics, 2, 1, MISSING)),
    }
    await gateway.append_row(REPORTS_RANGE, list(report.values()), sheet=cfg.reports_sheet)
    logger.info(f"Daily report generated: {report}")
    return report


async def debug_structure(gateway: TableGateway) -> None:
    logger.info("Debugging sheet structure...")
    rows = await gateway.read_range(STRUCTURE_RANGE)
    for i, row in enumerate(rows, start=1):
        logger.info(f"Row {i}: {row}")
