# holdings_sync/core/settings.py
import os
from pathlib import Path
from pydantic import BaseModel
from dotenv import load_dotenv

# Resolve project root and load .env explicitly
ROOT_DIR = Path(__file__).resolve().parents[2]
load_dotenv(ROOT_DIR / ".env")  # do NOT set override=True; shell exports still win


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).lower() not in {"0", "false", "no", ""}


class Settings(BaseModel):
    spreadsheet_id: str = os.getenv("GOOGLE_SHEET_ID", "")
    access_token: str = os.getenv("GOOGLE_SHEETS_TOKEN", "")
    api_base: str = os.getenv("SHEETS_API_BASE", "https://sheets.googleapis.com/v4")
    holdings_sheet: str = os.getenv("HOLDINGS_SHEET", "Holdings Detail")
    metrics_sheet: str = os.getenv("METRICS_SHEET", "Performance Dashboard")
    reports_sheet: str = os.getenv("REPORTS_SHEET", "Daily Reports")
    csv_dir: str = os.getenv("CSV_DIR", "CSV")
    csv_delimiter: str = os.getenv("CSV_DELIMITER", ",")
    write_delay_ms: int = int(os.getenv("SHEETS_WRITE_DELAY_MS", "100"))
    clear_row_limit: int = int(os.getenv("CLEAR_ROW_LIMIT", "1000"))
    batch_formulas: bool = _flag("BATCH_FORMULAS")
    daily_report: bool = _flag("DAILY_REPORT")
    http_timeout_s: float = float(os.getenv("HTTP_TIMEOUT_S", "10"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()
