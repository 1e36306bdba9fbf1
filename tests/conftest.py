"""Shared fixtures: an in-memory spreadsheet behind ``httpx.MockTransport``.

``FakeSheets`` implements just enough of the values API (get, update, append,
clear, batchUpdate) for the real ``SheetsClient``/``TableGateway`` code paths
to run unchanged. Tests inject failures with ``fail_when`` and inspect both
the resulting grid and the ordered list of calls.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from holdings_sync.core.settings import Settings
from holdings_sync.services.gateway import TableGateway
from holdings_sync.services.refresh import build_gateway

_A1_RE = re.compile(
    r"^(?:(?P<sheet>'(?:[^']|'')+'|[^!]+)!)?"
    r"(?P<c1>[A-Z]+)(?P<r1>\d*)(?::(?P<c2>[A-Z]+)(?P<r2>\d*))?$"
)
_MAX_ROW = 10_000

EXPORT_HEADER = [
    "Account Name", "Account Type", "Account Classification", "Account Number",
    "Symbol", "Exchange", "MIC", "Name", "Security Type", "Quantity",
    "Position Direction", "Market Price", "Market Price Currency",
    "Book Value (CAD)", "Book Value Currency (CAD)", "Book Value (Market)",
    "Book Value Currency (Market)", "Market Value", "Market Value Currency",
    "Market Unrealized Returns", "Market Unrealized Returns Currency",
]


def col_index(letters: str) -> int:
    n = 0
    for ch in letters:
        n = n * 26 + (ord(ch) - ord("A") + 1)
    return n - 1


def parse_a1(range_: str) -> Tuple[str, int, int, int, int]:
    """-> (sheet, first_row, last_row, first_col, last_col), all inclusive, rows 1-based."""
    m = _A1_RE.match(range_)
    if not m:
        raise ValueError(f"bad range {range_!r}")
    sheet = m.group("sheet") or ""
    if sheet.startswith("'"):
        sheet = sheet[1:-1].replace("''", "'")
    c1 = col_index(m.group("c1"))
    r1 = int(m.group("r1") or 1)
    if m.group("c2"):
        c2 = col_index(m.group("c2"))
        r2 = int(m.group("r2")) if m.group("r2") else _MAX_ROW
    else:
        c2 = c1
        r2 = r1 if m.group("r1") else _MAX_ROW
    return sheet, r1, r2, c1, c2


class FakeSheets:
    def __init__(self, require_auth: bool = False) -> None:
        self.grid: Dict[str, Dict[Tuple[int, int], Any]] = {}
        self.calls: List[Tuple[str, str]] = []
        self.require_auth = require_auth
        self._fail: Optional[Callable[[str, str], Optional[int]]] = None

    # ---- test helpers ----
    def fail_when(self, predicate: Callable[[str, str], Optional[int]]) -> None:
        """predicate(action, range) -> HTTP status to return, or None to serve normally."""
        self._fail = predicate

    def seed(self, sheet: str, rows: List[List[Any]], start_row: int = 1) -> None:
        for i, row in enumerate(rows):
            for j, v in enumerate(row):
                if v not in (None, ""):
                    self.grid.setdefault(sheet, {})[(start_row + i, j)] = v

    def rows(self, sheet: str, range_: str = "A1:K") -> List[List[Any]]:
        _, r1, r2, c1, c2 = parse_a1(range_)
        return self._read(sheet, r1, r2, c1, c2)

    def value(self, sheet: str, ref: str) -> Any:
        _, r, _, c, _ = parse_a1(ref)
        return self.grid.get(sheet, {}).get((r, c))

    def data_rows(self, sheet: str) -> int:
        cells = self.grid.get(sheet, {})
        return max((r for r, _ in cells if r >= 2), default=1) - 1

    # ---- grid ops ----
    def _read(self, sheet: str, r1: int, r2: int, c1: int, c2: int) -> List[List[Any]]:
        cells = self.grid.get(sheet, {})
        used = [r for (r, c) in cells if r1 <= r <= r2 and c1 <= c <= c2]
        if not used:
            return []
        out = []
        for r in range(r1, max(used) + 1):
            row = [cells.get((r, c), "") for c in range(c1, c2 + 1)]
            while row and row[-1] == "":
                row.pop()
            out.append(row)
        return out

    def _write(self, sheet: str, r1: int, c1: int, values: List[List[Any]]) -> None:
        cells = self.grid.setdefault(sheet, {})
        for i, row in enumerate(values):
            for j, v in enumerate(row):
                if v is None:
                    continue  # null leaves the cell untouched
                if v == "":
                    cells.pop((r1 + i, c1 + j), None)
                else:
                    cells[(r1 + i, c1 + j)] = v

    def _clear(self, sheet: str, r1: int, r2: int, c1: int, c2: int) -> None:
        cells = self.grid.get(sheet, {})
        for key in [k for k in cells if r1 <= k[0] <= r2 and c1 <= k[1] <= c2]:
            del cells[key]

    # ---- transport ----
    def handle(self, request: httpx.Request) -> httpx.Response:
        if self.require_auth and not request.headers.get("Authorization"):
            return httpx.Response(401, json={"error": {"code": 401, "message": "unauthenticated"}})

        path = request.url.path
        _, _, tail = path.partition("/values")
        body = json.loads(request.content) if request.content else {}

        if tail == ":batchUpdate":
            action, range_ = "batchUpdate", ""
        else:
            range_ = tail.lstrip("/")
            action = "get" if request.method == "GET" else "update"
            for suffix in (":clear", ":append"):
                if range_.endswith(suffix):
                    action, range_ = suffix[1:], range_[: -len(suffix)]
        self.calls.append((action, range_))

        if self._fail is not None:
            status = self._fail(action, range_)
            if status:
                return httpx.Response(status, json={"error": {"code": status, "message": "rejected"}})

        if action == "batchUpdate":
            assert body.get("valueInputOption") == "USER_ENTERED"
            for item in body["data"]:
                sheet, r1, _, c1, _ = parse_a1(item["range"])
                self._write(sheet, r1, c1, item["values"])
            return httpx.Response(200, json={"totalUpdatedCells": len(body["data"])})

        sheet, r1, r2, c1, c2 = parse_a1(range_)
        if action == "get":
            values = self._read(sheet, r1, r2, c1, c2)
            payload: Dict[str, Any] = {"range": range_, "majorDimension": "ROWS"}
            if values:
                payload["values"] = values
            return httpx.Response(200, json=payload)
        if action == "clear":
            self._clear(sheet, r1, r2, c1, c2)
            return httpx.Response(200, json={"clearedRange": range_})
        assert request.url.params.get("valueInputOption") == "USER_ENTERED"
        if action == "append":
            used = [r for (r, c) in self.grid.get(sheet, {}) if c1 <= c <= c2]
            self._write(sheet, max(used, default=0) + 1, c1, body["values"])
            return httpx.Response(200, json={"updates": {"updatedRows": len(body["values"])}})
        self._write(sheet, r1, c1, body["values"])
        return httpx.Response(200, json={"updatedRange": range_})


@pytest.fixture
def fake_sheets() -> FakeSheets:
    return FakeSheets()


@pytest.fixture
def csv_dir(tmp_path: Path) -> Path:
    d = tmp_path / "CSV"
    d.mkdir()
    return d


@pytest.fixture
def cfg(csv_dir: Path) -> Settings:
    return Settings(
        spreadsheet_id="sheet-123",
        access_token="test-token",
        api_base="https://sheets.test/v4",
        holdings_sheet="Holdings Detail",
        csv_dir=str(csv_dir),
        csv_delimiter=",",
        write_delay_ms=0,
        clear_row_limit=1000,
        batch_formulas=False,
        daily_report=False,
    )


@pytest.fixture
def make_gateway(fake_sheets: FakeSheets, cfg: Settings) -> Callable[..., TableGateway]:
    def _make(settings: Optional[Settings] = None, sheets: Optional[FakeSheets] = None) -> TableGateway:
        target = sheets or fake_sheets
        return build_gateway(settings or cfg, transport=httpx.MockTransport(target.handle))

    return _make


@pytest.fixture
def write_export() -> Callable[..., Path]:
    """Write a holdings export CSV with the broker's full header set."""

    def _write(directory: Path, name: str, records: List[Dict[str, str]]) -> Path:
        import csv

        path = directory / name
        with path.open("w", encoding="utf-8", newline="") as f:
            w = csv.DictWriter(f, fieldnames=EXPORT_HEADER)
            w.writeheader()
            for rec in records:
                w.writerow({k: rec.get(k, "") for k in EXPORT_HEADER})
        return path

    return _write


@pytest.fixture
def sheets_factory() -> Callable[..., FakeSheets]:
    return FakeSheets
