# holdings_sync/services/io_utils.py
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pandas as pd
from loguru import logger

from holdings_sync.services.normalize import COL_SYMBOL

CSV_SUFFIX = ".csv"


def discover_files(csv_dir: str | Path) -> List[Path]:
    """
    Export files to process, in filename order.
    A missing directory or an empty one is a normal no-op.
    """
    root = Path(csv_dir)
    if not root.is_dir():
        logger.info(f"CSV directory not found ({root}), skipping CSV processing")
        return []
    files = sorted(p for p in root.iterdir() if p.is_file() and p.suffix.lower() == CSV_SUFFIX)
    if not files:
        logger.info(f"No CSV files found in {root}")
    return files


def load_export(path: str | Path, sep: str = ",") -> Tuple[List[Dict[str, Optional[str]]], int]:
    """
    Read one holdings export as text-only records keyed by header.
    Returns (records, dropped) where dropped counts rows with more fields
    than the header; those are logged and left out, the rest of the file
    still loads. Raises on unreadable files and on exports without a Symbol
    column.
    """
    p = Path(path)
    dropped: List[List[str]] = []

    def _drop_bad_line(fields: List[str]) -> None:
        dropped.append(fields)
        logger.warning(f"Skipping malformed record in {p.name}: {len(fields)} fields {fields}")
        return None

    try:
        # everything as text; numeric parsing belongs to the normalizer
        df = pd.read_csv(
            p, sep=sep, dtype=str, keep_default_na=False, encoding="utf-8-sig",
            engine="python", on_bad_lines=_drop_bad_line,
        )
    except Exception as e:
        logger.exception(f"Failed to read {p.name}: {e}")
        raise

    df.columns = [str(c).strip() for c in df.columns]
    # short rows come back padded with NaN
    df = df.fillna("")
    if COL_SYMBOL not in df.columns:
        raise ValueError(f"{p.name}: header mismatch, missing column {COL_SYMBOL!r} (got {list(df.columns)})")

    logger.info(f"Found {len(df)} records in {p.name}")
    return df.to_dict(orient="records"), len(dropped)
