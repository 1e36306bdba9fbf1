# holdings_sync/core/errors.py
from __future__ import annotations

from typing import Optional


class SyncError(Exception):
    """Base for every failure the refresh pipeline reports."""


class SkippedRecord(SyncError):
    """Source record that cannot become a holding (e.g. blank symbol)."""


class CellWriteFailure(SyncError):
    """A single remote write rejected by the store; carries row/column context."""

    def __init__(self, row: int, column: str, cause: BaseException):
        super().__init__(f"{column}{row}: {cause}")
        self.row = row
        self.column = column
        self.cause = cause


class FileProcessingFailure(SyncError):
    def __init__(self, path: str, cause: Optional[BaseException] = None):
        super().__init__(f"{path}: {cause}" if cause else path)
        self.path = path
        self.cause = cause


class SetupFailure(SyncError):
    """Credentials or target sheet missing; remote calls will fail downstream."""


class OrchestratorFailure(SyncError):
    """Error that escaped the run sequence; propagated to the caller."""
