from __future__ import annotations


class ErpError(Exception):
    """Base class for errors raised by the import and reconciliation core."""


class SourceNotFound(ErpError):
    """The workbook or the requested sheet does not exist. Aborts a run before any stage."""


class EntityResolutionError(ErpError):
    def __init__(self, kind: str, name, reason: str):
        self.kind = kind
        self.name = name
        self.reason = reason
        super().__init__(f"Could not resolve {kind} '{name}': {reason}")


class ForeignKeyMissing(ErpError):
    def __init__(self, kind: str, name, row_index: int | None = None):
        self.kind = kind
        self.name = name
        self.row_index = row_index
        where = f" (row {row_index})" if row_index is not None else ""
        super().__init__(f"No {kind} resolved for '{name}'{where}")


class TransactionFailure(ErpError):
    def __init__(self, stage: str, message: str):
        self.stage = stage
        super().__init__(f"{stage}: {message}")


class UnreadableWorkbook(SourceNotFound):
    """The source exists but cannot be decoded as an .xlsx workbook."""
