"""Custom exceptions for the import reconciliation engine."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RowIssue:
    """A problem attached to one row of an import batch."""

    row_index: int
    message: str

    def to_dict(self) -> dict:
        return {"row": self.row_index, "error": self.message}


class ReconciliationError(Exception):
    """Base exception for reconciliation errors."""

    pass


class ParseError(ReconciliationError):
    """A statement line could not be normalized."""

    def __init__(
        self,
        message: str,
        line: Optional[int] = None,
        column: Optional[str] = None,
    ):
        super().__init__(message)
        self.line = line
        self.column = column


class StatementReadError(ReconciliationError):
    """Error reading a statement file."""

    pass


class ConfigurationError(ReconciliationError):
    """Error in configuration."""

    pass


class RowIssueError(ReconciliationError):
    """Base for confirm failures that point at specific rows."""

    def __init__(self, message: str, issues: Optional[list[RowIssue]] = None):
        super().__init__(message)
        self.issues: list[RowIssue] = list(issues or [])

    def __str__(self) -> str:
        base = super().__str__()
        if not self.issues:
            return base
        details = "; ".join(f"row {i.row_index}: {i.message}" for i in self.issues)
        return f"{base} ({details})"


class ValidationError(RowIssueError):
    """Overrides submitted at confirm time are invalid."""

    pass


class ConflictError(RowIssueError):
    """A target transaction was reconciled by another import."""

    pass


class BatchNotFoundError(ReconciliationError):
    """Import batch does not exist for this user."""

    pass


class BatchStateError(ReconciliationError):
    """Operation not allowed in the batch's current state."""

    pass


class ReportGenerationError(ReconciliationError):
    """Error generating Excel report."""

    pass
