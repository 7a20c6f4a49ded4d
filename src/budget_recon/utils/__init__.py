"""Utility modules."""

from .exceptions import (
    BatchNotFoundError,
    BatchStateError,
    ConfigurationError,
    ConflictError,
    ParseError,
    ReconciliationError,
    ReportGenerationError,
    RowIssue,
    StatementReadError,
    ValidationError,
)
from .logging_config import level_from_name, setup_logging

__all__ = [
    "BatchNotFoundError",
    "BatchStateError",
    "ConfigurationError",
    "ConflictError",
    "ParseError",
    "ReconciliationError",
    "ReportGenerationError",
    "RowIssue",
    "StatementReadError",
    "ValidationError",
    "level_from_name",
    "setup_logging",
]
