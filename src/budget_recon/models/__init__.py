"""Data models for import reconciliation."""

from .reconciliation import (
    BatchStatus,
    ConfirmResult,
    EffectiveRow,
    ImportBatch,
    ImportRow,
    MatchCandidate,
    MatchType,
    ReviewState,
    RowAction,
    RowOverride,
    RowResult,
    resolve_effective_row,
)

__all__ = [
    "BatchStatus",
    "ConfirmResult",
    "EffectiveRow",
    "ImportBatch",
    "ImportRow",
    "MatchCandidate",
    "MatchType",
    "ReviewState",
    "RowAction",
    "RowOverride",
    "RowResult",
    "resolve_effective_row",
]
