"""Data models for statement rows, match results and import batches."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from ..utils.exceptions import RowIssue, ValidationError
from ..utils.text import compute_import_hash, quantize_amount


class RowAction(Enum):
    """What confirming a row does to the ledger."""

    CREATE = "create"
    SKIP = "skip"
    MATCH = "match"

    @classmethod
    def parse(cls, value: Any, row_index: int) -> "RowAction":
        """
        Coerce a submitted action value.

        Raises:
            ValidationError: For anything that is not create/skip/match
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(
                "Unrecognized row action",
                [RowIssue(row_index, f"unknown action {value!r}")],
            ) from None


class MatchType(Enum):
    """Classifier verdict for an imported row."""

    DUPLICATE = "duplicate"
    EXACT = "exact"
    PROBABLE = "probable"
    NEW = "new"

    @property
    def default_action(self) -> RowAction:
        if self is MatchType.DUPLICATE:
            return RowAction.SKIP
        if self in (MatchType.EXACT, MatchType.PROBABLE):
            return RowAction.MATCH
        return RowAction.CREATE


class BatchStatus(Enum):
    """Persisted status of an import batch."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class ReviewState(Enum):
    """Workflow state of an import batch as seen by the caller."""

    PARSED = "parsed"
    REVIEWED = "reviewed"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class ImportRow:
    """One normalized statement line."""

    date: date
    amount: Decimal
    description: str
    check_number: Optional[str] = None
    card_suffix: Optional[str] = None
    purchase_date: Optional[date] = None

    # 1-based line number in the source statement, when known
    line: Optional[int] = None

    import_hash: str = ""

    def __post_init__(self) -> None:
        self.amount = quantize_amount(self.amount)
        if not self.import_hash:
            self.import_hash = compute_import_hash(self.date, self.amount, self.description)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "amount": str(self.amount),
            "description": self.description,
            "check_number": self.check_number,
            "card_suffix": self.card_suffix,
            "purchase_date": self.purchase_date.isoformat() if self.purchase_date else None,
            "line": self.line,
            "import_hash": self.import_hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ImportRow":
        purchase_date = data.get("purchase_date")
        return cls(
            date=date.fromisoformat(data["date"]),
            amount=Decimal(data["amount"]),
            description=data.get("description") or "",
            check_number=data.get("check_number"),
            card_suffix=data.get("card_suffix"),
            purchase_date=date.fromisoformat(purchase_date) if purchase_date else None,
            line=data.get("line"),
            import_hash=data.get("import_hash") or "",
        )


@dataclass(frozen=True)
class MatchCandidate:
    """Read-only projection of an existing ledger transaction."""

    id: str
    date: date
    amount: Decimal
    description: str
    account_id: str
    payee_id: Optional[str] = None
    payee_name: Optional[str] = None
    reconciled: bool = False

    # Rank signal relative to one imported row; display only
    score: Optional[int] = None

    def date_distance(self, target: date) -> int:
        return abs((self.date - target).days)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "amount": str(self.amount),
            "description": self.description,
            "account_id": self.account_id,
            "payee_id": self.payee_id,
            "payee_name": self.payee_name,
            "reconciled": self.reconciled,
            "score": self.score,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MatchCandidate":
        return cls(
            id=data["id"],
            date=date.fromisoformat(data["date"]),
            amount=Decimal(data["amount"]),
            description=data.get("description") or "",
            account_id=data["account_id"],
            payee_id=data.get("payee_id"),
            payee_name=data.get("payee_name"),
            reconciled=bool(data.get("reconciled", False)),
            score=data.get("score"),
        )


@dataclass(frozen=True)
class RowResult:
    """Classifier output for one row. Never mutated; overrides layer on top."""

    row_index: int
    match_type: MatchType
    action: RowAction
    score: Optional[int] = None
    suggested_payee_id: Optional[str] = None
    suggested_payee_name: Optional[str] = None
    matched_transaction_id: Optional[str] = None
    duplicate_of: Optional[str] = None
    candidates: tuple[MatchCandidate, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "row_index": self.row_index,
            "match_type": self.match_type.value,
            "action": self.action.value,
            "score": self.score,
            "suggested_payee_id": self.suggested_payee_id,
            "suggested_payee_name": self.suggested_payee_name,
            "matched_transaction_id": self.matched_transaction_id,
            "duplicate_of": self.duplicate_of,
            "candidates": [c.to_dict() for c in self.candidates],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RowResult":
        return cls(
            row_index=int(data["row_index"]),
            match_type=MatchType(data["match_type"]),
            action=RowAction(data["action"]),
            score=data.get("score"),
            suggested_payee_id=data.get("suggested_payee_id"),
            suggested_payee_name=data.get("suggested_payee_name"),
            matched_transaction_id=data.get("matched_transaction_id"),
            duplicate_of=data.get("duplicate_of"),
            candidates=tuple(MatchCandidate.from_dict(c) for c in data.get("candidates", [])),
        )


@dataclass(frozen=True)
class RowOverride:
    """
    User decisions for one row, submitted between parse and confirm.

    ``None`` means "keep the classifier's value". ``action`` is kept as submitted
    and only coerced when the effective row is resolved, so an unknown value is
    reported as a validation issue of that row.
    """

    row_index: int
    action: Optional[Any] = None
    matched_transaction_id: Optional[str] = None
    payee_id: Optional[str] = None
    new_payee_name: Optional[str] = None
    description: Optional[str] = None

    def merged_with(self, newer: "RowOverride") -> "RowOverride":
        """Return an override where every field set on ``newer`` wins."""
        return RowOverride(
            row_index=self.row_index,
            action=newer.action if newer.action is not None else self.action,
            matched_transaction_id=(
                newer.matched_transaction_id
                if newer.matched_transaction_id is not None
                else self.matched_transaction_id
            ),
            payee_id=newer.payee_id if newer.payee_id is not None else self.payee_id,
            new_payee_name=(
                newer.new_payee_name if newer.new_payee_name is not None else self.new_payee_name
            ),
            description=newer.description if newer.description is not None else self.description,
        )

    def to_dict(self) -> dict[str, Any]:
        action = self.action.value if isinstance(self.action, RowAction) else self.action
        return {
            "row_index": self.row_index,
            "action": action,
            "matched_transaction_id": self.matched_transaction_id,
            "payee_id": self.payee_id,
            "new_payee_name": self.new_payee_name,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RowOverride":
        """
        Build an override from a mapping keyed by ``row_index`` or ``row``.

        Raises:
            ValidationError: If the row index is missing or not an integer
        """
        raw_index = data.get("row_index", data.get("row"))
        if raw_index is None:
            raise ValidationError(
                "Override without a row index", [RowIssue(-1, "missing row index")]
            )
        try:
            row_index = int(raw_index)
        except (TypeError, ValueError):
            row_index = None
        if row_index is None or isinstance(raw_index, bool):
            raise ValidationError(
                "Invalid row index", [RowIssue(-1, f"invalid row index {raw_index!r}")]
            )
        return cls(
            row_index=row_index,
            action=data.get("action"),
            matched_transaction_id=data.get("matched_transaction_id"),
            payee_id=data.get("payee_id"),
            new_payee_name=data.get("new_payee_name"),
            description=data.get("description"),
        )


@dataclass(frozen=True)
class EffectiveRow:
    """A row with the classifier output and the user's overrides combined."""

    row_index: int
    row: ImportRow
    action: RowAction
    matched_transaction_id: Optional[str]
    payee_id: Optional[str]
    new_payee_name: Optional[str]
    description: str

    # True when the user picked the payee rather than accepting a suggestion
    payee_assigned: bool = False


def resolve_effective_row(
    row: ImportRow, result: RowResult, override: Optional[RowOverride] = None
) -> EffectiveRow:
    """
    Combine a classifier result with an optional override.

    Pure: neither argument is modified.

    Raises:
        ValidationError: If the override carries an unknown action
    """
    if override is None:
        override = RowOverride(row_index=result.row_index)

    action = (
        RowAction.parse(override.action, result.row_index)
        if override.action is not None
        else result.action
    )
    matched_id = (
        override.matched_transaction_id
        if override.matched_transaction_id is not None
        else result.matched_transaction_id
    )
    payee_assigned = override.payee_id is not None or bool(override.new_payee_name)
    payee_id = override.payee_id if override.payee_id is not None else result.suggested_payee_id

    return EffectiveRow(
        row_index=result.row_index,
        row=row,
        action=action,
        matched_transaction_id=matched_id if action is RowAction.MATCH else None,
        payee_id=payee_id,
        new_payee_name=override.new_payee_name or None,
        description=override.description or row.description,
        payee_assigned=payee_assigned,
    )


@dataclass
class ImportBatch:
    """One reconciliation session covering all rows of one statement."""

    id: str
    user_id: str
    account_id: str
    status: BatchStatus
    rows: list[ImportRow] = field(default_factory=list)
    results: list[RowResult] = field(default_factory=list)
    parse_errors: list[RowIssue] = field(default_factory=list)
    overrides: dict[int, RowOverride] = field(default_factory=dict)
    matched_count: int = 0
    filename: Optional[str] = None
    error_message: Optional[str] = None
    error_details: list[RowIssue] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None

    @property
    def state(self) -> ReviewState:
        if self.status is BatchStatus.CONFIRMED:
            return ReviewState.CONFIRMED
        if self.status is BatchStatus.FAILED:
            return ReviewState.FAILED
        return ReviewState.REVIEWED if self.overrides else ReviewState.PARSED

    @property
    def summary(self) -> dict[str, int]:
        """Counts per verdict, with exact and probable folded into ``matches``."""
        return {
            "total": len(self.results),
            "new": sum(1 for r in self.results if r.match_type is MatchType.NEW),
            "duplicates": sum(1 for r in self.results if r.match_type is MatchType.DUPLICATE),
            "matches": sum(
                1
                for r in self.results
                if r.match_type in (MatchType.EXACT, MatchType.PROBABLE)
            ),
            "parse_errors": len(self.parse_errors),
        }

    @property
    def cards_detected(self) -> dict[str, int]:
        """Card suffixes seen on the statement with their row counts."""
        cards: dict[str, int] = {}
        for row in self.rows:
            if row.card_suffix:
                cards[row.card_suffix] = cards.get(row.card_suffix, 0) + 1
        return cards

    def effective_rows(self) -> list[EffectiveRow]:
        return [
            resolve_effective_row(row, result, self.overrides.get(result.row_index))
            for row, result in zip(self.rows, self.results)
        ]


@dataclass
class ConfirmResult:
    """Outcome of a successful confirm."""

    batch_id: str
    created: int = 0
    reconciled: int = 0
    skipped: int = 0
    aliases_learned: int = 0
    created_transaction_ids: list[str] = field(default_factory=list)
    reconciled_transaction_ids: list[str] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        return {
            "created": self.created,
            "reconciled": self.reconciled,
            "skipped": self.skipped,
        }
