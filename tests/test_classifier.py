"""Tests for row classification: duplicate, exact, probable and new."""

from datetime import date
from decimal import Decimal

import pytest
from conftest import ACCOUNT, USER

from budget_recon.matching.aliases import AliasResolver
from budget_recon.matching.classifier import Classifier
from budget_recon.models.reconciliation import ImportRow, MatchType, RowAction
from budget_recon.storage.tables import ImportBatchRecord, LedgerTransaction


def _row(amount: str, on: date, description: str = "PAIEMENT RESTAURANT NICE") -> ImportRow:
    return ImportRow(date=on, amount=Decimal(amount), description=description)


@pytest.fixture
def classify(config, database):
    """Classify rows with the fixture configuration."""

    def _classify(rows, cfg=None):
        classifier = Classifier(cfg or config, database)
        with database.session_scope() as session:
            return classifier.classify(session, USER, ACCOUNT, rows)

    return _classify


class TestMatchTypes:
    def test_exact(self, classify, add_transaction):
        txn_id = add_transaction("-42.00", date(2026, 1, 9), "Restaurant")
        (result,) = classify([_row("-42.00", date(2026, 1, 9))])

        assert result.match_type is MatchType.EXACT
        assert result.action is RowAction.MATCH
        assert result.matched_transaction_id == txn_id
        assert len(result.candidates) == 1

    def test_single_candidate_on_another_day_is_probable_and_preselected(
        self, classify, add_transaction
    ):
        txn_id = add_transaction("-42.00", date(2026, 1, 7))
        (result,) = classify([_row("-42.00", date(2026, 1, 9))])

        assert result.match_type is MatchType.PROBABLE
        assert result.action is RowAction.MATCH
        assert result.matched_transaction_id == txn_id

    def test_opposite_sign_is_probable(self, classify, add_transaction):
        add_transaction("42.00", date(2026, 1, 9))
        (result,) = classify([_row("-42.00", date(2026, 1, 9))])
        assert result.match_type is MatchType.PROBABLE

    def test_several_candidates_leave_selection_open(self, classify, add_transaction):
        add_transaction("-42.00", date(2026, 1, 9), txn_id="same-day")
        add_transaction("-42.00", date(2026, 1, 12), txn_id="later")
        (result,) = classify([_row("-42.00", date(2026, 1, 9))])

        assert result.match_type is MatchType.PROBABLE
        assert result.matched_transaction_id is None
        assert [c.id for c in result.candidates] == ["same-day", "later"]
        assert result.score == max(c.score for c in result.candidates)

    def test_no_candidate_is_new(self, classify):
        (result,) = classify([_row("-777.77", date(2026, 1, 9))])

        assert result.match_type is MatchType.NEW
        assert result.action is RowAction.CREATE
        assert result.candidates == ()
        assert result.suggested_payee_id is None

    def test_void_transactions_are_ignored(self, classify, add_transaction):
        add_transaction("-42.00", date(2026, 1, 9), status="void")
        (result,) = classify([_row("-42.00", date(2026, 1, 9))])
        assert result.match_type is MatchType.NEW


class TestPayeeSuggestions:
    def test_alias_suggests_payee(self, classify, database, add_payee):
        payee_id = add_payee("Lidl")
        with database.session_scope() as session:
            AliasResolver(session).learn(USER, payee_id, "CARTE 28/12/25 LIDL 1234 CB*7166")

        (result,) = classify([_row("-23.40", date(2026, 1, 5), "CARTE 04/01/26 LIDL 1234 CB*7166")])

        assert result.match_type is MatchType.NEW
        assert result.suggested_payee_id == payee_id
        assert result.suggested_payee_name == "Lidl"

    def test_known_brand_suggests_new_payee_name(self, classify):
        (result,) = classify([_row("-13.49", date(2026, 1, 5), "PRLV SEPA NETFLIX.COM")])

        assert result.suggested_payee_id is None
        assert result.suggested_payee_name == "Netflix"


class TestWithinBatchAllocation:
    def test_candidate_is_claimed_once(self, classify, add_transaction):
        """Test that a pre-selected candidate is withheld from later rows."""
        txn_id = add_transaction("-42.00", date(2026, 1, 9))
        first, second = classify(
            [_row("-42.00", date(2026, 1, 9)), _row("-42.00", date(2026, 1, 9))]
        )

        assert first.match_type is MatchType.EXACT
        assert first.matched_transaction_id == txn_id
        assert second.match_type is MatchType.NEW
        assert second.candidates == ()

    def test_open_selection_does_not_claim(self, classify, add_transaction):
        add_transaction("-42.00", date(2026, 1, 9), txn_id="one")
        add_transaction("-42.00", date(2026, 1, 10), txn_id="two")
        first, second = classify(
            [_row("-42.00", date(2026, 1, 9)), _row("-42.00", date(2026, 1, 10))]
        )

        assert first.matched_transaction_id is None
        assert second.match_type is MatchType.PROBABLE
        assert len(second.candidates) == 2

    def test_sequential_and_concurrent_lookups_agree(self, classify, config, add_transaction):
        for day in range(1, 8):
            add_transaction("-15.00", date(2026, 1, day))
        rows = [_row("-15.00", date(2026, 1, day)) for day in (3, 3, 5, 1)]

        concurrent = classify(rows)
        sequential_config = config.model_copy(deep=True)
        sequential_config.matching.max_workers = 1
        sequential = classify(rows, sequential_config)

        assert concurrent == sequential


class TestDuplicates:
    def _confirmed_twin(self, database, row: ImportRow) -> str:
        """A reconciled transaction created by a confirmed batch of the account."""
        with database.session_scope() as session:
            batch = ImportBatchRecord(
                id="batch-old", user_id=USER, account_id=ACCOUNT, status="confirmed"
            )
            session.add(batch)
            session.flush()
            txn = LedgerTransaction(
                id="twin",
                user_id=USER,
                account_id=ACCOUNT,
                date=row.date,
                amount_cents=-4200,
                description=row.description,
                reconciled=True,
                import_batch_id=batch.id,
                reconciled_batch_id=batch.id,
                import_hash=row.import_hash,
            )
            session.add(txn)
        return txn.id

    def test_ledger_policy(self, classify, database):
        row = _row("-42.00", date(2026, 1, 9))
        twin_id = self._confirmed_twin(database, row)

        (result,) = classify([row])

        assert result.match_type is MatchType.DUPLICATE
        assert result.action is RowAction.SKIP
        assert result.duplicate_of == twin_id

    def test_ledger_policy_needs_identical_description(self, classify, database):
        self._confirmed_twin(database, _row("-42.00", date(2026, 1, 9)))
        (result,) = classify([_row("-42.00", date(2026, 1, 9), "Autre libelle")])
        assert result.match_type is MatchType.NEW

    def test_reconciled_without_confirmed_batch_is_not_a_duplicate(
        self, classify, add_transaction
    ):
        add_transaction("-42.00", date(2026, 1, 9), "PAIEMENT RESTAURANT NICE", reconciled=True)
        (result,) = classify([_row("-42.00", date(2026, 1, 9))])
        assert result.match_type is MatchType.NEW

    def _hashed_open_transaction(self, database, add_transaction, row: ImportRow) -> str:
        txn_id = add_transaction("-42.00", row.date, row.description)
        with database.session_scope() as session:
            session.get(LedgerTransaction, txn_id).import_hash = row.import_hash
        return txn_id

    def test_import_hash_policy_before_exact(self, classify, config, database, add_transaction):
        row = _row("-42.00", date(2026, 1, 9))
        txn_id = self._hashed_open_transaction(database, add_transaction, row)
        config.matching.duplicate_policy = "import_hash"

        (result,) = classify([row])

        assert result.match_type is MatchType.DUPLICATE
        assert result.duplicate_of == txn_id

    def test_import_hash_policy_after_exact(self, classify, config, database, add_transaction):
        row = _row("-42.00", date(2026, 1, 9))
        txn_id = self._hashed_open_transaction(database, add_transaction, row)
        config.matching.duplicate_policy = "import_hash"
        config.matching.duplicate_precedence = "after_exact"

        (result,) = classify([row])

        assert result.match_type is MatchType.EXACT
        assert result.matched_transaction_id == txn_id
