"""
Integration tests for applying settlements to the split store.

Tests cover:
- Executing optimized plans with exact row matching
- No-op legs and repeated execution
- Pairwise settlement with and without an amount
- Match policies (EXACT, OLDEST_FIRST)
- Concurrent settlement of the same rows
"""
import pytest
from decimal import Decimal

from app.core.exceptions import ConflictError, ValidationError
from app.models.expenses import ExpenseSplit
from app.repositories.split_repository import SplitRepository
from app.schemas.settlement_schema import MatchPolicy, SettlementTransaction
from app.services.balance_service import group_balances, pairwise_balance
from app.services.settlement_service import (
    execute_settlement, get_group_settlement, settle_pairwise_debt
)
from app.tests.conftest import split_equally


def paid_splits(db_session, user_id):
    return db_session.query(ExpenseSplit).filter(
        ExpenseSplit.user_id == user_id, ExpenseSplit.is_paid == True  # noqa: E712
    ).all()


@pytest.fixture
def trip(repo, make_group, make_expense):
    """Alice pays 90 split equally between alice, bob and charlie."""
    group = make_group(["alice", "bob", "charlie"], admin_ids=["alice"])
    expense = make_expense("alice", "90", group_id=group.id, title="Test Expense")
    split_equally(repo, expense, ["alice", "bob", "charlie"])
    return group


@pytest.mark.integration
class TestExecuteSettlement:
    """Test execute_settlement()."""

    def test_executes_matching_transactions(self, repo, trip):
        result = execute_settlement(repo, [
            SettlementTransaction(from_user_id="bob", to_user_id="alice", amount=Decimal("30")),
            SettlementTransaction(from_user_id="charlie", to_user_id="alice", amount=Decimal("30")),
        ], group_id=trip.id)

        assert result.settled_amount == Decimal("60")
        assert result.settled_split_count == 2
        assert result.transactions_processed == 2
        assert all(m.net_balance == 0 for m in group_balances(repo, trip.id).members)

    def test_optimized_plan_round_trip(self, repo, trip):
        plan = get_group_settlement(repo, trip.id)
        assert plan.total_debt == Decimal("60")

        result = execute_settlement(repo, plan.optimized_transactions, group_id=trip.id)

        assert result.settled_split_count == 2
        after = get_group_settlement(repo, trip.id)
        assert after.optimized_transactions == []
        assert after.total_debt == Decimal("0")

    def test_amount_smaller_than_split_settles_nothing(self, repo, db_session, trip):
        result = execute_settlement(repo, [
            SettlementTransaction(from_user_id="bob", to_user_id="alice", amount=Decimal("15")),
        ], group_id=trip.id)

        assert result.settled_amount == Decimal("0")
        assert result.settled_split_count == 0
        assert result.transactions_processed == 1
        assert paid_splits(db_session, "bob") == []

    def test_no_transactions(self, repo, trip):
        result = execute_settlement(repo, [], group_id=trip.id)
        assert result.settled_amount == Decimal("0")
        assert result.settled_split_count == 0
        assert result.transactions_processed == 0

    def test_repeat_execution_is_idempotent(self, repo, trip):
        transactions = [
            SettlementTransaction(from_user_id="bob", to_user_id="alice", amount=Decimal("30")),
        ]
        first = execute_settlement(repo, transactions, group_id=trip.id)
        second = execute_settlement(repo, transactions, group_id=trip.id)

        assert first.settled_split_count == 1
        assert second.settled_split_count == 0
        assert second.transactions_processed == 1

    def test_repeat_execution_with_offsetting_rows(self, repo, db_session, make_expense):
        split_equally(repo, make_expense("alice", "60"), ["alice", "bob"])
        split_equally(repo, make_expense("alice", "60"), ["alice", "bob"])
        split_equally(repo, make_expense("bob", "60"), ["alice", "bob"])
        transactions = [
            SettlementTransaction(from_user_id="bob", to_user_id="alice", amount=Decimal("30")),
        ]

        first = execute_settlement(repo, transactions)
        assert first.settled_split_count == 1
        assert pairwise_balance(repo, "alice", "bob").net_amount == Decimal("0")

        second = execute_settlement(repo, transactions)
        assert second.settled_split_count == 0
        assert second.settled_amount == Decimal("0")
        assert second.transactions_processed == 1
        assert pairwise_balance(repo, "alice", "bob").net_amount == Decimal("0")
        assert len(paid_splits(db_session, "bob")) == 1

    def test_leg_larger_than_net_debt_settles_nothing(self, repo, make_expense):
        split_equally(repo, make_expense("alice", "60"), ["alice", "bob"])
        split_equally(repo, make_expense("bob", "20"), ["alice", "bob"])

        result = execute_settlement(repo, [
            SettlementTransaction(from_user_id="bob", to_user_id="alice", amount=Decimal("30")),
        ])
        assert result.settled_split_count == 0
        assert pairwise_balance(repo, "alice", "bob").net_amount == Decimal("20")

    def test_conflicting_leg_keeps_earlier_results(self, repo, session_factory, monkeypatch, trip):
        original_mark_paid = repo.mark_paid
        calls = []

        def mark_paid_after_concurrent_update(splits):
            calls.append(splits)
            if len(calls) == 2:
                # Another session settles the same rows first
                other = session_factory()
                try:
                    for split in splits:
                        other.get(ExpenseSplit, split.id).is_paid = True
                    other.commit()
                finally:
                    other.close()
            return original_mark_paid(splits)

        monkeypatch.setattr(repo, "mark_paid", mark_paid_after_concurrent_update)

        result = execute_settlement(repo, [
            SettlementTransaction(from_user_id="bob", to_user_id="alice", amount=Decimal("30")),
            SettlementTransaction(from_user_id="charlie", to_user_id="alice", amount=Decimal("30")),
        ], group_id=trip.id)

        assert result.settled_amount == Decimal("30")
        assert result.settled_split_count == 1
        assert result.transactions_processed == 2
        assert result.conflicted_transactions == 1

        repo.db.expire_all()
        assert all(m.net_balance == 0 for m in group_balances(repo, trip.id).members)

    def test_only_one_row_per_transaction(self, repo, db_session, make_expense):
        split_equally(repo, make_expense("alice", "60"), ["alice", "bob"])
        split_equally(repo, make_expense("alice", "60"), ["alice", "bob"])

        result = execute_settlement(repo, [
            SettlementTransaction(from_user_id="bob", to_user_id="alice", amount=Decimal("30")),
        ])

        assert result.settled_amount == Decimal("30")
        assert len(paid_splits(db_session, "bob")) == 1

    def test_transaction_spanning_rows_settles_nothing(self, repo, make_expense):
        split_equally(repo, make_expense("alice", "40"), ["alice", "bob"])
        split_equally(repo, make_expense("alice", "60"), ["alice", "bob"])

        result = execute_settlement(repo, [
            SettlementTransaction(from_user_id="bob", to_user_id="alice", amount=Decimal("50")),
        ])
        assert result.settled_split_count == 0

    def test_group_scope(self, repo, make_group, make_expense, trip):
        other = make_group(["alice", "bob"], name="Other")
        split_equally(repo, make_expense("alice", "60", group_id=other.id), ["alice", "bob"])

        result = execute_settlement(repo, [
            SettlementTransaction(from_user_id="bob", to_user_id="alice", amount=Decimal("30")),
        ], group_id=other.id)

        assert result.settled_split_count == 1
        trip_bob = next(m for m in group_balances(repo, trip.id).members if m.user_id == "bob")
        assert trip_bob.net_balance == Decimal("-30")

    def test_self_settlement_rejected_before_any_leg(self, repo, db_session, trip):
        with pytest.raises(ValidationError, match="yourself"):
            execute_settlement(repo, [
                SettlementTransaction(from_user_id="bob", to_user_id="alice", amount=Decimal("30")),
                SettlementTransaction(from_user_id="alice", to_user_id="alice", amount=Decimal("30")),
            ])
        assert paid_splits(db_session, "bob") == []


@pytest.mark.integration
class TestSettlePairwiseDebt:
    """Test settle_pairwise_debt()."""

    def test_settles_everything_without_amount(self, repo, db_session, make_expense):
        split_equally(repo, make_expense("alice", "120"), ["alice", "bob"])

        result = settle_pairwise_debt(repo, "bob", "alice")

        assert result.settled_amount == Decimal("60")
        assert result.settled_split_count == 1
        assert len(paid_splits(db_session, "bob")) == 1

    def test_settles_all_rows_without_amount(self, repo, make_expense):
        split_equally(repo, make_expense("alice", "30"), ["alice", "bob"])
        split_equally(repo, make_expense("alice", "40"), ["alice", "bob"])

        result = settle_pairwise_debt(repo, "bob", "alice")
        assert result.settled_amount == Decimal("35")
        assert result.settled_split_count == 2

    def test_partial_amount_settles_nothing(self, repo, make_expense):
        split_equally(repo, make_expense("alice", "150"), ["alice", "bob"])

        result = settle_pairwise_debt(repo, "bob", "alice", Decimal("50"))

        assert result.settled_amount == Decimal("0")
        assert result.settled_split_count == 0

    def test_no_debts(self, repo):
        result = settle_pairwise_debt(repo, "bob", "alice")
        assert result.settled_amount == Decimal("0")
        assert result.settled_split_count == 0

    def test_direction_matters(self, repo, make_expense):
        split_equally(repo, make_expense("alice", "120"), ["alice", "bob"])

        result = settle_pairwise_debt(repo, "alice", "bob")
        assert result.settled_split_count == 0

    def test_exact_amount_picks_matching_row(self, repo, db_session, make_expense):
        split_equally(repo, make_expense("alice", "30", title="Coffee 1"), ["alice", "bob"])
        split_equally(repo, make_expense("alice", "40", title="Coffee 2"), ["alice", "bob"])

        result = settle_pairwise_debt(repo, "bob", "alice", Decimal("20"))

        assert result.settled_amount == Decimal("20")
        paid = paid_splits(db_session, "bob")
        assert [split.expense.title for split in paid] == ["Coffee 2"]

    def test_oldest_first_policy(self, repo, db_session, make_expense):
        split_equally(repo, make_expense("alice", "30", title="Coffee 1"), ["alice", "bob"])
        split_equally(repo, make_expense("alice", "40", title="Coffee 2"), ["alice", "bob"])

        result = settle_pairwise_debt(
            repo, "bob", "alice", Decimal("30"), match_policy=MatchPolicy.OLDEST_FIRST
        )

        assert result.settled_amount == Decimal("15")
        assert result.settled_split_count == 1
        paid = paid_splits(db_session, "bob")
        assert [split.expense.title for split in paid] == ["Coffee 1"]

    def test_oldest_first_covers_several_rows(self, repo, make_expense):
        split_equally(repo, make_expense("alice", "30"), ["alice", "bob"])
        split_equally(repo, make_expense("alice", "40"), ["alice", "bob"])

        result = settle_pairwise_debt(
            repo, "bob", "alice", Decimal("35"), match_policy=MatchPolicy.OLDEST_FIRST
        )
        assert result.settled_amount == Decimal("35")
        assert result.settled_split_count == 2

    def test_self_settlement_rejected(self, repo):
        with pytest.raises(ValidationError, match="yourself"):
            settle_pairwise_debt(repo, "alice", "alice")

    def test_non_positive_amount_rejected(self, repo):
        with pytest.raises(ValidationError, match="positive"):
            settle_pairwise_debt(repo, "bob", "alice", Decimal("0"))


@pytest.mark.integration
class TestConcurrentSettlement:
    """Two sessions racing to settle the same split row."""

    def test_stale_row_is_not_settled_twice(self, repo, session_factory, make_expense):
        split_equally(repo, make_expense("alice", "60"), ["alice", "bob"])

        first = SplitRepository(session_factory())
        second = SplitRepository(session_factory())
        try:
            seen_by_first = first.get_unpaid_splits(owed_by="bob", paid_by="alice", lock=True)
            seen_by_second = second.get_unpaid_splits(owed_by="bob", paid_by="alice", lock=True)
            assert len(seen_by_first) == len(seen_by_second) == 1

            second.mark_paid(seen_by_second)
            with pytest.raises(ConflictError):
                first.mark_paid(seen_by_first)
        finally:
            first.db.close()
            second.db.close()

        # The row was settled exactly once
        repo.db.expire_all()
        settled = repo.db.query(ExpenseSplit).filter(ExpenseSplit.user_id == "bob").one()
        assert settled.is_paid is True
        assert settled.version_id == 2
