import logging
from decimal import Decimal
from typing import List, Optional, Sequence
from app.core.exceptions import ConflictError, ValidationError
from app.models.expenses import ExpenseSplit
from app.repositories.split_repository import SplitRepository
from app.schemas.settlement_schema import (
    GroupSettlement, MatchPolicy, NetBalance, SettlementPlan,
    SettlementResult, SettlementTransaction
)
from app.services.balance_service import group_balances
from app.utils.min_cash_flow import min_cash_flow, total_debt

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def optimize_settlement(balances: Sequence[NetBalance]) -> SettlementPlan:
    """
    Turn net balances into a short list of settling transactions.

    Zero balances are ignored. Credits and debts must match exactly,
    otherwise IntegrityError is raised by the min-cash-flow step.
    """
    balance_map = {}
    for balance in balances:
        if balance.user_id in balance_map:
            raise ValidationError(f"Duplicate balance for user {balance.user_id}")
        balance_map[balance.user_id] = balance.net_balance

    settlements = min_cash_flow(balance_map)

    return SettlementPlan(
        transactions=[
            SettlementTransaction(
                from_user_id=settlement["from"],
                to_user_id=settlement["to"],
                amount=settlement["amount"]
            )
            for settlement in settlements
        ],
        total_debt=total_debt(balance_map),
    )


def get_group_settlement(repo: SplitRepository, group_id: str) -> GroupSettlement:
    """Group balances together with the optimized plan that settles them"""
    balances = group_balances(repo, group_id)
    plan = optimize_settlement([
        NetBalance(user_id=member.user_id, net_balance=member.net_balance)
        for member in balances.members
    ])
    return GroupSettlement(
        group_id=balances.group_id,
        group_name=balances.group_name,
        members=balances.members,
        optimized_transactions=plan.transactions,
        total_debt=plan.total_debt,
    )


def _validate_leg(payer_id: str, payee_id: str, amount: Optional[Decimal]) -> None:
    if payer_id == payee_id:
        raise ValidationError("Cannot settle debt with yourself")
    if amount is not None and amount <= 0:
        raise ValidationError(f"Settlement amount must be positive, got {amount}")


def _select_splits(candidates: List[ExpenseSplit], amount: Optional[Decimal], policy: MatchPolicy) -> List[ExpenseSplit]:
    if amount is None:
        return candidates

    if policy == MatchPolicy.EXACT:
        # One whole row per leg; never settles more than the leg amount
        for split in candidates:
            if split.amount == amount:
                return [split]
        return []

    selected = []
    running = ZERO
    for split in candidates:
        if running + split.amount > amount:
            break
        selected.append(split)
        running += split.amount
    return selected


def _settle_leg(
    repo: SplitRepository,
    payer_id: str,
    payee_id: str,
    amount: Optional[Decimal],
    policy: MatchPolicy,
    group_id: Optional[str],
) -> SettlementResult:
    """
    Settle one payer -> payee leg inside its own store transaction.

    A leg with an amount only runs while the payer still owes the payee at
    least that much net of the reverse direction, so a replayed leg is a no-op.
    """
    candidates = repo.get_unpaid_splits(owed_by=payer_id, paid_by=payee_id, group_id=group_id, lock=True)

    if amount is not None:
        reverse = repo.get_unpaid_splits(owed_by=payee_id, paid_by=payer_id, group_id=group_id, lock=True)
        net_owed = sum((split.amount for split in candidates), ZERO) - sum((split.amount for split in reverse), ZERO)
        if net_owed < amount:
            repo.rollback()
            logger.warning(
                f"Settlement {payer_id} -> {payee_id} of {amount} skipped: "
                f"net debt between them is {net_owed}"
            )
            return SettlementResult(settled_amount=ZERO, settled_split_count=0, transactions_processed=1)

    selected = _select_splits(candidates, amount, policy)

    if not selected:
        # Release row locks taken by the candidate read
        repo.rollback()
        if amount is not None and candidates:
            logger.warning(
                f"Settlement {payer_id} -> {payee_id} of {amount} matched no split row "
                f"({len(candidates)} unpaid rows between them); aggregated amounts "
                f"cannot settle partial rows"
            )
        return SettlementResult(settled_amount=ZERO, settled_split_count=0, transactions_processed=1)

    settled_amount = sum((split.amount for split in selected), ZERO)
    count = len(selected)
    repo.mark_paid(selected)

    logger.info(f"Settled {count} split(s) totalling {settled_amount} from {payer_id} to {payee_id}")
    return SettlementResult(settled_amount=settled_amount, settled_split_count=count, transactions_processed=1)


def execute_settlement(
    repo: SplitRepository,
    transactions: Sequence[SettlementTransaction],
    group_id: Optional[str] = None,
) -> SettlementResult:
    """
    Apply a settlement plan by marking exactly matching split rows paid.

    Each transaction is an independent store transaction: a leg that finds no
    row with exactly its amount, or whose payer no longer owes that much net,
    is a no-op counted only in ``transactions_processed``. A leg that loses a
    concurrent update is rolled back and counted in
    ``conflicted_transactions``; earlier legs stay committed and are reported.
    Re-running the same plan settles nothing new.
    """
    for transaction in transactions:
        _validate_leg(transaction.from_user_id, transaction.to_user_id, transaction.amount)

    settled_amount = ZERO
    settled_count = 0
    conflicted = 0
    for transaction in transactions:
        try:
            result = _settle_leg(
                repo,
                transaction.from_user_id,
                transaction.to_user_id,
                transaction.amount,
                MatchPolicy.EXACT,
                group_id,
            )
        except ConflictError as e:
            conflicted += 1
            logger.warning(
                f"Settlement {transaction.from_user_id} -> {transaction.to_user_id} "
                f"of {transaction.amount} not applied: {e.message}"
            )
            continue
        settled_amount += result.settled_amount
        settled_count += result.settled_split_count

    return SettlementResult(
        settled_amount=settled_amount,
        settled_split_count=settled_count,
        transactions_processed=len(transactions),
        conflicted_transactions=conflicted,
    )


def settle_pairwise_debt(
    repo: SplitRepository,
    payer_id: str,
    payee_id: str,
    amount: Optional[Decimal] = None,
    match_policy: MatchPolicy = MatchPolicy.EXACT,
    group_id: Optional[str] = None,
) -> SettlementResult:
    """
    Settle what ``payer_id`` owes ``payee_id``.

    Without an amount every unpaid split between the pair is settled at once.
    With an amount, ``match_policy`` picks the rows: EXACT settles the oldest
    row equal to the amount, OLDEST_FIRST settles whole rows oldest first
    while their running total stays within the amount.
    """
    _validate_leg(payer_id, payee_id, amount)
    return _settle_leg(repo, payer_id, payee_id, amount, match_policy, group_id)
