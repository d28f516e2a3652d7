import logging
from collections import defaultdict
from decimal import Decimal
from typing import Dict, List
from app.core.exceptions import IntegrityError, NotFoundError, ValidationError
from app.repositories.split_repository import SplitRepository
from app.schemas.balance_schema import (
    BalanceSummary, CounterpartySettlement, GroupBalances, MemberBalance,
    PairwiseBalance, SplitLine
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def pairwise_balance(repo: SplitRepository, user_a: str, user_b: str) -> PairwiseBalance:
    """
    Net position between two users over their unpaid splits.

    ``net_amount`` is positive when user_b owes user_a and negative when
    user_a owes user_b. Splits a payer holds on their own expense are not
    debts and never count.
    """
    if user_a == user_b:
        raise ValidationError("Cannot compute a balance between a user and themselves")

    owed_by_a = repo.get_unpaid_splits(owed_by=user_a, paid_by=user_b)
    owed_by_b = repo.get_unpaid_splits(owed_by=user_b, paid_by=user_a)

    a_owes_b = sum((split.amount for split in owed_by_a), ZERO)
    b_owes_a = sum((split.amount for split in owed_by_b), ZERO)

    lines = sorted(owed_by_a + owed_by_b, key=lambda split: (split.created_at, split.id))

    return PairwiseBalance(
        user1_id=user_a,
        user2_id=user_b,
        user1_owes_user2=a_owes_b,
        user2_owes_user1=b_owes_a,
        net_amount=b_owes_a - a_owes_b,
        splits=[
            SplitLine(
                split_id=split.id,
                expense_id=split.expense_id,
                expense_title=split.expense.title,
                amount=split.amount,
                paid_by=split.expense.paid_by,
                owed_by=split.user_id,
            )
            for split in lines
        ],
    )


def group_balances(repo: SplitRepository, group_id: str) -> GroupBalances:
    """
    Net balance of every roster member over the group's unpaid splits.

    Members without unpaid involvement appear with zeros. The members' net
    balances must add up to zero; anything else means splits reference users
    outside the roster or the stored data is corrupt.
    """
    group = repo.get_group(group_id)
    if not group:
        raise NotFoundError("Group not found")

    member_ids = repo.get_group_member_ids(group_id)

    total_owed: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    total_owes: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for split in repo.get_unpaid_splits(group_id=group_id):
        total_owed[split.expense.paid_by] += split.amount
        total_owes[split.user_id] += split.amount

    members = [
        MemberBalance(
            user_id=user_id,
            total_owed=total_owed[user_id],
            total_owes=total_owes[user_id],
            net_balance=total_owed[user_id] - total_owes[user_id],
        )
        for user_id in member_ids
    ]

    net_sum = sum((member.net_balance for member in members), ZERO)
    if net_sum != ZERO:
        logger.error(f"Group {group_id} balances sum to {net_sum} instead of zero")
        raise IntegrityError(f"Group {group_id} balances do not net to zero (sum={net_sum})")

    return GroupBalances(group_id=group.id, group_name=group.name, members=members)


def get_group_member_debts(repo: SplitRepository, group_id: str) -> List[MemberBalance]:
    """Member breakdown of a group, highest net balance first"""
    members = group_balances(repo, group_id).members
    return sorted(members, key=lambda m: (-m.net_balance, m.user_id))


def get_user_settlements(repo: SplitRepository, user_id: str) -> List[CounterpartySettlement]:
    """
    Who this user owes and who owes this user, netted per counterparty.

    Counterparties whose debts cancel out are omitted. Sorted by net amount,
    largest amount owed to the user first.
    """
    owed_to_you: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    owed_by_you: Dict[str, Decimal] = defaultdict(lambda: ZERO)

    for split in repo.get_unpaid_splits(paid_by=user_id):
        owed_to_you[split.user_id] += split.amount
    for split in repo.get_unpaid_splits(owed_by=user_id):
        owed_by_you[split.expense.paid_by] += split.amount

    settlements = []
    for other_id in set(owed_to_you) | set(owed_by_you):
        net = owed_to_you[other_id] - owed_by_you[other_id]
        if net == ZERO:
            continue
        settlements.append(CounterpartySettlement(
            user_id=other_id,
            owed_to_you=owed_to_you[other_id],
            owed_by_you=owed_by_you[other_id],
            net_amount=net,
        ))

    settlements.sort(key=lambda s: (-s.net_amount, s.user_id))
    return settlements


def get_user_balance_summary(repo: SplitRepository, user_id: str) -> BalanceSummary:
    """Total a user owes and is owed across every unpaid split"""
    owed = sum((split.amount for split in repo.get_unpaid_splits(paid_by=user_id)), ZERO)
    owes = sum((split.amount for split in repo.get_unpaid_splits(owed_by=user_id)), ZERO)
    return BalanceSummary(user_id=user_id, owes=owes, owed=owed, net_balance=owed - owes)
