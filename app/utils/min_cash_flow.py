"""
Min-Cash-Flow Algorithm Module

This module implements the greedy debt-netting step used to settle a group.

The algorithm works by:
1. Taking net balances for each user (positive = owed money, negative = owes money)
2. Separating users into creditors (positive balance) and debtors (negative balance)
3. Repeatedly matching the largest creditor with the largest debtor
4. Transferring the smaller of the two amounts and dropping whoever reaches zero

Every step zeroes at least one party, so N non-zero balances produce at most
N - 1 transactions. The result is not guaranteed to be globally minimal.

Arithmetic is exact: balances are Decimals and no tolerance is applied, so a
well-formed input always ends with every balance at exactly zero.

Time Complexity: O(n) per step to select the largest parties, O(n^2) overall
Space Complexity: O(n) for remaining balances and settlement results

Example Usage:
    from app.utils.min_cash_flow import min_cash_flow

    balances = {"A": Decimal("50"), "B": Decimal("-10"), "C": Decimal("-40")}
    settlements = min_cash_flow(balances)

    # Result: [{"from": "C", "to": "A", "amount": Decimal("40")},
    #          {"from": "B", "to": "A", "amount": Decimal("10")}]
"""

import logging
from decimal import Decimal
from typing import Dict, List, Tuple

from app.core.exceptions import IntegrityError

# Configure logger
logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def total_debt(balances: Dict[str, Decimal]) -> Decimal:
    """
    Sum of all positive balances, after checking the input is zero-sum.

    Raises:
        IntegrityError: If credits and debts do not match exactly

    Example:
        >>> total_debt({"A": Decimal("50"), "B": Decimal("-50")})
        Decimal('50')
    """
    credits = sum((b for b in balances.values() if b > 0), ZERO)
    debts = sum((-b for b in balances.values() if b < 0), ZERO)
    if credits != debts:
        raise IntegrityError(
            f"Balances not zero-sum: credits={credits}, debts={debts}. "
            f"This indicates unbalanced expense data."
        )
    return credits


def _pick_largest(parties: Dict[str, Decimal]) -> Tuple[str, Decimal]:
    # Largest remaining amount first, lower user id wins ties
    user_id = min(parties, key=lambda u: (-parties[u], u))
    return user_id, parties[user_id]


def min_cash_flow(balances: Dict[str, Decimal]) -> List[Dict]:
    """
    Minimize the number of transactions needed to settle all debts.

    Edge Cases Handled:
    - Empty input or all balances zero: returns []
    - Credits and debts that do not match: raises IntegrityError

    Args:
        balances: Dictionary mapping user_id -> net_balance

    Returns:
        List of settlement transactions, each with format:
        [{"from": str, "to": str, "amount": Decimal}, ...]
    """
    total_debt(balances)

    creditors = {user_id: b for user_id, b in balances.items() if b > 0}
    debtors = {user_id: -b for user_id, b in balances.items() if b < 0}

    settlements = []
    while creditors and debtors:
        creditor_id, credit_amount = _pick_largest(creditors)
        debtor_id, debt_amount = _pick_largest(debtors)

        amount = min(credit_amount, debt_amount)
        settlements.append({"from": debtor_id, "to": creditor_id, "amount": amount})
        logger.debug(f"{debtor_id} pays {creditor_id} {amount}")

        creditors[creditor_id] = credit_amount - amount
        debtors[debtor_id] = debt_amount - amount
        if creditors[creditor_id] == 0:
            del creditors[creditor_id]
        if debtors[debtor_id] == 0:
            del debtors[debtor_id]

    return settlements
