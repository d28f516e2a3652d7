"""
Split Calculator Module

Turns an expense total and a split policy into per-participant shares.

Supported policies:
1. EQUAL      - total divided evenly; leftover minimal units go to the first participant
2. AMOUNT     - explicit amounts that must add up to the total exactly
3. PERCENTAGE - explicit percentages that must add up to 100 (within tolerance)

Every policy returns shares whose sum equals the total exactly, so the
persisted splits of an expense always add back up to its amount.

Example Usage:
    from app.utils.split_calculator import compute_splits

    shares = compute_splits(
        Decimal("100"),
        SplitType.EQUAL,
        [SplitParticipant(user_id="A"), SplitParticipant(user_id="B"), SplitParticipant(user_id="C")],
    )
    # Result: A=33.34, B=33.33, C=33.33
"""

import logging
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_EVEN
from typing import List, Sequence

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.models.expenses import SplitType
from app.schemas.split_schema import ComputedShare, SplitParticipant

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def compute_splits(
    total_amount: Decimal,
    split_type: SplitType,
    participants: Sequence[SplitParticipant],
    quantum: Decimal = settings.currency_quantum,
    percentage_tolerance: Decimal = settings.percentage_tolerance,
) -> List[ComputedShare]:
    """
    Compute each participant's share of ``total_amount``.

    Args:
        total_amount: Expense total (must be positive)
        split_type: Allocation policy
        participants: Participants in input order; the order matters for EQUAL
            and PERCENTAGE remainders
        quantum: Smallest currency unit (default: 0.01)
        percentage_tolerance: Allowed deviation of the percentage total from 100

    Returns:
        List of ComputedShare, one per participant, in input order

    Raises:
        ValidationError: On empty or duplicate participants, non-positive
            totals/amounts/percentages, totals or amounts finer than
            ``quantum``, or totals that do not add up
    """
    total = Decimal(total_amount)
    if not participants:
        raise ValidationError("no participants")
    if total <= 0:
        raise ValidationError(f"Expense amount must be positive, got {total}")
    if total % quantum != 0:
        raise ValidationError(f"Expense amount {total} is not a whole multiple of {quantum}")

    user_ids = [p.user_id for p in participants]
    duplicates = sorted({u for u in user_ids if user_ids.count(u) > 1})
    if duplicates:
        raise ValidationError(f"Duplicate participants: {', '.join(duplicates)}")

    if split_type == SplitType.EQUAL:
        return _equal_split(total, participants, quantum)
    if split_type == SplitType.AMOUNT:
        return _amount_split(total, participants, quantum)
    if split_type == SplitType.PERCENTAGE:
        return _percentage_split(total, participants, quantum, percentage_tolerance)

    raise ValidationError(f"Unsupported split type: {split_type}")


def _equal_split(total: Decimal, participants: Sequence[SplitParticipant], quantum: Decimal) -> List[ComputedShare]:
    count = len(participants)
    base = (total / count).quantize(quantum, rounding=ROUND_DOWN)
    remainder = total - base * count

    if remainder:
        logger.debug(f"Equal split of {total} over {count}: remainder {remainder} to {participants[0].user_id}")

    return [
        ComputedShare(user_id=p.user_id, amount=base + remainder if i == 0 else base)
        for i, p in enumerate(participants)
    ]


def _amount_split(total: Decimal, participants: Sequence[SplitParticipant], quantum: Decimal) -> List[ComputedShare]:
    for p in participants:
        if p.amount is None or p.amount <= 0:
            raise ValidationError("All participants must have positive amounts for AMOUNT split")
        if Decimal(p.amount) % quantum != 0:
            raise ValidationError(f"Split amount {p.amount} is not a whole multiple of {quantum}")

    specified_total = sum((Decimal(p.amount) for p in participants), Decimal("0"))
    if specified_total != total:
        raise ValidationError(
            f"Split amounts total ({specified_total}) must equal expense amount ({total})"
        )

    return [ComputedShare(user_id=p.user_id, amount=Decimal(p.amount)) for p in participants]


def _percentage_split(
    total: Decimal,
    participants: Sequence[SplitParticipant],
    quantum: Decimal,
    tolerance: Decimal,
) -> List[ComputedShare]:
    for p in participants:
        if p.percentage is None or p.percentage <= 0:
            raise ValidationError("All participants must have positive percentages for PERCENTAGE split")

    total_percentage = sum((Decimal(p.percentage) for p in participants), Decimal("0"))
    if abs(total_percentage - HUNDRED) > tolerance:
        raise ValidationError(f"Split percentages must total 100%, got {total_percentage}%")

    amounts = [
        (total * Decimal(p.percentage) / HUNDRED).quantize(quantum, rounding=ROUND_HALF_EVEN)
        for p in participants
    ]
    # Rounding residue (and any tolerated percentage drift) lands on the first participant
    amounts[0] += total - sum(amounts, Decimal("0"))
    if amounts[0] < 0:
        raise ValidationError(f"Expense amount ({total}) is too small to split by these percentages")

    return [
        ComputedShare(user_id=p.user_id, amount=amount, percentage=Decimal(p.percentage))
        for p, amount in zip(participants, amounts)
    ]
