import logging
from typing import List, Sequence
from app.core.exceptions import NotFoundError, ValidationError
from app.models.expenses import ExpenseSplit
from app.repositories.split_repository import SplitRepository
from app.schemas.split_schema import SplitCreate, SplitParticipant
from app.utils.split_calculator import compute_splits

logger = logging.getLogger(__name__)


def validate_participants_in_group(repo: SplitRepository, group_id: str, participants: Sequence[SplitParticipant]) -> None:
    """Reject participants that are not on the group roster"""
    members = set(repo.get_group_member_ids(group_id))
    outsiders = [p.user_id for p in participants if p.user_id not in members]
    if outsiders:
        raise ValidationError(f"Users {', '.join(outsiders)} are not members of group {group_id}")


def create_expense_splits(repo: SplitRepository, expense_id: str, split_data: SplitCreate) -> List[ExpenseSplit]:
    """Split an expense among participants; an expense can only be split once"""
    expense = repo.get_expense(expense_id)
    if not expense:
        raise NotFoundError("Expense not found")

    shares = compute_splits(expense.amount, split_data.split_type, split_data.participants)
    splits = repo.create_splits(expense, split_data.split_type, shares)

    logger.info(f"Split expense {expense_id} ({split_data.split_type.value}) among {len(splits)} participants")
    return splits


def get_expense_splits(repo: SplitRepository, expense_id: str) -> List[ExpenseSplit]:
    """Get all splits for an expense, oldest first"""
    if not repo.get_expense(expense_id):
        raise NotFoundError("Expense not found")
    return repo.get_expense_splits(expense_id)


def get_user_splits(repo: SplitRepository, user_id: str) -> List[ExpenseSplit]:
    """Get all splits owed by a user, newest first"""
    return repo.get_user_splits(user_id)
