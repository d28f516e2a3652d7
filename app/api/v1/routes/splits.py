from fastapi import APIRouter, Depends, HTTPException
from typing import List
from app.api.v1.dependencies import get_current_user_id, get_split_repository
from app.core.exceptions import NotFoundError
from app.models.expenses import Expense
from app.repositories.split_repository import SplitRepository
from app.schemas.split_schema import SplitCreate, SplitOut
from app.services.split_service import (
    create_expense_splits, get_expense_splits, get_user_splits, validate_participants_in_group
)

router = APIRouter(prefix="/expenses", tags=["splits"])


def _check_expense_access(repo: SplitRepository, expense: Expense, user_id: str):
    if expense.group_id:
        if not repo.is_group_member(expense.group_id, user_id):
            raise HTTPException(status_code=403, detail="You are not a member of this group")
    elif expense.paid_by != user_id:
        raise HTTPException(status_code=403, detail="You can only access splits of your own expenses")


@router.get("/splits/mine", response_model=List[SplitOut])
def get_my_splits(
    user_id: str = Depends(get_current_user_id),
    repo: SplitRepository = Depends(get_split_repository)
):
    """Get every split the current user owes, newest first"""
    return get_user_splits(repo, user_id)


@router.post("/{expense_id}/splits", response_model=List[SplitOut], status_code=201)
def split_expense(
    expense_id: str,
    split_data: SplitCreate,
    user_id: str = Depends(get_current_user_id),
    repo: SplitRepository = Depends(get_split_repository)
):
    """Split an expense among participants (once per expense)"""
    expense = repo.get_expense(expense_id)
    if not expense:
        raise NotFoundError("Expense not found")

    _check_expense_access(repo, expense, user_id)

    # Participants of a group expense must belong to the group
    if expense.group_id:
        validate_participants_in_group(repo, expense.group_id, split_data.participants)

    return create_expense_splits(repo, expense_id, split_data)


@router.get("/{expense_id}/splits", response_model=List[SplitOut])
def get_expense_split_list(
    expense_id: str,
    user_id: str = Depends(get_current_user_id),
    repo: SplitRepository = Depends(get_split_repository)
):
    """Get all splits for an expense"""
    expense = repo.get_expense(expense_id)
    if not expense:
        raise NotFoundError("Expense not found")

    _check_expense_access(repo, expense, user_id)
    return get_expense_splits(repo, expense_id)
