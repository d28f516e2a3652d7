from fastapi import APIRouter, Depends, HTTPException
from typing import List
from app.api.v1.dependencies import get_current_user_id, get_split_repository
from app.core.exceptions import NotFoundError
from app.repositories.split_repository import SplitRepository
from app.schemas.balance_schema import (
    BalanceSummary, CounterpartySettlement, GroupBalances, MemberBalance, PairwiseBalance
)
from app.services.balance_service import (
    get_group_member_debts, get_user_balance_summary, get_user_settlements,
    group_balances, pairwise_balance
)

router = APIRouter(prefix="/balances", tags=["balances"])


def _check_group_member(repo: SplitRepository, group_id: str, user_id: str):
    if not repo.get_group(group_id):
        raise NotFoundError("Group not found")
    if not repo.is_group_member(group_id, user_id):
        raise HTTPException(status_code=403, detail="You are not a member of this group")


@router.get("/me", response_model=BalanceSummary)
def get_my_balance(
    user_id: str = Depends(get_current_user_id),
    repo: SplitRepository = Depends(get_split_repository)
):
    """Total the current user owes and is owed"""
    return get_user_balance_summary(repo, user_id)


@router.get("/me/settlements", response_model=List[CounterpartySettlement])
def get_my_settlements(
    user_id: str = Depends(get_current_user_id),
    repo: SplitRepository = Depends(get_split_repository)
):
    """Net position of the current user against every counterparty"""
    return get_user_settlements(repo, user_id)


@router.get("/users/{other_user_id}", response_model=PairwiseBalance)
def get_pairwise_balance(
    other_user_id: str,
    user_id: str = Depends(get_current_user_id),
    repo: SplitRepository = Depends(get_split_repository)
):
    """Detailed balance between the current user and another user"""
    return pairwise_balance(repo, user_id, other_user_id)


@router.get("/groups/{group_id}", response_model=GroupBalances)
def get_group_balances(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    repo: SplitRepository = Depends(get_split_repository)
):
    """Net balance of every group member"""
    _check_group_member(repo, group_id, user_id)
    return group_balances(repo, group_id)


@router.get("/groups/{group_id}/members", response_model=List[MemberBalance])
def get_group_member_debt_list(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    repo: SplitRepository = Depends(get_split_repository)
):
    """Member debt breakdown, highest net balance first"""
    _check_group_member(repo, group_id, user_id)
    return get_group_member_debts(repo, group_id)
