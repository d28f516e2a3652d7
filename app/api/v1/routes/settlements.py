from fastapi import APIRouter, Depends, HTTPException
from app.api.v1.dependencies import get_current_user_id, get_split_repository
from app.core.exceptions import NotFoundError
from app.repositories.split_repository import SplitRepository
from app.schemas.settlement_schema import (
    ExecuteRequest, GroupSettlement, OptimizeRequest, PairwiseSettleRequest,
    SettlementPlan, SettlementResult
)
from app.services.settlement_service import (
    execute_settlement, get_group_settlement, optimize_settlement, settle_pairwise_debt
)

router = APIRouter(prefix="/settlements", tags=["settlements"])


@router.post("/optimize", response_model=SettlementPlan)
def optimize_balances(
    request: OptimizeRequest,
    user_id: str = Depends(get_current_user_id)
):
    """Compute settling transactions for arbitrary net balances"""
    return optimize_settlement(request.balances)


@router.get("/groups/{group_id}", response_model=GroupSettlement)
def get_optimized_group_settlement(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    repo: SplitRepository = Depends(get_split_repository)
):
    """Get group balances with optimized settlement suggestions"""
    if not repo.get_group(group_id):
        raise NotFoundError("Group not found")
    if not repo.is_group_member(group_id, user_id):
        raise HTTPException(status_code=403, detail="You are not a member of this group")

    return get_group_settlement(repo, group_id)


@router.post("/groups/{group_id}/execute", response_model=SettlementResult)
def execute_group_settlement(
    group_id: str,
    request: ExecuteRequest,
    user_id: str = Depends(get_current_user_id),
    repo: SplitRepository = Depends(get_split_repository)
):
    """Apply settlement transactions to the group's splits (admin only)"""
    if not repo.get_group(group_id):
        raise NotFoundError("Group not found")
    if not repo.is_group_admin(group_id, user_id):
        raise HTTPException(status_code=403, detail="Only group admins can execute group settlements")

    return execute_settlement(repo, request.transactions, group_id=group_id)


@router.post("/users/{other_user_id}/settle", response_model=SettlementResult)
def settle_with_user(
    other_user_id: str,
    request: PairwiseSettleRequest,
    user_id: str = Depends(get_current_user_id),
    repo: SplitRepository = Depends(get_split_repository)
):
    """Settle what the current user owes another user"""
    return settle_pairwise_debt(
        repo, user_id, other_user_id, amount=request.amount, match_policy=request.match_policy
    )
