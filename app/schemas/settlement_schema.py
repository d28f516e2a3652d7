import enum
from pydantic import BaseModel, Field
from typing import Optional, List
from decimal import Decimal
from app.schemas.balance_schema import MemberBalance


class MatchPolicy(str, enum.Enum):
    # Settle the oldest unpaid row whose amount equals the transaction amount
    EXACT = "EXACT"
    # Settle whole rows oldest first while the running total stays within the amount
    OLDEST_FIRST = "OLDEST_FIRST"


class NetBalance(BaseModel):
    user_id: str
    net_balance: Decimal


class SettlementTransaction(BaseModel):
    from_user_id: str
    to_user_id: str
    amount: Decimal = Field(..., gt=0)


class SettlementPlan(BaseModel):
    transactions: List[SettlementTransaction]
    total_debt: Decimal


class GroupSettlement(BaseModel):
    group_id: str
    group_name: str
    members: List[MemberBalance]
    optimized_transactions: List[SettlementTransaction]
    total_debt: Decimal


class OptimizeRequest(BaseModel):
    balances: List[NetBalance]


class ExecuteRequest(BaseModel):
    transactions: List[SettlementTransaction]


class PairwiseSettleRequest(BaseModel):
    amount: Optional[Decimal] = None
    match_policy: MatchPolicy = MatchPolicy.EXACT


class SettlementResult(BaseModel):
    settled_amount: Decimal
    settled_split_count: int
    transactions_processed: int
    conflicted_transactions: int = 0
