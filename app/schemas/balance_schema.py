from pydantic import BaseModel
from typing import List
from decimal import Decimal


class SplitLine(BaseModel):
    split_id: str
    expense_id: str
    expense_title: str
    amount: Decimal
    paid_by: str
    owed_by: str


class PairwiseBalance(BaseModel):
    user1_id: str
    user2_id: str
    user1_owes_user2: Decimal
    user2_owes_user1: Decimal
    # Positive: user2 owes user1
    net_amount: Decimal
    splits: List[SplitLine] = []


class MemberBalance(BaseModel):
    user_id: str
    total_owed: Decimal
    total_owes: Decimal
    net_balance: Decimal


class GroupBalances(BaseModel):
    group_id: str
    group_name: str
    members: List[MemberBalance]


class CounterpartySettlement(BaseModel):
    user_id: str
    owed_to_you: Decimal
    owed_by_you: Decimal
    net_amount: Decimal


class BalanceSummary(BaseModel):
    user_id: str
    owes: Decimal
    owed: Decimal
    net_balance: Decimal
