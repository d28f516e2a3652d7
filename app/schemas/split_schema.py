from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from app.models.expenses import SplitType


class SplitParticipant(BaseModel):
    user_id: str
    amount: Optional[Decimal] = None  # AMOUNT splits
    percentage: Optional[Decimal] = None  # PERCENTAGE splits


class ComputedShare(BaseModel):
    user_id: str
    amount: Decimal
    percentage: Optional[Decimal] = None


class SplitCreate(BaseModel):
    split_type: SplitType
    participants: List[SplitParticipant] = Field(..., min_length=1)


class SplitOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    expense_id: str
    user_id: str
    amount: Decimal
    split_type: SplitType
    percentage: Optional[Decimal] = None
    is_paid: bool
    created_at: datetime
