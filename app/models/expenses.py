import enum
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, DECIMAL, Boolean, Enum, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship
from app.db.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class SplitType(str, enum.Enum):
    EQUAL = "EQUAL"
    AMOUNT = "AMOUNT"
    PERCENTAGE = "PERCENTAGE"


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=True, index=True)
    title = Column(String(200), nullable=False)
    amount = Column(DECIMAL(12, 2), nullable=False)
    paid_by = Column(String, nullable=False, index=True)  # Reference to user service
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    splits = relationship("ExpenseSplit", back_populates="expense", cascade="all, delete-orphan")


class ExpenseSplit(Base):
    __tablename__ = "expense_splits"
    __table_args__ = (UniqueConstraint("expense_id", "user_id", name="uq_expense_split_user"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    expense_id = Column(String, ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)  # The ower
    amount = Column(DECIMAL(12, 2), nullable=False)
    split_type = Column(Enum(SplitType), nullable=False)
    percentage = Column(DECIMAL(7, 4), nullable=True)
    is_paid = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    version_id = Column(Integer, nullable=False)

    expense = relationship("Expense", back_populates="splits")

    # Optimistic locking: a concurrent paid-flag update raises StaleDataError
    __mapper_args__ = {"version_id_col": version_id}
