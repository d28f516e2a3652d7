import logging
from typing import List, Optional
from sqlalchemy import and_, func
from sqlalchemy.exc import IntegrityError as DBIntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from app.core.exceptions import ConflictError
from app.models.expenses import Expense, ExpenseSplit, SplitType
from app.models.groups import Group, GroupMember
from app.schemas.split_schema import ComputedShare

logger = logging.getLogger(__name__)


class SplitRepository:
    """
    Store access for the settlement engine.

    Wraps one SQLAlchemy session; a new repository is built per request, so
    no ORM client is shared across the process.
    """

    def __init__(self, db: Session):
        self.db = db

    # Expense / group reads (external collaborators)

    def get_expense(self, expense_id: str) -> Optional[Expense]:
        return self.db.query(Expense).filter(Expense.id == expense_id).first()

    def get_group(self, group_id: str) -> Optional[Group]:
        return self.db.query(Group).filter(Group.id == group_id).first()

    def get_group_member_ids(self, group_id: str) -> List[str]:
        rows = self.db.query(GroupMember.user_id)\
            .filter(GroupMember.group_id == group_id)\
            .order_by(GroupMember.joined_at, GroupMember.user_id)\
            .all()
        return [row.user_id for row in rows]

    def is_group_member(self, group_id: str, user_id: str) -> bool:
        return self.db.query(GroupMember).filter(
            and_(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
        ).first() is not None

    def is_group_admin(self, group_id: str, user_id: str) -> bool:
        member = self.db.query(GroupMember).filter(
            and_(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
        ).first()
        return bool(member and member.is_admin)

    # Split store

    def has_splits(self, expense_id: str) -> bool:
        count = self.db.query(func.count(ExpenseSplit.id))\
            .filter(ExpenseSplit.expense_id == expense_id)\
            .scalar()
        return bool(count)

    def create_splits(self, expense: Expense, split_type: SplitType, shares: List[ComputedShare]) -> List[ExpenseSplit]:
        """Insert every share of an expense in one transaction, or none of them"""
        if self.has_splits(expense.id):
            raise ConflictError(f"Expense {expense.id} has already been split")

        splits = [
            ExpenseSplit(
                expense_id=expense.id,
                user_id=share.user_id,
                amount=share.amount,
                split_type=split_type,
                percentage=share.percentage,
            )
            for share in shares
        ]
        try:
            self.db.add_all(splits)
            self.db.commit()
        except DBIntegrityError:
            # Another request split the same expense between our check and insert
            self.db.rollback()
            raise ConflictError(f"Expense {expense.id} has already been split")

        for split in splits:
            self.db.refresh(split)
        return splits

    def get_expense_splits(self, expense_id: str) -> List[ExpenseSplit]:
        return self.db.query(ExpenseSplit)\
            .filter(ExpenseSplit.expense_id == expense_id)\
            .order_by(ExpenseSplit.created_at, ExpenseSplit.id)\
            .all()

    def get_user_splits(self, user_id: str) -> List[ExpenseSplit]:
        return self.db.query(ExpenseSplit)\
            .filter(ExpenseSplit.user_id == user_id)\
            .order_by(ExpenseSplit.created_at.desc(), ExpenseSplit.id)\
            .all()

    def get_unpaid_splits(
        self,
        owed_by: Optional[str] = None,
        paid_by: Optional[str] = None,
        group_id: Optional[str] = None,
        lock: bool = False,
    ) -> List[ExpenseSplit]:
        """
        Unpaid splits that represent a debt, oldest first.

        A payer's own split on their own expense is never a debt and is
        always excluded. With ``lock=True`` the rows are selected FOR UPDATE
        on backends that support it.
        """
        query = self.db.query(ExpenseSplit)\
            .join(Expense, ExpenseSplit.expense_id == Expense.id)\
            .filter(
                ExpenseSplit.is_paid == False,  # noqa: E712
                ExpenseSplit.user_id != Expense.paid_by,
            )
        if owed_by is not None:
            query = query.filter(ExpenseSplit.user_id == owed_by)
        if paid_by is not None:
            query = query.filter(Expense.paid_by == paid_by)
        if group_id is not None:
            query = query.filter(Expense.group_id == group_id)
        if lock:
            query = query.with_for_update(of=ExpenseSplit)

        return query.order_by(ExpenseSplit.created_at, ExpenseSplit.id).all()

    def mark_paid(self, splits: List[ExpenseSplit]) -> None:
        """
        Flip ``is_paid`` on every given split and commit.

        All-or-nothing: if any row was changed concurrently (version mismatch)
        the whole batch is rolled back and ConflictError is raised.
        """
        if not splits:
            return
        try:
            for split in splits:
                split.is_paid = True
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning(f"Concurrent settlement detected on {len(splits)} split(s); rolled back")
            raise ConflictError("Split rows were settled concurrently, retry the settlement")

    def rollback(self) -> None:
        self.db.rollback()
