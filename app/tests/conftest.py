"""
Pytest configuration and fixtures for settle_service tests.
"""
import pytest
from decimal import Decimal
from typing import Dict, List
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.database import Base
from app.models.expenses import Expense, SplitType
from app.models.groups import Group, GroupMember
from app.repositories.split_repository import SplitRepository
from app.schemas.split_schema import SplitCreate, SplitParticipant
from app.services.split_service import create_expense_splits


def make_engine():
    """Fresh in-memory SQLite engine shared across sessions of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def engine():
    engine = make_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def repo(db_session):
    return SplitRepository(db_session)


def add_group(db, member_ids: List[str], admin_ids=(), name: str = "Trip") -> Group:
    group = Group(name=name)
    db.add(group)
    db.flush()
    for user_id in member_ids:
        db.add(GroupMember(group_id=group.id, user_id=user_id, is_admin=user_id in admin_ids))
    db.commit()
    return group


def add_expense(db, paid_by: str, amount, group_id: str = None, title: str = "Expense") -> Expense:
    expense = Expense(paid_by=paid_by, amount=Decimal(str(amount)), group_id=group_id, title=title)
    db.add(expense)
    db.commit()
    return expense


def split_equally(repo: SplitRepository, expense: Expense, user_ids: List[str]):
    return create_expense_splits(
        repo,
        expense.id,
        SplitCreate(
            split_type=SplitType.EQUAL,
            participants=[SplitParticipant(user_id=user_id) for user_id in user_ids],
        ),
    )


@pytest.fixture
def make_group(db_session):
    def _make(member_ids, admin_ids=(), name="Trip"):
        return add_group(db_session, member_ids, admin_ids, name)
    return _make


@pytest.fixture
def make_expense(db_session):
    def _make(paid_by, amount, group_id=None, title="Expense"):
        return add_expense(db_session, paid_by, amount, group_id, title)
    return _make


@pytest.fixture
def sample_balances():
    """Sample balances for testing."""
    return {
        "A": Decimal("66.67"),
        "B": Decimal("-10.00"),
        "C": Decimal("-43.34"),
        "D": Decimal("-13.33")
    }


def verify_settlements_settle_debts(balances: Dict[str, Decimal], settlements: List[Dict]) -> None:
    """
    Helper to verify settlements settle all debts exactly.

    - A payer's balance rises by what they pay
    - A receiver's balance falls by what they receive
    - Every final balance must be exactly zero
    """
    final = dict(balances)

    for settlement in settlements:
        final[settlement["from"]] = final.get(settlement["from"], Decimal("0")) + settlement["amount"]
        final[settlement["to"]] = final.get(settlement["to"], Decimal("0")) - settlement["amount"]

    for user, balance in final.items():
        assert balance == 0, \
            f"User {user} not settled: initial={balances.get(user)}, final={balance}"
