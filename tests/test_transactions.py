from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from defaults import DescriptionAllowList
from models import TransactionType, User
from schemas import TransactionIn
from services import NotFoundError, TransactionService, ValidationError


def make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def test_create_keeps_amount_sign_and_derives_type() -> None:
    with make_session() as session:
        service = TransactionService(session)
        lunch = service.create(
            TransactionIn(
                category="Food & Dining",
                amount=Decimal("-12.50"),
                date=date(2025, 1, 5),
            )
        )
        salary = service.create(
            TransactionIn(
                category="Salary",
                description="January",
                amount=Decimal("2500"),
                date=date(2025, 1, 31),
                user="sam",
            )
        )

        assert lunch.amount_cents == -1250
        assert lunch.type == TransactionType.expense
        assert lunch.description == ""
        assert lunch.user is None
        assert salary.amount == 2500.0
        assert salary.type == TransactionType.income
        assert salary.user == "sam"


@pytest.mark.parametrize(
    "payload",
    [
        TransactionIn(amount=Decimal("1"), date=date(2025, 1, 1)),
        TransactionIn(category="  ", amount=Decimal("1"), date=date(2025, 1, 1)),
        TransactionIn(category="Salary", amount=Decimal("1")),
        TransactionIn(category="Salary", date=date(2025, 1, 1)),
    ],
)
def test_create_requires_category_amount_and_date(payload: TransactionIn) -> None:
    with make_session() as session:
        service = TransactionService(session)
        with pytest.raises(ValidationError):
            service.create(payload)
        assert service.count() == 0


def test_create_checks_label_against_user_categories() -> None:
    with make_session() as session:
        user = User(username="Sam", email="sam@example.com", password_hash="x")
        session.add(user)
        session.commit()
        service = TransactionService(session)

        txn = service.create(
            TransactionIn(
                category="Healthcare",
                amount=Decimal("-40"),
                date=date(2025, 2, 1),
                user_id=user.id,
            )
        )
        assert txn.category == "Healthcare"

        with pytest.raises(ValidationError):
            service.create(
                TransactionIn(
                    category="Yachts",
                    amount=Decimal("-40"),
                    date=date(2025, 2, 1),
                    user_id=user.id,
                )
            )


def test_list_all_newest_first() -> None:
    with make_session() as session:
        service = TransactionService(session)
        for day in (3, 1, 2):
            service.create(
                TransactionIn(
                    category="Other", amount=Decimal("-1"), date=date(2025, 3, day)
                )
            )
        assert [t.date.day for t in service.list_all()] == [3, 2, 1]


def test_update_rejects_description_outside_allow_list() -> None:
    with make_session() as session:
        service = TransactionService(session)
        txn = service.create(
            TransactionIn(category="Other", amount=Decimal("-5"), date=date(2025, 1, 1))
        )

        with pytest.raises(ValidationError, match="Invalid expense description"):
            service.update(
                txn.id,
                TransactionIn(
                    category="expense",
                    description="Yacht fuel",
                    amount=Decimal("-5"),
                    date=date(2025, 1, 1),
                ),
            )
        assert service.get(txn.id).category == "Other"


def test_update_with_kind_applies_sign_convention() -> None:
    with make_session() as session:
        service = TransactionService(session)
        txn = service.create(
            TransactionIn(category="Other", amount=Decimal("-5"), date=date(2025, 1, 1))
        )

        updated = service.update(
            txn.id,
            TransactionIn(
                category="Income",
                description="Dividends",
                amount=Decimal("-30"),
                date=date(2025, 1, 2),
                user="sam",
            ),
        )

        assert updated.category == "income"
        assert updated.amount_cents == 3000
        assert updated.type == TransactionType.income
        assert updated.date == date(2025, 1, 2)
        assert updated.user == "sam"


def test_update_uses_injected_allow_list() -> None:
    with make_session() as session:
        allow_list = DescriptionAllowList(expense=("Snacks",), income=())
        service = TransactionService(session, allow_list)
        txn = service.create(
            TransactionIn(category="Other", amount=Decimal("-5"), date=date(2025, 1, 1))
        )

        updated = service.update(
            txn.id,
            TransactionIn(
                category="expense",
                description="Snacks",
                amount=Decimal("3"),
                date=date(2025, 1, 1),
            ),
        )
        assert updated.amount_cents == -300


def test_update_custom_label_is_a_full_field_update() -> None:
    with make_session() as session:
        service = TransactionService(session)
        txn = service.create(
            TransactionIn(
                category="Other",
                description="old",
                amount=Decimal("-5"),
                date=date(2025, 1, 1),
                user="sam",
            )
        )

        updated = service.update(
            txn.id,
            TransactionIn(category="Shopping", amount=Decimal("-8.25"), date=date(2025, 1, 3)),
        )
        assert updated.category == "Shopping"
        assert updated.description == ""
        assert updated.amount_cents == -825
        assert updated.user is None


def test_update_missing_transaction() -> None:
    with make_session() as session:
        with pytest.raises(NotFoundError):
            TransactionService(session).update(
                404,
                TransactionIn(category="Other", amount=Decimal("-1"), date=date(2025, 1, 1)),
            )


def test_delete_missing_transaction_leaves_count_unchanged() -> None:
    with make_session() as session:
        service = TransactionService(session)
        service.create(
            TransactionIn(category="Other", amount=Decimal("-1"), date=date(2025, 1, 1))
        )

        with pytest.raises(NotFoundError):
            service.delete(999)
        assert service.count() == 1


def test_delete_removes_row() -> None:
    with make_session() as session:
        service = TransactionService(session)
        txn = service.create(
            TransactionIn(category="Other", amount=Decimal("-1"), date=date(2025, 1, 1))
        )

        service.delete(txn.id)
        assert service.count() == 0
        with pytest.raises(NotFoundError):
            service.get(txn.id)


def test_create_rejects_amount_beyond_column_range() -> None:
    with make_session() as session:
        service = TransactionService(session)
        with pytest.raises(ValidationError, match="out of range"):
            service.create(
                TransactionIn(
                    category="Other", amount=Decimal("1e20"), date=date(2025, 1, 1)
                )
            )
        assert service.count() == 0


def test_create_with_kind_label_signs_amount() -> None:
    with make_session() as session:
        service = TransactionService(session)
        txn = service.create(
            TransactionIn(
                category="Expense",
                description="Utilities",
                amount=Decimal("25"),
                date=date(2025, 1, 1),
            )
        )
        assert txn.category == "expense"
        assert txn.amount_cents == -2500
        assert txn.type == TransactionType.expense
