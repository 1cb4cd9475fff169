import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from database import Base
from models import TransactionType, User, UserCategory
from schemas import LoginIn, RegisterIn
from services import (
    INVALID_CREDENTIALS,
    AuthError,
    AuthService,
    ConflictError,
    NotFoundError,
    ValidationError,
)


def make_engine():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return engine


def user_count(session: Session) -> int:
    return session.execute(select(func.count(User.id))).scalar_one()


def test_same_username_with_distinct_emails_registers_twice() -> None:
    with Session(make_engine()) as session:
        auth = AuthService(session)
        first = auth.register(
            RegisterIn(username="John Doe", email="john@gmail.com", password="pw1")
        )
        second = auth.register(
            RegisterIn(username="John Doe", email="john@yahoo.com", password="pw2")
        )

        assert first.id != second.id
        assert user_count(session) == 2


def test_duplicate_email_is_rejected_without_new_row() -> None:
    with Session(make_engine()) as session:
        auth = AuthService(session)
        auth.register(RegisterIn(username="Jane", email="jane@mail.com", password="x"))

        with pytest.raises(ConflictError):
            auth.register(
                RegisterIn(username="Other", email="jane@mail.com", password="y")
            )
        assert user_count(session) == 1


@pytest.mark.parametrize(
    "payload",
    [
        RegisterIn(username="", email="a@b.com", password="pw"),
        RegisterIn(username="A", email="  ", password="pw"),
        RegisterIn(username="A", email="a@b.com", password=None),
        RegisterIn(),
    ],
)
def test_register_requires_every_field(payload: RegisterIn) -> None:
    with Session(make_engine()) as session:
        with pytest.raises(ValidationError):
            AuthService(session).register(payload)
        assert user_count(session) == 0


def test_password_is_stored_hashed() -> None:
    with Session(make_engine()) as session:
        user = AuthService(session).register(
            RegisterIn(username="A", email="a@b.com", password="secret")
        )
        assert user.password_hash != "secret"
        assert user.password_hash.startswith("$2")


def test_registration_seeds_default_categories() -> None:
    with Session(make_engine()) as session:
        user = AuthService(session).register(
            RegisterIn(username="A", email="a@b.com", password="secret")
        )
        categories = session.scalars(
            select(UserCategory).where(UserCategory.user_id == user.id)
        ).all()
        income = [c for c in categories if c.type == TransactionType.income]
        expense = [c for c in categories if c.type == TransactionType.expense]
        assert len(income) == 4
        assert len(expense) == 8


def test_login_with_correct_credentials() -> None:
    with Session(make_engine()) as session:
        auth = AuthService(session)
        created = auth.register(
            RegisterIn(username="A", email="a@b.com", password="secret")
        )
        user = auth.login(LoginIn(email="a@b.com", password="secret"))
        assert user.id == created.id


def test_login_failures_are_indistinguishable() -> None:
    with Session(make_engine()) as session:
        auth = AuthService(session)
        auth.register(RegisterIn(username="A", email="a@b.com", password="secret"))

        with pytest.raises(AuthError) as wrong_password:
            auth.login(LoginIn(email="a@b.com", password="nope"))
        with pytest.raises(AuthError) as unknown_email:
            auth.login(LoginIn(email="ghost@b.com", password="secret"))

        assert type(wrong_password.value) is type(unknown_email.value)
        assert str(wrong_password.value) == str(unknown_email.value)
        assert str(unknown_email.value) == INVALID_CREDENTIALS


def test_login_requires_email_and_password() -> None:
    with Session(make_engine()) as session:
        with pytest.raises(ValidationError):
            AuthService(session).login(LoginIn(email="a@b.com"))


def test_get_user_unknown_raises_not_found() -> None:
    with Session(make_engine()) as session:
        with pytest.raises(NotFoundError):
            AuthService(session).get_user(42)
