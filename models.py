from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


def type_for_amount(amount_cents: int) -> TransactionType:
    if amount_cents < 0:
        return TransactionType.expense
    return TransactionType.income


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    categories: Mapped[list["UserCategory"]] = relationship(
        "UserCategory", back_populates="user"
    )


class UserCategory(Base, TimestampMixin):
    __tablename__ = "user_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(32), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )

    user: Mapped["User"] = relationship("User", back_populates="categories")

    __table_args__ = (Index("ix_user_categories_user_type", "user_id", "type"),)


class Transaction(Base, TimestampMixin):
    __tablename__ = "tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    date: Mapped[date] = mapped_column(Date, nullable=False)
    user: Mapped[Optional[str]] = mapped_column(String(100))

    __table_args__ = (
        Index("ix_tasks_date", "date"),
        CheckConstraint(
            "(type = 'expense' AND amount_cents < 0)"
            " OR (type = 'income' AND amount_cents >= 0)",
            name="ck_tasks_amount_sign_matches_type",
        ),
    )

    @property
    def amount(self) -> float:
        return self.amount_cents / 100
