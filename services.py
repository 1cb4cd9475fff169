from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from functools import lru_cache
from typing import Iterator, Optional
from zoneinfo import ZoneInfo

from passlib.hash import bcrypt
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from colors import category_color
from config import get_settings
from csv_utils import export_transactions, parse_amount, parse_csv, signed_for_type
from defaults import (
    DEFAULT_DESCRIPTIONS,
    DEFAULT_USER_CATEGORIES,
    CategoryDefaults,
    DescriptionAllowList,
)
from models import Transaction, TransactionType, User, UserCategory, type_for_amount
from schemas import CategoryIn, CSVRow, LoginIn, RegisterIn, TransactionIn

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"


class ValidationError(ValueError):
    pass


class ConflictError(ValueError):
    pass


class AuthError(ValueError):
    pass


class NotFoundError(ValueError):
    pass


class StoreError(RuntimeError):
    pass


@contextmanager
def store_errors(session: Session, action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception(f"store_failure: action={action}")
        raise StoreError("Database error") from exc


def local_today() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


@lru_cache(maxsize=1)
def _unknown_user_hash() -> str:
    return bcrypt.hash("unknown-user-placeholder")


def kind_from_label(label: str) -> Optional[TransactionType]:
    try:
        return TransactionType(label.strip().lower())
    except ValueError:
        return None


@dataclass
class CategoryGroups:
    income: list[UserCategory] = field(default_factory=list)
    expense: list[UserCategory] = field(default_factory=list)

    @classmethod
    def from_categories(cls, categories: list[UserCategory]) -> "CategoryGroups":
        groups = cls()
        for category in categories:
            if category.type == TransactionType.income:
                groups.income.append(category)
            else:
                groups.expense.append(category)
        return groups

    def names(self) -> set[str]:
        return {category.name for category in self.income + self.expense}


class AuthService:
    def __init__(
        self, session: Session, category_defaults: Optional[CategoryDefaults] = None
    ) -> None:
        self.session = session
        self.category_defaults = category_defaults or DEFAULT_USER_CATEGORIES

    def register(self, data: RegisterIn) -> User:
        username = (data.username or "").strip()
        email = (data.email or "").strip()
        password = data.password or ""
        if not username or not email or not password:
            raise ValidationError("All fields are required")

        with store_errors(self.session, "register"):
            existing = self.session.scalar(select(User.id).where(User.email == email))
            if existing is not None:
                raise ConflictError("Email already exists")

            user = User(
                username=username, email=email, password_hash=bcrypt.hash(password)
            )
            self.session.add(user)
            try:
                self.session.commit()
            except IntegrityError as exc:
                self.session.rollback()
                raise ConflictError("Email already exists") from exc
            self.session.refresh(user)

        logger.info(f"user_registered: user_id={user.id}")
        CategoryService(self.session, user.id, self.category_defaults).seed_defaults()
        return user

    def login(self, data: LoginIn) -> User:
        email = (data.email or "").strip()
        password = data.password or ""
        if not email or not password:
            raise ValidationError("Email and password are required")

        with store_errors(self.session, "login"):
            user = self.session.scalar(select(User).where(User.email == email))

        if user is None:
            bcrypt.verify(password, _unknown_user_hash())
            logger.info("login_failed")
            raise AuthError(INVALID_CREDENTIALS)
        if not bcrypt.verify(password, user.password_hash):
            logger.info("login_failed")
            raise AuthError(INVALID_CREDENTIALS)
        logger.info(f"login_succeeded: user_id={user.id}")
        return user

    def get_user(self, user_id: int) -> User:
        with store_errors(self.session, "get_user"):
            user = self.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user


class CategoryService:
    def __init__(
        self,
        session: Session,
        user_id: int,
        defaults: Optional[CategoryDefaults] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.defaults = defaults or DEFAULT_USER_CATEGORIES

    def _require_user(self) -> None:
        if self.session.get(User, self.user_id) is None:
            raise NotFoundError("User not found")

    def list_all(self) -> list[UserCategory]:
        stmt = (
            select(UserCategory)
            .where(UserCategory.user_id == self.user_id)
            .order_by(UserCategory.id)
        )
        return list(self.session.scalars(stmt).all())

    def has_any(self) -> bool:
        stmt = select(func.count(UserCategory.id)).where(
            UserCategory.user_id == self.user_id
        )
        return (self.session.execute(stmt).scalar_one() or 0) > 0

    def get_categories(self) -> CategoryGroups:
        """Saved categories for the user, seeding the defaults first if there are none."""
        with store_errors(self.session, "get_categories"):
            self._require_user()
            categories = self.list_all()
        if not categories:
            self.seed_defaults()
            with store_errors(self.session, "get_categories"):
                categories = self.list_all()
        return CategoryGroups.from_categories(categories)

    def seed_defaults(self) -> CategoryGroups:
        """
        Insert the default category set for a user without categories.

        A user that already has categories is left untouched and ``ConflictError`` is
        raised, so callers have to check first.
        """
        with store_errors(self.session, "seed_defaults"):
            self._require_user()
            if self.has_any():
                raise ConflictError("User already has categories")
            categories = [
                UserCategory(
                    user_id=self.user_id,
                    name=name,
                    color=category_color(name),
                    type=txn_type,
                )
                for txn_type, name in self.defaults.entries()
            ]
            self.session.add_all(categories)
            self.session.commit()
        logger.info(
            f"categories_seeded: user_id={self.user_id} count={len(categories)}"
        )
        return CategoryGroups.from_categories(categories)

    def replace_all(self, entries: list[CategoryIn]) -> CategoryGroups:
        cleaned: list[tuple[str, str, TransactionType]] = []
        for idx, entry in enumerate(entries, start=1):
            name = (entry.name or "").strip()
            if not name:
                raise ValidationError(f"Category {idx} is missing a name")
            if entry.type is None:
                raise ValidationError(f"Category '{name}' is missing a type")
            color = (entry.color or "").strip() or category_color(name)
            cleaned.append((name, color, entry.type))

        with store_errors(self.session, "replace_categories"):
            self._require_user()
            # delete and insert share one transaction
            self.session.execute(
                delete(UserCategory).where(UserCategory.user_id == self.user_id)
            )
            categories = [
                UserCategory(user_id=self.user_id, name=name, color=color, type=kind)
                for name, color, kind in cleaned
            ]
            self.session.add_all(categories)
            self.session.commit()
        logger.info(
            f"categories_replaced: user_id={self.user_id} count={len(categories)}"
        )
        return CategoryGroups.from_categories(categories)


class TransactionService:
    def __init__(
        self,
        session: Session,
        allow_list: Optional[DescriptionAllowList] = None,
        category_defaults: Optional[CategoryDefaults] = None,
    ) -> None:
        self.session = session
        self.allow_list = allow_list or DEFAULT_DESCRIPTIONS
        self.category_defaults = category_defaults or DEFAULT_USER_CATEGORIES

    def list_all(self) -> list[Transaction]:
        stmt = select(Transaction).order_by(Transaction.date.desc(), Transaction.id.desc())
        with store_errors(self.session, "list_transactions"):
            return list(self.session.scalars(stmt).all())

    def count(self) -> int:
        with store_errors(self.session, "count_transactions"):
            return int(
                self.session.execute(select(func.count(Transaction.id))).scalar_one()
                or 0
            )

    def get(self, transaction_id: int) -> Transaction:
        with store_errors(self.session, "get_transaction"):
            txn = self.session.get(Transaction, transaction_id)
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    @staticmethod
    def _required_fields(data: TransactionIn) -> tuple[str, date, int]:
        category = (data.category or "").strip()
        if not category:
            raise ValidationError("Category is required")
        if data.date is None:
            raise ValidationError("Date is required")
        if data.amount is None:
            raise ValidationError("Amount is required")
        try:
            amount_cents = parse_amount(str(data.amount), allow_negative=True)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        return category, data.date, amount_cents

    def _check_known_label(self, user_id: int, label: str) -> None:
        if kind_from_label(label) is not None:
            return
        groups = CategoryService(
            self.session, user_id, self.category_defaults
        ).get_categories()
        if label not in groups.names():
            raise ValidationError(f"Unknown category '{label}'")

    def create(self, data: TransactionIn) -> Transaction:
        """
        Store a transaction with its amount as supplied.

        The caller applies the sign convention (negative for expenses); the stored
        type is derived from that sign. A bare kind label (``expense``/``income``)
        signs the amount by that kind instead.
        """
        category, txn_date, amount_cents = self._required_fields(data)
        if data.user_id is not None:
            self._check_known_label(data.user_id, category)
        kind = kind_from_label(category)
        if kind is not None:
            category = kind.value
            amount_cents = signed_for_type(amount_cents, kind)

        txn = Transaction(
            category=category,
            description=data.description or "",
            amount_cents=amount_cents,
            type=type_for_amount(amount_cents),
            date=txn_date,
            user=data.user or None,
        )
        with store_errors(self.session, "create_transaction"):
            self.session.add(txn)
            self.session.commit()
            self.session.refresh(txn)
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        category, txn_date, amount_cents = self._required_fields(data)
        description = (data.description or "").strip()

        kind = kind_from_label(category)
        if kind is not None:
            if not self.allow_list.allows(kind, description):
                raise ValidationError(f"Invalid {kind.value} description")
            category = kind.value
            amount_cents = signed_for_type(amount_cents, kind)

        txn = self.get(transaction_id)
        with store_errors(self.session, "update_transaction"):
            txn.category = category
            txn.description = description
            txn.amount_cents = amount_cents
            txn.type = type_for_amount(amount_cents)
            txn.date = txn_date
            txn.user = data.user or None
            self.session.commit()
            self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        with store_errors(self.session, "delete_transaction"):
            result = self.session.execute(
                delete(Transaction).where(Transaction.id == transaction_id)
            )
            if result.rowcount == 0:
                self.session.rollback()
                raise NotFoundError("Transaction not found")
            self.session.commit()

    def bulk_insert(self, rows: list[CSVRow]) -> int:
        transactions = [
            Transaction(
                category=row.type.value,
                description=row.description,
                amount_cents=row.amount_cents,
                type=type_for_amount(row.amount_cents),
                date=row.date,
                user=row.user,
            )
            for row in rows
        ]
        with store_errors(self.session, "bulk_insert"):
            self.session.add_all(transactions)
            self.session.commit()
        return len(transactions)


class CSVService:
    def __init__(
        self, session: Session, allow_list: Optional[DescriptionAllowList] = None
    ) -> None:
        self.session = session
        self.allow_list = allow_list or DEFAULT_DESCRIPTIONS

    def import_csv(self, content: str) -> int:
        rows, errors = parse_csv(content, today=local_today())
        for error in errors:
            logger.debug(f"csv_import_row_skipped: {error}")

        accepted = [
            row for row in rows if self.allow_list.allows(row.type, row.description)
        ]
        count = TransactionService(self.session, self.allow_list).bulk_insert(accepted)
        skipped = len(errors) + len(rows) - len(accepted)
        logger.info(f"csv_import: inserted={count} skipped={skipped}")
        return count

    def export_csv(self) -> str:
        transactions = TransactionService(self.session, self.allow_list).list_all()
        logger.info(f"csv_export: rows={len(transactions)}")
        return export_transactions(transactions)
