from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Sequence

from models import Transaction, TransactionType, type_for_amount

_SORT_KEYS = {
    "date": lambda txn: txn.date,
    "category": lambda txn: (txn.category.casefold(), txn.category),
    "amount": lambda txn: abs(txn.amount_cents),
}
SORT_ORDERS = ("asc", "desc")
KIND_FILTERS = ("all", "income", "expense")


@dataclass(frozen=True)
class Totals:
    income_cents: int
    expense_cents: int

    @property
    def balance_cents(self) -> int:
        return self.income_cents - self.expense_cents


@dataclass(frozen=True)
class MonthTotal:
    month: str
    total_cents: int


def totals(transactions: Iterable[Transaction]) -> Totals:
    income = 0
    expenses = 0
    for txn in transactions:
        if txn.amount_cents > 0:
            income += txn.amount_cents
        elif txn.amount_cents < 0:
            expenses += -txn.amount_cents
    return Totals(income_cents=income, expense_cents=expenses)


def by_category(transactions: Iterable[Transaction]) -> dict[str, int]:
    """Absolute expense amount per category label, in order of first appearance."""
    sums: dict[str, int] = {}
    for txn in transactions:
        if txn.amount_cents >= 0:
            continue
        sums[txn.category] = sums.get(txn.category, 0) + abs(txn.amount_cents)
    return sums


def month_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def by_month(transactions: Iterable[Transaction]) -> list[MonthTotal]:
    # income and expense share one series of absolute amounts
    sums: dict[str, int] = {}
    for txn in transactions:
        key = month_key(txn.date)
        sums[key] = sums.get(key, 0) + abs(txn.amount_cents)
    return [MonthTotal(month=key, total_cents=sums[key]) for key in sorted(sums)]


def sort_transactions(
    transactions: Sequence[Transaction], key: str = "date", order: str = "desc"
) -> list[Transaction]:
    """
    Return a new ordered list; the input is left untouched.

    ``desc`` (the default) puts the newest date and the largest absolute amount first,
    while category labels read A to Z; ``asc`` flips each of them. Ties keep their
    incoming order.
    """
    if key not in _SORT_KEYS:
        raise ValueError(f"Unsupported sort key '{key}'")
    if order not in SORT_ORDERS:
        raise ValueError(f"Unsupported sort order '{order}'")

    reverse = order == "desc"
    if key == "category":
        reverse = not reverse
    return sorted(transactions, key=_SORT_KEYS[key], reverse=reverse)


def matches_kind(txn: Transaction, kind: str) -> bool:
    if kind == "all":
        return True
    return type_for_amount(txn.amount_cents) == TransactionType(kind)


def filter_transactions(
    transactions: Iterable[Transaction],
    search: Optional[str] = None,
    category: Optional[str] = "all",
    kind: Optional[str] = "all",
) -> list[Transaction]:
    needle = (search or "").strip().lower()
    category = category or "all"
    kind = kind or "all"
    if kind not in KIND_FILTERS:
        raise ValueError(f"Unsupported type filter '{kind}'")

    result: list[Transaction] = []
    for txn in transactions:
        if needle and not (
            needle in (txn.description or "").lower()
            or needle in txn.category.lower()
        ):
            continue
        if category != "all" and txn.category != category:
            continue
        if not matches_kind(txn, kind):
            continue
        result.append(txn)
    return result
