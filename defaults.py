from dataclasses import dataclass

from models import TransactionType


@dataclass(frozen=True)
class DescriptionAllowList:
    """System-wide descriptions accepted for kind-labelled transactions (CSV rows, updates)."""

    expense: tuple[str, ...]
    income: tuple[str, ...]

    def for_type(self, txn_type: TransactionType) -> tuple[str, ...]:
        if txn_type == TransactionType.expense:
            return self.expense
        return self.income

    def allows(self, txn_type: TransactionType, description: str) -> bool:
        return description in self.for_type(txn_type)


@dataclass(frozen=True)
class CategoryDefaults:
    """Category names seeded for a user who has none."""

    income: tuple[str, ...]
    expense: tuple[str, ...]

    def entries(self) -> list[tuple[TransactionType, str]]:
        return [(TransactionType.income, name) for name in self.income] + [
            (TransactionType.expense, name) for name in self.expense
        ]


DEFAULT_DESCRIPTIONS = DescriptionAllowList(
    expense=(
        "Rent / Mortgage",
        "Groceries / Food",
        "Utilities",
        "Internet & Phone",
        "Transportation",
        "Insurance",
        "Subscriptions",
        "Personal Care",
        "Savings / Investments",
        "Entertainment / Leisure",
    ),
    income=(
        "Salary / Wages",
        "Freelance / Contract Work",
        "Business Income",
        "Investment Returns",
        "Rental Income",
        "Dividends",
        "Government Benefits",
        "Scholarships / Grants",
        "Pensions",
        "Side Hustles / Gigs",
    ),
)

DEFAULT_USER_CATEGORIES = CategoryDefaults(
    income=("Salary", "Freelance", "Investment", "Business Income"),
    expense=(
        "Food & Dining",
        "Transportation",
        "Healthcare",
        "Shopping",
        "Entertainment",
        "Rent / Mortgage",
        "Utilities",
        "Other",
    ),
)


def get_description_allow_list() -> DescriptionAllowList:
    return DEFAULT_DESCRIPTIONS


def get_category_defaults() -> CategoryDefaults:
    return DEFAULT_USER_CATEGORIES
