import csv
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from io import StringIO
from typing import Optional, Sequence

from models import Transaction, TransactionType
from schemas import CSVRow

CSV_COLUMNS = ["category", "description", "amount", "date", "user"]

_DATE_FORMATS = ("%Y-%m-%d", "%d.%m.%Y", "%m/%d/%Y", "%Y/%m/%d")

# amount_cents is a signed 64-bit column
MAX_AMOUNT_CENTS = 2**63 - 1
_MAX_AMOUNT = Decimal(MAX_AMOUNT_CENTS).scaleb(-2)


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^\.",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def parse_date(value: str) -> date:
    value = value.strip()
    # ISO datetimes ("2025-01-31T10:00:00Z") keep only their calendar part
    if "T" in value:
        value = value.split("T", 1)[0]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Invalid date '{value}'")


def parse_amount(value: str, *, allow_negative: bool = False) -> int:
    clean = value.strip().replace("€", "").replace("$", "").replace(" ", "")
    clean = clean.replace(",", ".")
    if clean.count(".") > 1:
        parts = clean.split(".")
        clean = "".join(parts[:-1]) + "." + parts[-1]
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    if amount.copy_abs() > _MAX_AMOUNT:
        raise ValueError("Amount out of range")
    cents = int((amount * 100).quantize(Decimal("1")))
    if cents < 0 and not allow_negative:
        raise ValueError("Amount must be positive")
    return cents


def signed_for_type(amount_cents: int, txn_type: TransactionType) -> int:
    if txn_type == TransactionType.expense:
        return -abs(amount_cents)
    return abs(amount_cents)


def _normalized(raw: dict[Optional[str], Optional[str]]) -> dict[str, str]:
    return {
        key.strip().lower(): (value or "")
        for key, value in raw.items()
        if isinstance(key, str) and isinstance(value, str)
    }


def parse_csv(content: str, *, today: date) -> tuple[list[CSVRow], list[str]]:
    """
    Parse ``category,description,amount,date,user`` rows.

    ``category`` holds the transaction kind (``expense``/``income``). Amounts are signed
    by kind and blank dates fall back to ``today``. Rows that cannot be parsed are
    reported in the error list instead of raising.
    """
    reader = csv.DictReader(StringIO(content))
    rows: list[CSVRow] = []
    errors: list[str] = []
    for idx, raw in enumerate(reader, start=1):
        try:
            fields = _normalized(raw)
            type_raw = fields.get("category", "").strip().lower()
            type_value = TransactionType(type_raw)
            amount_value = signed_for_type(
                parse_amount(fields.get("amount", ""), allow_negative=True),
                type_value,
            )
            date_raw = fields.get("date", "").strip()
            date_value = parse_date(date_raw) if date_raw else today
            user_raw = fields.get("user", "").strip()
            rows.append(
                CSVRow(
                    type=type_value,
                    description=fields.get("description", "").strip(),
                    amount_cents=amount_value,
                    date=date_value,
                    user=user_raw or None,
                )
            )
        except ValueError as exc:
            errors.append(f"Row {idx}: {exc}")
    return rows, errors


def export_transactions(transactions: Sequence[Transaction]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_COLUMNS)
    for txn in transactions:
        writer.writerow(
            [
                sanitize_csv_value(txn.category),
                sanitize_csv_value(txn.description or ""),
                f"{txn.amount_cents / 100:.2f}",
                txn.date.isoformat(),
                sanitize_csv_value(txn.user or ""),
            ]
        )
    return output.getvalue()
