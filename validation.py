"""
Expense payload validation.

``validate_expense_payload`` takes the raw JSON object sent by a client and
returns either a ``ValidatedExpense`` ready to be written or a
``ValidationErrors`` carrying the message for the first field that failed.
Fields are checked in a fixed order: title, amount, category, date. The same
function backs both create and update.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import date as date_type, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

TITLE_MAX_LENGTH = 100
CATEGORY_MAX_LENGTH = 40

# Advisory only: shown by the client, never enforced on write
SUGGESTED_CATEGORIES = [
    "Food",
    "Travel",
    "Shopping",
    "Entertainment",
    "Health",
    "Bills",
    "Education",
    "Other",
]

TITLE_REQUIRED = "Title is required"
TITLE_TOO_LONG = f"Title cannot exceed {TITLE_MAX_LENGTH} characters"
AMOUNT_INVALID = "Amount must be greater than 0"
CATEGORY_INVALID = "Category is invalid"
CATEGORY_TOO_LONG = f"Category cannot exceed {CATEGORY_MAX_LENGTH} characters"
DATE_INVALID = "Date is invalid"

# Plain decimal or exponent notation; no underscores, hex or "inf"
_DECIMAL_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")

_datetime_adapter = TypeAdapter(datetime)


@dataclass(frozen=True)
class ValidatedExpense:
    title: str
    amount: float
    category: str
    date: datetime

    def as_values(self) -> Dict[str, Any]:
        return {"title": self.title, "amount": self.amount, "category": self.category, "date": self.date}


@dataclass(frozen=True)
class ValidationErrors:
    errors: List[str] = field(default_factory=list)


ValidationResult = Union[ValidatedExpense, ValidationErrors]


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def parse_amount(value: Any) -> Optional[float]:
    """Return the amount as a finite positive float, or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not _DECIMAL_RE.match(value):
            return None
    elif not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except (ValueError, OverflowError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return number


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_date(value: Any, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Parse an expense date; any falsy value means "now".

    Accepts datetimes, dates, ISO-8601 strings and epoch numbers (seconds or
    milliseconds, as pydantic reads them). Aware values come back as naive UTC.
    """
    if not value:
        return now or datetime.now(timezone.utc).replace(tzinfo=None)
    if isinstance(value, bool) or (isinstance(value, float) and not math.isfinite(value)):
        return None
    if isinstance(value, date_type) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        value = value.strip()
    try:
        return _to_naive_utc(_datetime_adapter.validate_python(value))
    except (PydanticValidationError, ValueError, OverflowError):
        return None


def validate_expense_payload(payload: Mapping[str, Any], now: Optional[datetime] = None) -> ValidationResult:
    title = _text(payload.get("title"))
    if not title:
        return ValidationErrors([TITLE_REQUIRED])
    if len(title) > TITLE_MAX_LENGTH:
        return ValidationErrors([TITLE_TOO_LONG])

    amount = parse_amount(payload.get("amount"))
    if amount is None:
        return ValidationErrors([AMOUNT_INVALID])

    category = _text(payload.get("category"))
    if not category:
        return ValidationErrors([CATEGORY_INVALID])
    if len(category) > CATEGORY_MAX_LENGTH:
        return ValidationErrors([CATEGORY_TOO_LONG])

    parsed_date = parse_date(payload.get("date"), now=now)
    if parsed_date is None:
        return ValidationErrors([DATE_INVALID])

    return ValidatedExpense(title=title, amount=amount, category=category, date=parsed_date)
