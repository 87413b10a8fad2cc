# finbud/core/models.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Dict, List

INCOME = "income"
EXPENSE = "expense"
TRANSACTION_TYPES = (INCOME, EXPENSE)

MANUAL = "manual"
RECEIPT = "receipt"

INCOME_CATEGORIES: List[str] = [
    "salary",
    "freelance",
    "business",
    "investment",
    "gift",
    "other",
]

EXPENSE_CATEGORIES: List[str] = [
    "food",
    "transport",
    "shopping",
    "utilities",
    "healthcare",
    "entertainment",
    "education",
    "other",
]

CATEGORIES: Dict[str, List[str]] = {
    INCOME: INCOME_CATEGORIES,
    EXPENSE: EXPENSE_CATEGORIES,
}


def normalize_category(tx_type: str, category: object) -> str:
    """Map a free-form category onto the enumeration for ``tx_type``.

    Unknown, empty or non-string values collapse to ``other``.
    """
    if not isinstance(category, str):
        return "other"
    name = category.strip().lower()
    if name in CATEGORIES.get(tx_type, ()):
        return name
    return "other"


def today_iso() -> str:
    return date.today().isoformat()


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class Transaction:
    id: str
    type: str
    amount: float
    category: str
    description: str = ""
    date: str = ""
    createdAt: str = ""
    source: str = MANUAL
    vendor: str | None = None

    @property
    def month(self) -> str:
        return self.date[:7]

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {
            "id": self.id,
            "type": self.type,
            "amount": self.amount,
            "category": self.category,
            "description": self.description,
            "date": self.date,
            "createdAt": self.createdAt,
            "source": self.source,
        }
        if self.source == RECEIPT or self.vendor:
            data["vendor"] = self.vendor or ""
        return data

    def record(self) -> Dict[str, object]:
        """Return the stored value: the wire form without the id."""
        data = self.to_dict()
        data.pop("id")
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "Transaction":
        return cls(
            id=str(data.get("id", "")),
            type=str(data.get("type", "")),
            amount=float(data.get("amount") or 0.0),
            category=str(data.get("category") or "other"),
            description=str(data.get("description") or ""),
            date=str(data.get("date") or ""),
            createdAt=str(data.get("createdAt") or ""),
            source=str(data.get("source") or MANUAL),
            vendor=data.get("vendor"),  # type: ignore[arg-type]
        )
