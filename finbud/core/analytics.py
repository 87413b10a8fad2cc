# finbud/core/analytics.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Union

from finbud.core.models import EXPENSE, INCOME, Transaction

TransactionLike = Union[Transaction, Mapping[str, object]]


@dataclass
class MonthTotals:
    month: str
    income: float = 0.0
    expense: float = 0.0

    def to_dict(self) -> Dict[str, object]:
        return {"month": self.month, "income": self.income, "expense": self.expense}


@dataclass
class Analytics:
    totalIncome: float = 0.0
    totalExpense: float = 0.0
    balance: float = 0.0
    expensesByCategory: Dict[str, float] = field(default_factory=dict)
    monthlyData: List[MonthTotals] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "totalIncome": self.totalIncome,
            "totalExpense": self.totalExpense,
            "balance": self.balance,
            "expensesByCategory": dict(self.expensesByCategory),
            "monthlyData": [m.to_dict() for m in self.monthlyData],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "Analytics":
        months = data.get("monthlyData") or []
        return cls(
            totalIncome=float(data.get("totalIncome") or 0.0),
            totalExpense=float(data.get("totalExpense") or 0.0),
            balance=float(data.get("balance") or 0.0),
            expensesByCategory={
                str(k): float(v)
                for k, v in dict(data.get("expensesByCategory") or {}).items()
            },
            monthlyData=[
                MonthTotals(
                    month=str(m["month"]),
                    income=float(m.get("income") or 0.0),
                    expense=float(m.get("expense") or 0.0),
                )
                for m in months  # type: ignore[union-attr]
            ],
        )


def _fields(tx: TransactionLike) -> tuple[str, float, str, str]:
    if isinstance(tx, Transaction):
        return tx.type, float(tx.amount), tx.category, tx.date
    return (
        str(tx.get("type", "")),
        float(tx.get("amount") or 0.0),  # type: ignore[arg-type]
        str(tx.get("category", "")),
        str(tx.get("date", "")),
    )


def aggregate(transactions: Iterable[TransactionLike]) -> Analytics:
    """Summarise a transaction set in a single pass.

    Income and expense totals, the balance, expense totals per category
    and income/expense per ``YYYY-MM`` month (ascending). Transactions
    with any other ``type`` are ignored. Categories and months absent
    from the input never appear in the output.
    """
    total_income = 0.0
    total_expense = 0.0
    by_category: Dict[str, float] = {}
    months: Dict[str, MonthTotals] = {}

    for tx in transactions:
        tx_type, amount, category, tx_date = _fields(tx)
        if tx_type not in (INCOME, EXPENSE):
            continue

        bucket = months.get(tx_date[:7])
        if bucket is None:
            bucket = months[tx_date[:7]] = MonthTotals(month=tx_date[:7])

        if tx_type == INCOME:
            total_income += amount
            bucket.income += amount
        else:
            total_expense += amount
            bucket.expense += amount
            by_category[category] = by_category.get(category, 0.0) + amount

    return Analytics(
        totalIncome=total_income,
        totalExpense=total_expense,
        balance=total_income - total_expense,
        expensesByCategory=by_category,
        monthlyData=[months[key] for key in sorted(months)],
    )
