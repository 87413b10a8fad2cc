# finbud/state.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import List, Sequence, Tuple, Union

from finbud.core.analytics import Analytics, aggregate
from finbud.core.models import EXPENSE, INCOME, MANUAL, RECEIPT, Transaction

SERVER = "server"
LOCAL = "local"


@dataclass(frozen=True)
class AppState:
    transactions: Tuple[Transaction, ...] = ()
    analytics: Analytics = field(default_factory=Analytics)
    mode: str = LOCAL
    connection_error: str = ""
    showing_sample: bool = False


@dataclass(frozen=True)
class TransactionsLoaded:
    transactions: Tuple[Transaction, ...]
    mode: str
    analytics: Analytics | None = None
    sample: bool = False


@dataclass(frozen=True)
class TransactionAdded:
    transaction: Transaction


@dataclass(frozen=True)
class TransactionDeleted:
    transaction_id: str


@dataclass(frozen=True)
class ConnectionFailed:
    message: str


@dataclass(frozen=True)
class ModeSelected:
    mode: str


Action = Union[
    TransactionsLoaded,
    TransactionAdded,
    TransactionDeleted,
    ConnectionFailed,
    ModeSelected,
]


def reduce(state: AppState, action: Action) -> AppState:
    """Return the state that results from applying ``action``.

    Analytics are recomputed from scratch whenever the transaction list
    changes, except when the server supplied them with the load.
    """
    if isinstance(action, TransactionsLoaded):
        txs = tuple(action.transactions)
        return replace(
            state,
            transactions=txs,
            analytics=action.analytics or aggregate(txs),
            mode=action.mode,
            showing_sample=action.sample,
            connection_error="" if action.mode == SERVER else state.connection_error,
        )
    if isinstance(action, TransactionAdded):
        txs = state.transactions + (action.transaction,)
        return replace(state, transactions=txs, analytics=aggregate(txs), showing_sample=False)
    if isinstance(action, TransactionDeleted):
        txs = tuple(t for t in state.transactions if t.id != action.transaction_id)
        return replace(state, transactions=txs, analytics=aggregate(txs))
    if isinstance(action, ConnectionFailed):
        return replace(state, mode=LOCAL, connection_error=action.message)
    if isinstance(action, ModeSelected):
        return replace(state, mode=action.mode, connection_error="")
    raise TypeError(f"Unknown action: {action!r}")


def sort_for_display(transactions: Sequence[Transaction]) -> List[Transaction]:
    """Newest first, by creation timestamp."""
    return sorted(transactions, key=lambda t: t.createdAt, reverse=True)


def filter_transactions(
    transactions: Sequence[Transaction],
    search: str = "",
    tx_type: str = "all",
    category: str = "all",
) -> List[Transaction]:
    term = search.lower()
    matches = []
    for tx in transactions:
        if term and not (
            term in tx.description.lower()
            or term in tx.category.lower()
            or term in (tx.vendor or "").lower()
        ):
            continue
        if tx_type != "all" and tx.type != tx_type:
            continue
        if category != "all" and tx.category != category:
            continue
        matches.append(tx)
    return matches


def sample_transactions(today: date | None = None) -> List[Transaction]:
    """Demo data spread over the current and the previous month."""
    today = today or date.today()
    current = today.strftime("%Y-%m")
    previous = (today.replace(day=1) - timedelta(days=1)).strftime("%Y-%m")

    rows = [
        (INCOME, 3500.00, "salary", "Monthly Salary", current, "01", "09:00:00", MANUAL),
        (INCOME, 3200.00, "salary", "Previous Month Salary", previous, "01", "09:00:00", MANUAL),
        (EXPENSE, 85.50, "food", "Grocery Shopping", current, "15", "14:30:00", MANUAL),
        (EXPENSE, 45.00, "transport", "Gas Station", current, "20", "10:15:00", RECEIPT),
        (EXPENSE, 120.00, "utilities", "Electricity Bill", current, "10", "16:00:00", MANUAL),
        (EXPENSE, 75.30, "food", "Restaurant Dinner", current, "22", "19:30:00", MANUAL),
        (EXPENSE, 25.99, "entertainment", "Movie Tickets", current, "18", "20:00:00", RECEIPT),
        (EXPENSE, 95.00, "shopping", "Clothing Purchase", previous, "25", "15:20:00", MANUAL),
        (EXPENSE, 55.40, "healthcare", "Pharmacy", previous, "12", "11:45:00", MANUAL),
    ]
    return [
        Transaction(
            id=f"sample_{idx}",
            type=tx_type,
            amount=amount,
            category=category,
            description=description,
            date=f"{month}-{day}",
            createdAt=f"{month}-{day}T{clock}Z",
            source=source,
            vendor="" if source == RECEIPT else None,
        )
        for idx, (tx_type, amount, category, description, month, day, clock, source) in enumerate(rows, start=1)
    ]
