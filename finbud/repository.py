# finbud/repository.py
from __future__ import annotations

import logging
import math
import uuid
from datetime import date as date_cls
from typing import List

from finbud.core.models import (
    MANUAL,
    TRANSACTION_TYPES,
    Transaction,
    normalize_category,
    today_iso,
    utc_now_iso,
)
from finbud.errors import ValidationError
from finbud.store import RecordStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "transaction:"


def new_transaction_id() -> str:
    return uuid.uuid4().hex


def _is_blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_amount(value: object) -> float:
    try:
        amount = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}") from None
    if not math.isfinite(amount) or amount < 0:
        raise ValidationError(f"Invalid amount: {value!r}")
    return amount


def _parse_date(value: object) -> str:
    if _is_blank(value):
        return today_iso()
    text = str(value).strip()
    try:
        return date_cls.fromisoformat(text).isoformat()
    except ValueError:
        raise ValidationError(f"Invalid date (expected YYYY-MM-DD): {text}") from None


def build_manual_transaction(
    type: object,
    amount: object,
    category: object,
    description: object = None,
    date: object = None,
) -> Transaction:
    """Validate form input and build a new manual transaction.

    Raises ValidationError when ``type``, ``amount`` or ``category`` is
    missing, or when any supplied field is malformed.
    """
    if _is_blank(type) or _is_blank(amount) or _is_blank(category):
        raise ValidationError("Missing required fields")
    tx_type = str(type).strip().lower()
    if tx_type not in TRANSACTION_TYPES:
        raise ValidationError(f"Invalid type: {type}")

    return Transaction(
        id=new_transaction_id(),
        type=tx_type,
        amount=_parse_amount(amount),
        category=normalize_category(tx_type, str(category)),
        description=str(description or "").strip(),
        date=_parse_date(date),
        createdAt=utc_now_iso(),
        source=MANUAL,
    )


class TransactionRepository:
    """CRUD over ``transaction:<id>`` records in a record store."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def list(self) -> List[Transaction]:
        return [
            Transaction.from_dict({**value, "id": key[len(KEY_PREFIX):]})
            for key, value in self.store.get_by_prefix(KEY_PREFIX)
        ]

    def get(self, transaction_id: str) -> Transaction | None:
        value = self.store.get(KEY_PREFIX + transaction_id)
        if value is None:
            return None
        return Transaction.from_dict({**value, "id": transaction_id})

    def create(
        self,
        type: object,
        amount: object,
        category: object,
        description: object = None,
        date: object = None,
    ) -> Transaction:
        tx = build_manual_transaction(type, amount, category, description, date)
        return self.add(tx)

    def add(self, transaction: Transaction) -> Transaction:
        """Persist an already-built transaction without re-validating it."""
        self.store.set(KEY_PREFIX + transaction.id, transaction.record())
        logger.info(
            "Stored %s transaction %s (%s %.2f)",
            transaction.source,
            transaction.id,
            transaction.type,
            transaction.amount,
        )
        return transaction

    def delete(self, transaction_id: str) -> None:
        self.store.delete(KEY_PREFIX + transaction_id)
        logger.info("Deleted transaction %s", transaction_id)
