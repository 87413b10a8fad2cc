import pytest

from finbud.core.models import Transaction
from finbud.repository import TransactionRepository
from finbud.store import MemoryRecordStore


@pytest.fixture
def repo():
    return TransactionRepository(MemoryRecordStore())


def make_tx(tx_id, tx_type, amount, category, tx_date, created="2024-01-01T00:00:00Z", **kwargs):
    return Transaction(
        id=tx_id,
        type=tx_type,
        amount=amount,
        category=category,
        date=tx_date,
        createdAt=created,
        **kwargs,
    )
