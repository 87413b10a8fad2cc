import anyio
import pytest

from finbud.mcp_server import get_analytics, get_transactions
from finbud.repository import TransactionRepository
from finbud.store import SQLiteRecordStore


def _setup_db(tmp_path):
    db_path = tmp_path / "finbud.db"
    repo = TransactionRepository(SQLiteRecordStore(db_path=str(db_path)))
    repo.create("income", 1000, "salary", "Pay", "2024-01-05")
    repo.create("expense", 200, "food", "Groceries", "2024-01-10")
    repo.create("expense", 50, "food", "Snacks", "2024-02-01")
    return db_path


def test_get_transactions(tmp_path):
    db_path = _setup_db(tmp_path)

    rows = anyio.run(get_transactions, str(db_path))
    assert len(rows) == 3
    assert rows[0]["description"] == "Snacks"

    february = anyio.run(get_transactions, str(db_path), "2024-02-01")
    assert [r["description"] for r in february] == ["Snacks"]

    async def run():
        return await get_transactions(str(db_path), type="income")

    assert [r["amount"] for r in anyio.run(run)] == [1000.0]


def test_get_analytics(tmp_path):
    db_path = _setup_db(tmp_path)

    result = anyio.run(get_analytics, str(db_path))
    assert result["balance"] == 750.0
    assert result["expensesByCategory"] == {"food": 250.0}

    january = anyio.run(get_analytics, str(db_path), "2024-01-01", "2024-01-31")
    assert january["totalExpense"] == 200.0
    assert [m["month"] for m in january["monthlyData"]] == ["2024-01"]


def test_bad_input(tmp_path):
    db_path = tmp_path / "finbud.db"

    with pytest.raises(ValueError, match="Invalid start_date"):
        anyio.run(get_transactions, str(db_path), "not-a-date")

    with pytest.raises(ValueError, match="start_date must be on or before end_date"):
        anyio.run(get_analytics, str(db_path), "2024-05-02", "2024-05-01")

    with pytest.raises(FileNotFoundError):
        anyio.run(get_transactions, str(db_path))
