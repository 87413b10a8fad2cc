from datetime import date

import pytest

from finbud.state import (
    LOCAL,
    SERVER,
    AppState,
    ConnectionFailed,
    ModeSelected,
    TransactionAdded,
    TransactionDeleted,
    TransactionsLoaded,
    filter_transactions,
    reduce,
    sample_transactions,
    sort_for_display,
)
from conftest import make_tx


def test_loaded_computes_analytics():
    txs = (make_tx("a", "income", 10.0, "gift", "2024-01-01"), make_tx("b", "expense", 4.0, "food", "2024-01-02"))
    state = reduce(AppState(), TransactionsLoaded(txs, LOCAL))
    assert state.transactions == txs
    assert state.analytics.balance == 6.0
    assert state.mode == LOCAL


def test_add_and_delete_recompute():
    state = reduce(AppState(showing_sample=True), TransactionAdded(make_tx("a", "expense", 5.0, "food", "2024-02-01")))
    assert state.analytics.totalExpense == 5.0
    assert state.showing_sample is False

    state = reduce(state, TransactionDeleted("a"))
    assert state.transactions == ()
    assert state.analytics.totalExpense == 0.0
    assert state.analytics.monthlyData == []


def test_connection_failure_switches_to_local():
    state = reduce(AppState(mode=SERVER), ConnectionFailed("offline"))
    assert state.mode == LOCAL
    assert state.connection_error == "offline"

    state = reduce(state, ModeSelected(SERVER))
    assert state.mode == SERVER
    assert state.connection_error == ""


def test_reduce_does_not_mutate():
    before = AppState()
    reduce(before, TransactionAdded(make_tx("a", "income", 1.0, "gift", "2024-01-01")))
    assert before.transactions == ()


def test_reduce_rejects_unknown_action():
    with pytest.raises(TypeError):
        reduce(AppState(), object())


def test_sort_and_filter():
    txs = [
        make_tx("old", "expense", 1.0, "food", "2024-01-01", created="2024-01-01T10:00:00Z", description="Bakery"),
        make_tx("new", "expense", 2.0, "shopping", "2024-01-03", created="2024-01-03T10:00:00Z", vendor="Target", source="receipt"),
        make_tx("mid", "income", 3.0, "salary", "2024-01-02", created="2024-01-02T10:00:00Z"),
    ]
    assert [t.id for t in sort_for_display(txs)] == ["new", "mid", "old"]
    assert [t.id for t in filter_transactions(txs, search="targ")] == ["new"]
    assert [t.id for t in filter_transactions(txs, search="BAK")] == ["old"]
    assert [t.id for t in filter_transactions(txs, tx_type="income")] == ["mid"]
    assert [t.id for t in filter_transactions(txs, category="food")] == ["old"]


def test_sample_transactions_span_two_months():
    samples = sample_transactions(date(2024, 3, 9))
    assert len(samples) == 9
    assert {t.date[:7] for t in samples} == {"2024-03", "2024-02"}
    assert sum(1 for t in samples if t.source == "receipt") == 2


def test_sample_transactions_january_rolls_back_year():
    samples = sample_transactions(date(2025, 1, 31))
    assert {t.date[:7] for t in samples} == {"2025-01", "2024-12"}
