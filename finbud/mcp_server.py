from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import List

import anyio
from mcp.server.fastmcp import FastMCP

from finbud.core.analytics import aggregate
from finbud.core.models import TRANSACTION_TYPES, Transaction
from finbud.repository import TransactionRepository
from finbud.state import sort_for_display
from finbud.store import SQLiteRecordStore

server = FastMCP(name="FinBud", instructions="Expose FinBud transactions and analytics as MCP tools")


def _parse_range(start_date: str | None, end_date: str | None) -> tuple[date | None, date | None]:
    try:
        start = date.fromisoformat(start_date) if start_date else None
    except ValueError as exc:
        raise ValueError(f"Invalid start_date: {start_date}") from exc

    try:
        end = date.fromisoformat(end_date) if end_date else None
    except ValueError as exc:
        raise ValueError(f"Invalid end_date: {end_date}") from exc

    if start and end and start > end:
        raise ValueError("start_date must be on or before end_date")
    return start, end


def _load(db_path: str, start: date | None, end: date | None) -> List[Transaction]:
    if not Path(db_path).exists():
        raise FileNotFoundError(f"Database not found: {db_path}")
    txs = TransactionRepository(SQLiteRecordStore(db_path=db_path)).list()
    if start:
        txs = [t for t in txs if t.date >= start.isoformat()]
    if end:
        txs = [t for t in txs if t.date <= end.isoformat()]
    return txs


@server.tool(
    name="get_transactions", description="List recorded income and expense transactions"
)
async def get_transactions(
    db_path: str,
    start_date: str | None = None,
    end_date: str | None = None,
    type: str | None = None,
) -> list[dict]:
    """Return transactions from ``db_path``, newest first.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.
    start_date, end_date:
        Optional ISO formatted date strings bounding the query.
    type:
        Optional ``income`` or ``expense`` filter.
    """
    start, end = _parse_range(start_date, end_date)
    if type is not None and type not in TRANSACTION_TYPES:
        raise ValueError(f"Invalid type: {type}")

    def _run() -> list[dict]:
        txs = _load(db_path, start, end)
        if type:
            txs = [t for t in txs if t.type == type]
        return [t.to_dict() for t in sort_for_display(txs)]

    return await anyio.to_thread.run_sync(_run)


@server.tool(
    name="get_analytics",
    description="Income/expense totals, balance, expenses by category and monthly series",
)
async def get_analytics(
    db_path: str,
    start_date: str | None = None,
    end_date: str | None = None,
) -> dict:
    start, end = _parse_range(start_date, end_date)

    def _run() -> dict:
        return aggregate(_load(db_path, start, end)).to_dict()

    return await anyio.to_thread.run_sync(_run)


def main() -> None:
    server.run()


if __name__ == "__main__":
    main()
