# finbud/client.py
from __future__ import annotations

import json
import logging
import os
import urllib.error
import urllib.parse
import urllib.request
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple

from finbud.core.analytics import Analytics, aggregate
from finbud.core.models import Transaction
from finbud.errors import (
    FinBudError,
    InvalidResponse,
    UpstreamUnavailable,
    ValidationError,
)
from finbud.repository import build_manual_transaction
from finbud.state import (
    LOCAL,
    SERVER,
    AppState,
    ConnectionFailed,
    ModeSelected,
    TransactionAdded,
    TransactionDeleted,
    TransactionsLoaded,
    reduce,
    sample_transactions,
)

logger = logging.getLogger(__name__)

CONNECTION_ERROR = "Unable to connect to server. Using local storage mode."


class RemoteTransactionRepository:
    """Transaction repository backed by the FinBud REST API."""

    def __init__(self, base_url: str, timeout: float = 10) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _request(self, method: str, path: str, payload: dict | None = None) -> Dict[str, Any]:
        url = self.base_url + path
        data = json.dumps(payload).encode() if payload is not None else None
        req = urllib.request.Request(url, data=data, method=method)
        req.add_header("Content-Type", "application/json")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read().decode()
        except urllib.error.HTTPError as exc:
            message = _error_message(exc)
            if exc.code == 400:
                raise ValidationError(message) from exc
            raise UpstreamUnavailable(f"Server responded with {exc.code}: {message}") from exc
        except (urllib.error.URLError, TimeoutError, OSError) as exc:
            raise UpstreamUnavailable(f"Server unreachable: {exc}") from exc
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise InvalidResponse(f"Server returned invalid JSON for {method} {path}") from exc

    def list(self) -> List[Transaction]:
        data = self._request("GET", "/transactions")
        return [Transaction.from_dict(item) for item in data.get("transactions") or []]

    def create(
        self,
        type: object,
        amount: object,
        category: object,
        description: object = None,
        date: object = None,
    ) -> Transaction:
        payload = {"type": type, "amount": amount, "category": category}
        if description is not None:
            payload["description"] = description
        if date is not None:
            payload["date"] = date
        data = self._request("POST", "/transactions", payload)
        return Transaction.from_dict(data["transaction"])

    def delete(self, transaction_id: str) -> None:
        self._request("DELETE", "/transactions/" + urllib.parse.quote(transaction_id, safe=""))

    def analytics(self) -> Analytics:
        return Analytics.from_dict(self._request("GET", "/analytics"))

    def process_receipt(self, image_base64: str) -> Tuple[dict, Transaction]:
        data = self._request("POST", "/process-receipt", {"imageBase64": image_base64})
        return data.get("receiptData") or {}, Transaction.from_dict(data["transaction"])


def _error_message(exc: urllib.error.HTTPError) -> str:
    try:
        body = json.loads(exc.read().decode() or "{}")
    except (json.JSONDecodeError, UnicodeDecodeError, OSError):
        return exc.reason or ""
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return exc.reason or ""


class LocalTransactionRepository:
    """In-memory transaction list mirrored to a JSON file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._transactions: List[Transaction] = self._load()

    def _load(self) -> List[Transaction]:
        if not self.path.exists():
            return []
        try:
            with self.path.open("r", encoding="utf-8") as fp:
                data = json.load(fp)
            return [Transaction.from_dict(item) for item in data]
        except (json.JSONDecodeError, OSError, TypeError, ValueError, AttributeError) as exc:
            logger.error("Error loading local transactions from %s: %s", self.path, exc)
            return []

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as fp:
            json.dump([tx.to_dict() for tx in self._transactions], fp, indent=2)
        os.replace(tmp_path, self.path)

    def list(self) -> List[Transaction]:
        return list(self._transactions)

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
        self._transactions.append(transaction)
        self._save()
        return transaction

    def delete(self, transaction_id: str) -> None:
        self._transactions = [t for t in self._transactions if t.id != transaction_id]
        self._save()

    def replace_all(self, transactions: Iterable[Transaction]) -> None:
        self._transactions = list(transactions)
        self._save()

    def analytics(self) -> Analytics:
        return aggregate(self._transactions)


class FinanceSession:
    """Coordinates the remote and local repositories behind one state.

    Server mode is tried first when requested; any transport or server
    failure switches the session to local mode, which keeps working off
    the JSON file.
    """

    def __init__(
        self,
        remote: RemoteTransactionRepository | None,
        local: LocalTransactionRepository,
        prefer_server: bool = True,
    ) -> None:
        self.remote = remote
        self.local = local
        mode = SERVER if prefer_server and remote is not None else LOCAL
        self.state = AppState(mode=mode)

    def dispatch(self, action) -> AppState:
        self.state = reduce(self.state, action)
        return self.state

    @property
    def is_server_mode(self) -> bool:
        return self.state.mode == SERVER and self.remote is not None

    def _fall_back(self, exc: Exception) -> None:
        logger.warning("Server connection failed, falling back to local mode: %s", exc)
        self.dispatch(ConnectionFailed(CONNECTION_ERROR))

    def load(self) -> AppState:
        if self.is_server_mode:
            try:
                transactions = self.remote.list()
                analytics = self.remote.analytics()
            except FinBudError as exc:
                self._fall_back(exc)
            else:
                self.local.replace_all(transactions)
                return self.dispatch(TransactionsLoaded(tuple(transactions), SERVER, analytics))
        return self._load_local()

    def _load_local(self) -> AppState:
        transactions = self.local.list()
        if transactions:
            return self.dispatch(TransactionsLoaded(tuple(transactions), LOCAL))
        samples = sample_transactions()
        self.local.replace_all(samples)
        return self.dispatch(TransactionsLoaded(tuple(samples), LOCAL, sample=True))

    def select_mode(self, mode: str) -> AppState:
        self.dispatch(ModeSelected(mode))
        return self.load()

    def add(
        self,
        type: object,
        amount: object,
        category: object,
        description: object = None,
        date: object = None,
    ) -> Transaction:
        if self.is_server_mode:
            try:
                tx = self.remote.create(type, amount, category, description, date)
            except ValidationError:
                raise
            except FinBudError as exc:
                self._fall_back(exc)
            else:
                self.local.add(tx)
                self.dispatch(TransactionAdded(tx))
                return tx
        tx = self.local.create(type, amount, category, description, date)
        self.dispatch(TransactionAdded(tx))
        return tx

    def delete(self, transaction_id: str) -> None:
        if self.is_server_mode:
            try:
                self.remote.delete(transaction_id)
            except FinBudError as exc:
                self._fall_back(exc)
        self.local.delete(transaction_id)
        self.dispatch(TransactionDeleted(transaction_id))

    def scan_receipt(self, image_base64: str) -> Tuple[dict, Transaction]:
        if not self.is_server_mode:
            raise UpstreamUnavailable("Receipt scanning needs the server; running in local storage mode")
        receipt_data, tx = self.remote.process_receipt(image_base64)
        self.local.add(tx)
        self.dispatch(TransactionAdded(tx))
        return receipt_data, tx
