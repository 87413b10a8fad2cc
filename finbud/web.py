# finbud/web.py
from __future__ import annotations

import argparse
import logging
import time
from typing import Any, Callable, Dict, Optional

import uvicorn
from fastapi import APIRouter, Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from finbud.config import configure_logging, load_config
from finbud.core.analytics import aggregate
from finbud.errors import (
    ConfigurationError,
    InvalidResponse,
    StoreError,
    UpstreamUnavailable,
    ValidationError,
)
from finbud.receipts import ReceiptClassifier, ReceiptProvider, get_provider_from_config
from finbud.repository import TransactionRepository
from finbud.store import get_store

logger = logging.getLogger(__name__)


def _error(message: str, status: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status)


def create_app(
    config: Dict[str, object] | None = None,
    repository: TransactionRepository | None = None,
    provider_factory: Callable[[], ReceiptProvider] | None = None,
) -> FastAPI:
    """Build the REST service.

    ``repository`` and ``provider_factory`` default to the configured
    record store and classifier provider.
    """
    cfg = config or load_config()
    api_cfg: Dict[str, Any] = dict(cfg.get("api") or {})  # type: ignore[arg-type]
    classifier_cfg: Dict[str, Any] = dict(cfg.get("classifier") or {})  # type: ignore[arg-type]
    repo = repository or TransactionRepository(get_store(cfg))
    make_provider = provider_factory or (lambda: get_provider_from_config(cfg))

    app = FastAPI(title="FinBud API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(api_cfg.get("cors_origins") or []),
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s -> %d (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        return _error("Invalid request body", 400)

    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        return _error(str(exc), 400)

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return _error("Internal server error", 500)

    router = APIRouter(prefix=str(api_cfg.get("prefix") or ""))

    @router.get("/health")
    def health():
        return {"status": "ok"}

    @router.get("/transactions")
    def list_transactions():
        try:
            transactions = repo.list()
        except StoreError:
            logger.exception("Error fetching transactions")
            return _error("Failed to fetch transactions", 500)
        return {"transactions": [tx.to_dict() for tx in transactions]}

    @router.post("/transactions")
    def add_transaction(payload: Optional[Dict[str, Any]] = Body(None)):
        body = payload or {}
        try:
            tx = repo.create(
                body.get("type"),
                body.get("amount"),
                body.get("category"),
                body.get("description"),
                body.get("date"),
            )
        except StoreError:
            logger.exception("Error adding transaction")
            return _error("Failed to add transaction", 500)
        return {"success": True, "transaction": tx.to_dict()}

    @router.delete("/transactions/{transaction_id}")
    def delete_transaction(transaction_id: str):
        try:
            repo.delete(transaction_id)
        except StoreError:
            logger.exception("Error deleting transaction %s", transaction_id)
            return _error("Failed to delete transaction", 500)
        return {"success": True}

    @router.get("/analytics")
    def analytics():
        try:
            transactions = repo.list()
        except StoreError:
            logger.exception("Error fetching analytics")
            return _error("Failed to fetch analytics", 500)
        return aggregate(transactions).to_dict()

    @router.post("/process-receipt")
    def process_receipt(payload: Optional[Dict[str, Any]] = Body(None)):
        image = (payload or {}).get("imageBase64")
        if not image:
            return _error("No image provided", 400)
        try:
            classifier = ReceiptClassifier(
                provider=make_provider(),
                repository=repo,
                strict_total=bool(classifier_cfg.get("strict_total")),
            )
        except ConfigurationError as exc:
            return _error(str(exc), 400)

        try:
            receipt_data, tx = classifier.process(str(image))
        except (UpstreamUnavailable, InvalidResponse) as exc:
            logger.error("Error processing receipt: %s", exc)
            return _error(f"Failed to process receipt: {exc}", 500)
        except StoreError:
            logger.exception("Error storing receipt transaction")
            return _error("Failed to process receipt: could not store transaction", 500)
        return {"success": True, "receiptData": receipt_data, "transaction": tx.to_dict()}

    app.include_router(router)
    return app


def run_server(config: Dict[str, object], host: str | None = None, port: int | None = None) -> None:
    api_cfg: Dict[str, Any] = dict(config.get("api") or {})  # type: ignore[arg-type]
    host = host or str(api_cfg.get("host") or "127.0.0.1")
    port = port or int(api_cfg.get("port") or 8000)
    logger.info("FinBud API running at http://%s:%d%s (db: %s)", host, port, api_cfg.get("prefix"), config.get("db_path"))
    uvicorn.run(create_app(config), host=host, port=port, log_level="warning")


def main() -> None:
    parser = argparse.ArgumentParser(description="FinBud REST API")
    parser.add_argument("--config", default=None, help="Path to finbud.yaml")
    parser.add_argument("--env-file", default=None, help="Optional .env file with API keys")
    parser.add_argument("--db", dest="db_path", default=None, help="Path to SQLite database")
    parser.add_argument("--host", default=None, help="Host to bind (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=None, help="Port to bind (default: 8000)")
    args = parser.parse_args()

    configure_logging()
    config = load_config(args.config, env_file=args.env_file)
    if args.db_path:
        config["db_path"] = args.db_path
    run_server(config, args.host, args.port)


if __name__ == "__main__":
    main()
