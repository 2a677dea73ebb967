# belt_indexer/api/server.py
"""
Read-only HTTP surface: health check, aggregate counts and account lookups.
"""

import logging
import os
from typing import Any, Callable, Dict, Optional

from fastapi import Depends, FastAPI, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, sessionmaker

from belt_indexer.constants import ENTRY_POINTS, DEFAULT_CHAIN_ID
from belt_indexer.services.notifications import (
    NotificationStoreConfig,
    NotificationTracker,
    notification_scope,
)
from belt_indexer.services.store import StateStore
from belt_indexer.utils.normalizers import normalize_address

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 20
# The API process is long-lived, so its Redis circuit closes again after this
CIRCUIT_RESET_SECONDS = 30.0


def _serialize(row) -> Dict[str, Any]:
    """ORM row -> JSON-safe dict; uint256 values are sent as strings"""
    out: Dict[str, Any] = {}
    for column in row.__table__.columns:
        value = getattr(row, column.key)
        if isinstance(value, int) and not isinstance(value, bool) and value > 2**53:
            value = str(value)
        elif hasattr(value, "isoformat"):
            value = value.isoformat()
        out[column.key] = value
    return out


def create_app(
    session_factory: Callable[[], Session],
    tracker: Optional[NotificationTracker] = None,
    chain_id: int = DEFAULT_CHAIN_ID,
) -> FastAPI:
    app = FastAPI(title="Belt Indexer", version="0.1.0")

    def get_store():
        session = session_factory()
        try:
            yield StateStore(session)
        finally:
            session.close()

    # Sync endpoint: FastAPI runs it in the threadpool
    @app.get("/health")
    def health() -> Dict[str, Any]:
        notifications: Dict[str, Any] = {"state": "disabled"}
        if tracker is not None:
            watermarks = {
                version: tracker.get_watermark(notification_scope(chain_id, address))
                for version, address in ENTRY_POINTS.items()
            }
            notifications = {"state": tracker.state.value, "watermarks": watermarks}
        return {"status": "ok", "notifications": notifications}

    @app.get("/stats")
    def stats(store: StateStore = Depends(get_store)) -> Dict[str, int]:
        return store.stats()

    @app.get("/account/{address}")
    def account(address: str, store: StateStore = Depends(get_store)):
        try:
            address = normalize_address(address)
        except ValueError:
            return JSONResponse({"error": "Invalid address"}, status_code=400)

        result = store.accounts.find_by_key(address)
        if result.is_failed:
            logger.error(f"Account lookup failed for {address}: {result.error}")
            return JSONResponse({"error": "Lookup failed"}, status_code=503)
        if not result.is_found:
            return JSONResponse({"error": "Account not found"}, status_code=404)

        return {
            "account": _serialize(result.value),
            "recentActivity": [
                _serialize(row)
                for row in store.recent_activity(address, RECENT_ACTIVITY_LIMIT)
            ],
        }

    @app.get("/operations")
    def operations(
        sender: Optional[str] = None,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
        since: Optional[int] = None,
        until: Optional[int] = None,
        limit: int = Query(100, ge=1, le=1000),
        store: StateStore = Depends(get_store),
    ):
        if sender is not None:
            try:
                sender = normalize_address(sender)
            except ValueError:
                return JSONResponse({"error": "Invalid address"}, status_code=400)
        rows = store.list_operations(sender, from_block, to_block, since, until, limit)
        return {"items": [_serialize(row) for row in rows]}

    @app.get("/deployments")
    def deployments(
        factory: Optional[str] = None,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
        since: Optional[int] = None,
        until: Optional[int] = None,
        limit: int = Query(100, ge=1, le=1000),
        store: StateStore = Depends(get_store),
    ):
        if factory is not None:
            try:
                factory = normalize_address(factory)
            except ValueError:
                return JSONResponse({"error": "Invalid address"}, status_code=400)
        rows = store.list_deployments(factory, from_block, to_block, since, until, limit)
        return {"items": [_serialize(row) for row in rows]}

    return app


def main() -> None:
    import uvicorn

    from belt_indexer.defs.resources import build_engine

    logging.basicConfig(level=logging.INFO)

    engine = build_engine(os.getenv("STATE_DB_URL", "postgresql://localhost/belt_indexer"))
    tracker = NotificationTracker(
        NotificationStoreConfig(
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379"),
            circuit_reset_seconds=CIRCUIT_RESET_SECONDS,
        )
    )
    app = create_app(
        sessionmaker(bind=engine, expire_on_commit=False),
        tracker=tracker,
        chain_id=int(os.getenv("BELT_CHAIN_ID", str(DEFAULT_CHAIN_ID))),
    )
    uvicorn.run(
        app,
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", "42069")),
    )


if __name__ == "__main__":
    main()
