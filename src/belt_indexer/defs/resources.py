# /belt_indexer/defs/resources.py
"""
Dagster Resources for database connections, notifications and configuration
"""
import os
from contextlib import contextmanager
from typing import Optional

from dagster import ConfigurableResource, InitResourceContext, get_dagster_logger
from pydantic import PrivateAttr
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from belt_indexer.constants import DEFAULT_CHAIN_ID
from belt_indexer.db.models import Base
from belt_indexer.services.notifications import (
    NotificationStoreConfig,
    NotificationTracker,
    WebhookNotifier,
)
from belt_indexer.services.notifications.dedup import EVENT_TTL_SECONDS


def build_engine(url: str, pool_size: int = 5, max_overflow: int = 10, pool_timeout: int = 30) -> Engine:
    """SQLite (tests, local runs) does not take pool sizing arguments"""
    if url.startswith("sqlite"):
        return create_engine(url, echo=False)
    return create_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_pre_ping=True,
        echo=False,
    )


class DatabaseResource(ConfigurableResource):
    """
    Connections to the events database (decoded logs written by the chain
    sync engine) and the state database (derived indexer tables)
    """

    events_db_url: str = os.getenv("EVENTS_DB_URL", "postgresql://localhost/belt_events")
    state_db_url: str = os.getenv("STATE_DB_URL", "postgresql://localhost/belt_indexer")

    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30

    _events_engine: Optional[Engine] = PrivateAttr(default=None)
    _state_engine: Optional[Engine] = PrivateAttr(default=None)
    _StateSessionLocal: Optional[sessionmaker] = PrivateAttr(default=None)

    @property
    def events_engine(self) -> Engine:
        """Lazy initialization of events database engine"""
        if self._events_engine is None:
            self._events_engine = build_engine(
                self.events_db_url, self.pool_size, self.max_overflow, self.pool_timeout
            )
        return self._events_engine

    @property
    def state_engine(self) -> Engine:
        """Lazy initialization of state database engine"""
        if self._state_engine is None:
            self._state_engine = build_engine(
                self.state_db_url, self.pool_size, self.max_overflow, self.pool_timeout
            )
        return self._state_engine

    @property
    def StateSessionLocal(self) -> sessionmaker:
        """Session factory for state database"""
        if self._StateSessionLocal is None:
            self._StateSessionLocal = sessionmaker(
                bind=self.state_engine,
                expire_on_commit=False,
            )
        return self._StateSessionLocal

    @contextmanager
    def get_state_session(self):
        """Context manager for state database session, one transaction per use"""
        session = self.StateSessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_tables(self) -> None:
        Base.metadata.create_all(self.state_engine)

    def execute_query(self, query: str, params: dict = None, db: str = "state"):
        """Execute a raw SQL query and return results"""
        engine = self.events_engine if db == "events" else self.state_engine
        with engine.connect() as conn:
            result = conn.execute(text(query), params or {})
            return result.fetchall()


class NotificationResource(ConfigurableResource):
    """
    Redis dedup tracker + webhook notifier. Both are built once when the run
    starts and shared by every asset that dispatches events.
    """

    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    key_prefix: str = "belt:notifications"
    event_ttl_seconds: int = EVENT_TTL_SECONDS
    max_connect_attempts: int = 3

    webhook_url: Optional[str] = os.getenv("DISCORD_WEBHOOK_URL")
    batch_size: int = 10
    batch_interval_seconds: float = 1.0
    queue_size: int = 1000
    timeout_seconds: float = 10.0

    _tracker: Optional[NotificationTracker] = PrivateAttr(default=None)
    _notifier: Optional[WebhookNotifier] = PrivateAttr(default=None)

    def setup_for_execution(self, context: InitResourceContext) -> None:
        # Also used from the webhook worker thread
        logger = get_dagster_logger("belt_indexer.notifications")
        self._tracker = NotificationTracker(
            NotificationStoreConfig(
                redis_url=self.redis_url,
                key_prefix=self.key_prefix,
                event_ttl_seconds=self.event_ttl_seconds,
                max_connect_attempts=self.max_connect_attempts,
            ),
            logger=logger,
        )
        self._notifier = WebhookNotifier(
            self.webhook_url,
            self._tracker,
            logger=logger,
            batch_size=self.batch_size,
            batch_interval=self.batch_interval_seconds,
            queue_size=self.queue_size,
            timeout=self.timeout_seconds,
        )
        if not self._notifier.enabled:
            logger.info("DISCORD_WEBHOOK_URL not set, notifications disabled")

    def teardown_after_execution(self, context: InitResourceContext) -> None:
        if self._notifier is not None:
            self._notifier.close()
        if self._tracker is not None:
            self._tracker.close()

    @property
    def tracker(self) -> Optional[NotificationTracker]:
        return self._tracker

    @property
    def notifier(self) -> Optional[WebhookNotifier]:
        return self._notifier


class ConfigResource(ConfigurableResource):
    """Configuration resource for pipeline settings"""

    chain_id: int = int(os.getenv("BELT_CHAIN_ID", str(DEFAULT_CHAIN_ID)))

    # Checkpoint settings
    checkpoint_key: str = "belt_ingestion_v1"

    # Batch processing
    page_size: int = 500
    max_events_per_run: int = 50_000

    # Monitoring
    log_batch_progress_every: int = 1000

    # Seconds to wait for queued notifications before the run ends
    notification_flush_timeout: float = 60.0
