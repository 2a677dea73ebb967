"""Shared fixtures for the Belt indexer tests."""

import json
import logging
from contextlib import contextmanager

import fakeredis
import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from belt_indexer.constants import (
    ACCOUNT_DEPLOYED_EVENT,
    DEFAULT_CHAIN_ID,
    ENTRY_POINTS,
    USER_OPERATION_EVENT,
    V0_7,
    ZERO_ADDRESS,
)
from belt_indexer.db.models import Base
from belt_indexer.services.events import LogEvent
from belt_indexer.services.notifications import NotificationStoreConfig, NotificationTracker

BELT_FACTORY_V07 = "0xc03f10876b6f9b2c6927ea8b2ac9552c6bb2ce68"
BELT_EXECUTOR = "0x1071ce6fcc1a042208ccb60d5d417c2ba9c8e750"
BELT_IMPLEMENTATION = "0x28426d752372d68d34340bd94390950dce3c9ec3"
ACCOUNT_A = "0x" + "aa" * 20
OUTSIDER = "0x" + "11" * 20
OTHER_FACTORY = "0x" + "22" * 20


def tx_hash(n: int) -> str:
    return "0x" + f"{n:064x}"


def op_hash(n: int) -> str:
    return "0x" + f"{n + 0xABC000:064x}"


def _sqlite_engine():
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


# ---------------------------------------------------------------------------
# State store
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    engine = _sqlite_engine()
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session_scope(session_factory):
    @contextmanager
    def scope():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return scope


@pytest.fixture
def logger():
    return logging.getLogger("belt_indexer.tests")


# ---------------------------------------------------------------------------
# Events database (decoded_log_events written by the chain sync engine)
# ---------------------------------------------------------------------------


@pytest.fixture
def events_engine():
    engine = _sqlite_engine()
    with engine.begin() as conn:
        conn.execute(
            text(
                """
                CREATE TABLE decoded_log_events (
                    chain_id INTEGER NOT NULL,
                    address TEXT NOT NULL,
                    event_name TEXT NOT NULL,
                    args TEXT NOT NULL,
                    transaction_hash TEXT NOT NULL,
                    log_index INTEGER NOT NULL,
                    block_number INTEGER NOT NULL,
                    block_hash TEXT,
                    block_timestamp INTEGER NOT NULL
                )
                """
            )
        )
    yield engine
    engine.dispose()


@pytest.fixture
def insert_logs(events_engine):
    """Write LogEvents into decoded_log_events the way the sync engine would."""

    def insert(*events: LogEvent):
        with events_engine.begin() as conn:
            for event in events:
                conn.execute(
                    text(
                        "INSERT INTO decoded_log_events VALUES "
                        "(:chain_id, :address, :event_name, :args, :transaction_hash, "
                        ":log_index, :block_number, :block_hash, :block_timestamp)"
                    ),
                    {
                        "chain_id": event.chain_id,
                        "address": event.address,
                        "event_name": event.event_name,
                        "args": json.dumps(dict(event.args)),
                        "transaction_hash": event.transaction_hash,
                        "log_index": event.log_index,
                        "block_number": event.block_number,
                        "block_hash": event.block_hash,
                        "block_timestamp": event.block_timestamp,
                    },
                )

    return insert


# ---------------------------------------------------------------------------
# Event builders
# ---------------------------------------------------------------------------


@pytest.fixture
def user_op_event():
    def build(
        n: int = 1,
        sender: str = ACCOUNT_A,
        paymaster: str = ZERO_ADDRESS,
        gas_cost: int = 1000,
        success: bool = True,
        block_number: int = 100,
        log_index: int = 0,
        entry_point: str = ENTRY_POINTS[V0_7],
        timestamp: int = 1_700_000_000,
    ) -> LogEvent:
        return LogEvent(
            event_name=USER_OPERATION_EVENT,
            args={
                "userOpHash": op_hash(n),
                "sender": sender,
                "paymaster": paymaster,
                "nonce": str(n),
                "success": success,
                "actualGasCost": str(gas_cost),
                "actualGasUsed": "21000",
            },
            address=entry_point,
            transaction_hash=tx_hash(n),
            log_index=log_index,
            block_number=block_number,
            block_timestamp=timestamp,
            chain_id=DEFAULT_CHAIN_ID,
        )

    return build


@pytest.fixture
def deploy_event():
    def build(
        n: int = 0,
        account: str = ACCOUNT_A,
        factory: str = BELT_FACTORY_V07,
        paymaster: str = ZERO_ADDRESS,
        block_number: int = 90,
        log_index: int = 0,
        entry_point: str = ENTRY_POINTS[V0_7],
        timestamp: int = 1_699_999_000,
    ) -> LogEvent:
        return LogEvent(
            event_name=ACCOUNT_DEPLOYED_EVENT,
            args={
                "userOpHash": op_hash(n),
                "sender": account,
                "factory": factory,
                "paymaster": paymaster,
            },
            address=entry_point,
            transaction_hash=tx_hash(n),
            log_index=log_index,
            block_number=block_number,
            block_timestamp=timestamp,
            chain_id=DEFAULT_CHAIN_ID,
        )

    return build


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class RecordingNotifier:
    """Stands in for WebhookNotifier; keeps what the dispatcher submits."""

    def __init__(self):
        self.submitted = []

    def submit(self, notification) -> bool:
        self.submitted.append(notification)
        return True


@pytest.fixture
def recording_notifier():
    return RecordingNotifier()


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture
def backoff_sleeps():
    return []


@pytest.fixture
def tracker(redis_server, backoff_sleeps):
    tracker = NotificationTracker(
        NotificationStoreConfig(key_prefix="test:notifications"),
        client_factory=lambda: fakeredis.FakeRedis(
            server=redis_server, decode_responses=True
        ),
        sleep=backoff_sleeps.append,
    )
    yield tracker
    tracker.close()
