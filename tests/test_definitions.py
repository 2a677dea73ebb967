import json

from dagster import materialize
from sqlalchemy import create_engine, text

from belt_indexer.defs import ingestion_assets
from belt_indexer.defs.resources import (
    ConfigResource,
    DatabaseResource,
    NotificationResource,
    build_engine,
)

from conftest import ACCOUNT_A, BELT_FACTORY_V07, op_hash, tx_hash


def _seed_events(url: str):
    engine = create_engine(url)
    with engine.begin() as conn:
        conn.execute(
            text(
                "CREATE TABLE decoded_log_events (chain_id INTEGER, address TEXT, "
                "event_name TEXT, args TEXT, transaction_hash TEXT, log_index INTEGER, "
                "block_number INTEGER, block_hash TEXT, block_timestamp INTEGER)"
            )
        )
        rows = [
            ("AccountDeployed", {"userOpHash": op_hash(0), "sender": ACCOUNT_A, "factory": BELT_FACTORY_V07}, 0, 90),
            (
                "UserOperationEvent",
                {
                    "userOpHash": op_hash(1),
                    "sender": ACCOUNT_A,
                    "nonce": 0,
                    "success": True,
                    "actualGasCost": "1000",
                    "actualGasUsed": "21000",
                },
                1,
                100,
            ),
        ]
        for event_name, args, n, block in rows:
            conn.execute(
                text(
                    "INSERT INTO decoded_log_events VALUES (369, :address, :event_name, :args, "
                    ":tx, 0, :block, NULL, :ts)"
                ),
                {
                    "address": "0x0000000071727De22E5E9d8BAf0edAc6f37da032",
                    "event_name": event_name,
                    "args": json.dumps(args),
                    "tx": tx_hash(n),
                    "block": block,
                    "ts": 1_700_000_000 + block,
                },
            )
    engine.dispose()


def test_build_engine_skips_pool_arguments_for_sqlite(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'state.db'}", pool_size=50)
    assert engine.dialect.name == "sqlite"
    engine.dispose()


def test_ingestion_assets_materialize(tmp_path):
    events_url = f"sqlite:///{tmp_path / 'events.db'}"
    state_url = f"sqlite:///{tmp_path / 'state.db'}"
    _seed_events(events_url)

    result = materialize(
        ingestion_assets,
        resources={
            "db": DatabaseResource(events_db_url=events_url, state_db_url=state_url),
            "config": ConfigResource(chain_id=369, page_size=1),
            "notifications": NotificationResource(webhook_url=None),
        },
    )

    assert result.success
    assert result.output_for_node("ingested_account_abstraction_events") == 2

    summary = result.output_for_node("belt_index_summary")
    counts = dict(zip(summary["table_name"], summary["row_count"]))
    assert counts == {
        "smart_account": 1,
        "user_operation": 1,
        "account_deployed": 1,
        "account_activity": 1,
    }
