# belt_indexer/defs/assets/ingestion.py
"""
Ingestion Assets - Dispatch new EntryPoint events into the Belt state tables
"""

from dagster import AssetIn, OpExecutionContext, Output, asset
import pandas as pd

from belt_indexer.services.dispatcher import EventDispatcher
from belt_indexer.services.events import EventFeed
from belt_indexer.services.processors.ingest_events import ingest_events
from belt_indexer.utils.sql_queries import index_table_counts
from ..resources import ConfigResource, DatabaseResource, NotificationResource


@asset(
    description="Classifies, persists and aggregates EntryPoint events since the last checkpoint",
    compute_kind="python",
)
def ingested_account_abstraction_events(
    context: OpExecutionContext,
    db: DatabaseResource,
    config: ConfigResource,
    notifications: NotificationResource,
) -> Output[int]:
    """
    Page through decoded EntryPoint logs after the stored checkpoint.

    Returns:
        Number of events processed in this run
    """
    db.create_tables()

    feed = EventFeed(db.events_engine, config.chain_id)
    dispatcher = EventDispatcher(
        db.get_state_session,
        context.log,
        notifier=notifications.notifier,
    )

    stats = ingest_events(
        feed,
        dispatcher,
        db.get_state_session,
        config.checkpoint_key,
        context.log,
        page_size=config.page_size,
        max_events=config.max_events_per_run,
        log_progress_every=config.log_batch_progress_every,
    )

    notifier = notifications.notifier
    if notifier is not None and notifier.enabled:
        if not notifier.flush(config.notification_flush_timeout):
            context.log.warning(
                "Notification queue did not drain before the run ended; "
                "remaining notifications are dropped"
            )

    return Output(
        stats.events_processed,
        metadata={
            "events_processed": stats.events_processed,
            "events_retained": stats.events_retained,
            "records_inserted": stats.records_inserted,
            "last_block": stats.last_block,
        },
    )


@asset(
    ins={"ingested": AssetIn("ingested_account_abstraction_events")},
    description="Row counts of the indexed Belt tables after ingestion",
    compute_kind="sql",
)
def belt_index_summary(
    context: OpExecutionContext,
    db: DatabaseResource,
    ingested: int,
) -> pd.DataFrame:
    rows = db.execute_query(index_table_counts)
    df = pd.DataFrame(rows, columns=["table_name", "row_count"])

    context.log.info(
        f"Index summary after {ingested} new events: "
        f"{dict(zip(df['table_name'], df['row_count']))}"
    )
    return df
