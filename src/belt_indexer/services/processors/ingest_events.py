import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from belt_indexer.services.dispatcher import EventDispatcher, SessionScope
from belt_indexer.services.events import Cursor, EventFeed
from belt_indexer.services.store import StateStore


@dataclass
class IngestionStats:
    events_processed: int = 0
    events_retained: int = 0
    records_inserted: int = 0
    last_block: int = 0


def ingest_events(
    feed: EventFeed,
    dispatcher: EventDispatcher,
    session_scope: SessionScope,
    checkpoint_key: str,
    logger: logging.Logger,
    page_size: int = 500,
    max_events: int = 50_000,
    log_progress_every: int = 1000,
) -> IngestionStats:
    """
    Dispatch feed events after the stored checkpoint, one page at a time.

    The checkpoint is saved after every page. A crash mid-page replays that
    page on the next run, which the idempotent inserts absorb.

    Args:
        feed: Upstream decoded log feed
        dispatcher: Event dispatcher (classify, persist, aggregate, notify)
        session_scope: Transactional session factory for the state store
        checkpoint_key: Pipeline name the cursor is stored under
        logger: Dagster or standard logger
        page_size: Events fetched per query
        max_events: Upper bound for one run
        log_progress_every: Log a progress line every N events

    Returns:
        Counters for the run
    """
    start_time = datetime.now(timezone.utc)

    with session_scope() as session:
        checkpoint = StateStore(session).checkpoints.get(checkpoint_key)
        if checkpoint is not None:
            cursor = Cursor(
                checkpoint.last_processed_block, checkpoint.last_processed_log_index
            )
            logger.info(
                f"Resuming after block {cursor.block_number} log {cursor.log_index}"
            )
        else:
            # First run (or wiped state store) - replay from genesis
            cursor = Cursor()
            logger.info("No checkpoint found - processing feed from genesis")

    stats = IngestionStats(last_block=cursor.block_number)

    while stats.events_processed < max_events:
        limit = min(page_size, max_events - stats.events_processed)
        page = feed.fetch_after(cursor.block_number, cursor.log_index, limit)
        if not page:
            break

        for event in page:
            result = dispatcher.dispatch(event)
            cursor.advance(event)
            stats.events_processed += 1
            if result.retained:
                stats.events_retained += 1
            if result.inserted:
                stats.records_inserted += 1

            if stats.events_processed % log_progress_every == 0:
                logger.info(
                    f"Processed {stats.events_processed} events "
                    f"(block {cursor.block_number}, {stats.events_retained} retained)"
                )

        stats.last_block = cursor.block_number
        duration = (datetime.now(timezone.utc) - start_time).total_seconds()

        with session_scope() as session:
            StateStore(session).checkpoints.save(
                checkpoint_key,
                last_processed_block=cursor.block_number,
                last_processed_log_index=cursor.log_index,
                events_processed=len(page),
                run_duration_seconds=int(duration),
                run_metadata={
                    "events_retained": stats.events_retained,
                    "records_inserted": stats.records_inserted,
                },
            )

        if len(page) < limit:
            break

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    logger.info(
        f"Ingestion complete - {stats.events_processed} events, "
        f"{stats.events_retained} retained, {stats.records_inserted} new records, "
        f"last block {stats.last_block}, duration: {duration:.2f}s"
    )

    return stats
