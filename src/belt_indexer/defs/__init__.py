from dagster import (
    AssetSelection,
    ScheduleDefinition,
    define_asset_job,
)

from .assets.ingestion import (
    belt_index_summary,
    ingested_account_abstraction_events,
)
from .resources import ConfigResource, DatabaseResource, NotificationResource


ingestion_assets = [
    ingested_account_abstraction_events,
    belt_index_summary,
]


ingestion_job = define_asset_job(
    name="belt_ingestion",
    selection=AssetSelection.assets(*ingestion_assets),
    description="Index new EntryPoint events and send Discord notifications",
)


ingestion_schedule = ScheduleDefinition(
    job=ingestion_job,
    cron_schedule="*/5 * * * *",
    description="Run ingestion every 5 minutes",
)


resources = {
    "db": DatabaseResource(),
    "config": ConfigResource(),
    "notifications": NotificationResource(),
}
