"""
Dagster Definitions for the Belt indexer
"""

from dagster import Definitions

from belt_indexer.defs import (
    ingestion_assets,
    ingestion_job,
    ingestion_schedule,
    resources,
)

defs = Definitions(
    assets=ingestion_assets,
    jobs=[ingestion_job],
    schedules=[ingestion_schedule],
    resources=resources,
)
