"""Services that orchestrate ingestion."""

from resilient_ingest.services.ingestion_service import (
    IngestionReport,
    IngestionService,
    SourceOutcome,
    ingest_data,
)

__all__ = ["IngestionService", "IngestionReport", "SourceOutcome", "ingest_data"]
