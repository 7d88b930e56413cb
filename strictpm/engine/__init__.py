"""Task engine for strictpm."""

from strictpm.engine.lifecycle import start_task, toggle_complete, toggle_subtask, edit_task
from strictpm.engine.ingestion import ingest_descriptors, validate_descriptor, IngestionResult
from strictpm.engine.review import compute_daily_stats, completion_rate, generate_daily_review
from strictpm.engine.sequencing import RequestSequencer

__all__ = [
    "start_task",
    "toggle_complete",
    "toggle_subtask",
    "edit_task",
    "ingest_descriptors",
    "validate_descriptor",
    "IngestionResult",
    "compute_daily_stats",
    "completion_rate",
    "generate_daily_review",
    "RequestSequencer",
]
