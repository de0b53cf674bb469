"""
Storage module for Trust Debt.

This module provides the append-only artifact store with its JSON Schemas,
and the SQLite ledger of runs and artifacts.
"""

from trustdebt.storage.artifacts import (
    ArtifactStore,
    StageArtifact,
    StoredArtifact,
    new_run_id,
)
from trustdebt.storage.database import ArtifactRecord, Database, RunRecord
from trustdebt.storage.schemas import STAGE_LABELS, validate_document

__all__ = [
    "ArtifactRecord",
    "ArtifactStore",
    "Database",
    "RunRecord",
    "STAGE_LABELS",
    "StageArtifact",
    "StoredArtifact",
    "new_run_id",
    "validate_document",
]
