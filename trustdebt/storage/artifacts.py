"""
Versioned Artifact Store for Trust Debt

Every stage reads the previous stage's artifact and writes its own. The
store keeps each run in its own directory:

    <root>/<run_id>/<index>-<label>.<version>.json

where version is the artifact's produced_at timestamp (UTC, microseconds),
so versions sort chronologically by name.

Design Decisions:
    - Append-only: a version is created exactly once and never overwritten
    - Documents are schema-validated before they are written and when read
    - Writes go to a temporary file that is hard-linked into place, so a
      reader never sees a partially written artifact under its final name
"""

import hashlib
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from trustdebt.errors import SchemaValidationError
from trustdebt.models import utcnow
from trustdebt.storage.schemas import STAGE_LABELS, validate_document


logger = logging.getLogger(__name__)

# Default artifact location
DEFAULT_ARTIFACTS_DIR = ".trustdebt/runs"

VERSION_FORMAT = "%Y%m%dT%H%M%S%fZ"
RUN_ID_FORMAT = "run-%Y%m%dT%H%M%S%f"


def new_run_id() -> str:
    """Generate a chronologically sortable run id."""
    return utcnow().strftime(RUN_ID_FORMAT)


@dataclass(frozen=True)
class StageArtifact:
    """
    The immutable output document of one pipeline stage.

    Attributes:
        run_id: Run this artifact belongs to
        stage_index: Index of the producing stage
        label: Fixed label of the producing stage
        produced_at: UTC production time, also the artifact version
        config_digest: Digest of the configuration that produced it
        payload: Stage-specific content
    """

    run_id: str
    stage_index: int
    label: str
    produced_at: datetime
    config_digest: str
    payload: dict[str, Any]

    @property
    def version(self) -> str:
        return self.produced_at.strftime(VERSION_FORMAT)

    @property
    def filename(self) -> str:
        return f"{self.stage_index}-{self.label}.{self.version}.json"

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "stage_index": self.stage_index,
            "label": self.label,
            "produced_at": self.produced_at.isoformat(),
            "config_digest": self.config_digest,
            "payload": self.payload,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StageArtifact":
        return cls(
            run_id=data["run_id"],
            stage_index=data["stage_index"],
            label=data["label"],
            produced_at=datetime.fromisoformat(data["produced_at"]),
            config_digest=data["config_digest"],
            payload=data["payload"],
        )


@dataclass(frozen=True)
class StoredArtifact:
    """Where an artifact was written, and the SHA-256 of its bytes."""

    artifact: StageArtifact
    path: Path
    sha256: str


class ArtifactStore:
    """
    File-based, append-only store of stage artifacts.

    Usage:
        store = ArtifactStore(".trustdebt/runs")
        stored = store.write(artifact)
        latest = store.read_latest(run_id, stage_index=3)
    """

    def __init__(self, root: str | Path = DEFAULT_ARTIFACTS_DIR) -> None:
        """
        Initialize the store.

        Args:
            root: Directory holding one sub-directory per run.
                  Created if needed.
        """
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def run_dir(self, run_id: str) -> Path:
        return self._root / run_id

    def write(self, artifact: StageArtifact) -> StoredArtifact:
        """
        Validate and durably write a new artifact version.

        Args:
            artifact: The artifact to persist

        Returns:
            StoredArtifact with the final path and content digest

        Raises:
            SchemaValidationError: If the document does not match its schema
            FileExistsError: If this version already exists
        """
        document = artifact.to_dict()
        validate_document(document)
        content = json.dumps(document, indent=2, sort_keys=True).encode("utf-8")

        directory = self.run_dir(artifact.run_id)
        directory.mkdir(parents=True, exist_ok=True)
        final = directory / artifact.filename
        if final.exists():
            raise FileExistsError(f"Artifact version already exists: {final}")

        handle, temp_name = tempfile.mkstemp(dir=directory, prefix=".", suffix=".tmp")
        try:
            with os.fdopen(handle, "wb") as stream:
                stream.write(content)
                stream.flush()
                os.fsync(stream.fileno())
            # Re-validate what actually landed on disk before publishing it.
            validate_document(json.loads(Path(temp_name).read_bytes()))
            os.link(temp_name, final)
        finally:
            os.unlink(temp_name)

        digest = hashlib.sha256(content).hexdigest()
        logger.debug("Wrote %s (%s)", final, digest[:12])
        return StoredArtifact(artifact=artifact, path=final, sha256=digest)

    def read(self, path: str | Path) -> StageArtifact:
        """
        Read and validate one artifact file.

        Raises:
            SchemaValidationError: If the file is unreadable or invalid
        """
        path = Path(path)
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise SchemaValidationError(
                f"Cannot read artifact {path}: {exc}",
                detail={"path": str(path)},
            ) from exc
        validate_document(document)
        return StageArtifact.from_dict(document)

    def list_versions(self, run_id: str, stage_index: int) -> list[Path]:
        """All versions of a stage's artifact in a run, oldest first."""
        label = STAGE_LABELS[stage_index]
        directory = self.run_dir(run_id)
        if not directory.is_dir():
            return []
        return sorted(directory.glob(f"{stage_index}-{label}.*.json"))

    def has_artifact(self, run_id: str, stage_index: int) -> bool:
        return bool(self.list_versions(run_id, stage_index))

    def read_latest(self, run_id: str, stage_index: int) -> StageArtifact:
        """
        Read the newest version of a stage's artifact.

        Raises:
            SchemaValidationError: If there is none, or it is invalid
        """
        versions = self.list_versions(run_id, stage_index)
        if not versions:
            raise SchemaValidationError(
                f"Run {run_id} has no artifact for stage {stage_index} ({STAGE_LABELS[stage_index]})",
                detail={"run_id": run_id, "missing_stage": stage_index},
            )
        artifact = self.read(versions[-1])
        if artifact.run_id != run_id or artifact.stage_index != stage_index:
            raise SchemaValidationError(
                f"Artifact {versions[-1]} does not belong to run {run_id} stage {stage_index}",
                detail={"path": str(versions[-1])},
            )
        return artifact

    def list_runs(self) -> list[str]:
        """All run ids, oldest first."""
        return sorted(path.name for path in self._root.iterdir() if path.is_dir())

    def latest_run_id(self) -> Optional[str]:
        runs = self.list_runs()
        return runs[-1] if runs else None

    def completed_stages(self, run_id: str) -> list[int]:
        """Indices of the stages that have at least one artifact in the run."""
        return [index for index in range(len(STAGE_LABELS)) if self.has_artifact(run_id, index)]
