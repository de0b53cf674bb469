"""
Tests for the storage module.

Tests the versioned artifact store, document schemas and the SQLite run
ledger.
"""

import json
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from trustdebt.config import PipelineConfig
from trustdebt.errors import SchemaValidationError
from trustdebt.extract import extract_keywords
from trustdebt.storage import ArtifactStore, Database, StageArtifact, validate_document
from trustdebt.storage.artifacts import new_run_id

from tests.fixtures import INTENT_TEXTS, REALITY_TEXTS


PRODUCED_AT = datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)


@pytest.fixture
def temp_store():
    """Create a temporary artifact store for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield ArtifactStore(Path(tmpdir) / "runs")


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        db = Database(db_path)
        yield db


def keywords_artifact(run_id="run-1", produced_at=PRODUCED_AT, **overrides):
    """A valid stage 0 artifact over the minimal corpus."""
    table = extract_keywords(INTENT_TEXTS, REALITY_TEXTS)
    fields = dict(
        run_id=run_id,
        stage_index=0,
        label="keywords",
        produced_at=produced_at,
        config_digest=PipelineConfig().digest(),
        payload={"table": table.to_dict(), "intent_sources": 1, "reality_sources": 1},
    )
    fields.update(overrides)
    return StageArtifact(**fields)


class TestSchemas:
    """Tests for artifact document validation."""

    def test_valid_document(self):
        """Test that a well-formed document passes."""
        validate_document(keywords_artifact().to_dict())

    def test_missing_payload_field(self):
        """Test that a payload missing a required field fails."""
        document = keywords_artifact().to_dict()
        del document["payload"]["table"]
        with pytest.raises(SchemaValidationError):
            validate_document(document)

    def test_label_must_match_index(self):
        """Test that a stage index carries its fixed label."""
        document = keywords_artifact().to_dict()
        document["label"] = "grade"
        with pytest.raises(SchemaValidationError) as info:
            validate_document(document)
        assert info.value.reason_code == "schema_validation"

    def test_bad_digest(self):
        """Test that the config digest must be a SHA-256 hex string."""
        document = keywords_artifact(config_digest="not-a-digest").to_dict()
        with pytest.raises(SchemaValidationError):
            validate_document(document)

    def test_negative_count(self):
        """Test that keyword counts cannot be negative."""
        document = keywords_artifact().to_dict()
        document["payload"]["table"]["records"][0]["intent_count"] = -1
        with pytest.raises(SchemaValidationError):
            validate_document(document)


class TestArtifactStore:
    """Tests for the append-only artifact store."""

    def test_write_and_read(self, temp_store):
        """Test writing and reading back an artifact."""
        artifact = keywords_artifact()
        stored = temp_store.write(artifact)
        assert stored.path.name == "0-keywords.20240501T120000123456Z.json"
        assert temp_store.read(stored.path) == artifact
        assert len(stored.sha256) == 64

    def test_never_overwrites(self, temp_store):
        """Test that writing an existing version raises."""
        temp_store.write(keywords_artifact())
        with pytest.raises(FileExistsError):
            temp_store.write(keywords_artifact())

    def test_new_version_alongside(self, temp_store):
        """Test that a later version is added next to the earlier one."""
        temp_store.write(keywords_artifact())
        later = keywords_artifact(produced_at=PRODUCED_AT + timedelta(seconds=1))
        temp_store.write(later)
        assert len(temp_store.list_versions("run-1", 0)) == 2
        assert temp_store.read_latest("run-1", 0).produced_at == later.produced_at

    def test_invalid_artifact_not_written(self, temp_store):
        """Test that a document failing validation leaves no file behind."""
        with pytest.raises(SchemaValidationError):
            temp_store.write(keywords_artifact(payload={}))
        run_dir = temp_store.run_dir("run-1")
        assert not run_dir.exists() or list(run_dir.iterdir()) == []

    def test_no_temp_files_left(self, temp_store):
        """Test that a successful write leaves only the final file."""
        temp_store.write(keywords_artifact())
        assert [path.name for path in temp_store.run_dir("run-1").iterdir()] == [
            "0-keywords.20240501T120000123456Z.json"
        ]

    def test_missing_artifact(self, temp_store):
        """Test that reading an absent stage raises SchemaValidationError."""
        with pytest.raises(SchemaValidationError) as info:
            temp_store.read_latest("run-1", 3)
        assert info.value.detail["missing_stage"] == 3

    def test_corrupt_file(self, temp_store):
        """Test that a corrupted artifact is rejected on read."""
        stored = temp_store.write(keywords_artifact())
        path = stored.path.with_name("0-keywords.20240601T000000000000Z.json")
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(SchemaValidationError):
            temp_store.read_latest("run-1", 0)

    def test_tampered_file(self, temp_store):
        """Test that a schema-breaking edit is caught on read."""
        stored = temp_store.write(keywords_artifact())
        document = json.loads(stored.path.read_text(encoding="utf-8"))
        document["stage_index"] = 9
        path = stored.path.with_name("0-keywords.20240601T000000000000Z.json")
        path.write_text(json.dumps(document), encoding="utf-8")
        with pytest.raises(SchemaValidationError):
            temp_store.read_latest("run-1", 0)

    def test_runs(self, temp_store):
        """Test run listing and completed stages."""
        temp_store.write(keywords_artifact(run_id="run-a"))
        temp_store.write(keywords_artifact(run_id="run-b"))
        assert temp_store.list_runs() == ["run-a", "run-b"]
        assert temp_store.latest_run_id() == "run-b"
        assert temp_store.completed_stages("run-a") == [0]

    def test_new_run_ids_sort_chronologically(self):
        """Test that run ids carry a sortable timestamp."""
        first = new_run_id()
        second = new_run_id()
        assert first.startswith("run-")
        assert first <= second


class TestDatabase:
    """Tests for the run ledger."""

    def test_init_creates_schema(self, temp_db):
        """Test that initialization creates the required tables."""
        assert temp_db.get_run_count() == 0
        assert temp_db.get_run_history() == []

    def test_record_and_finish_run(self, temp_db):
        """Test recording a run and its outcome."""
        temp_db.record_run("run-1", "a" * 64, directory="/repo")
        run = temp_db.get_run("run-1")
        assert run.status == "RUNNING"
        assert run.finished_at is None

        temp_db.finish_run("run-1", "COMPLETED", score=700.0, grade="B")
        run = temp_db.get_run("run-1")
        assert run.status == "COMPLETED"
        assert run.score == 700.0
        assert run.grade == "B"
        assert run.finished_at is not None

    def test_failed_run(self, temp_db):
        """Test that a failure records its stage and reason."""
        temp_db.record_run("run-1", "a" * 64)
        temp_db.finish_run("run-1", "FAILED", failed_stage=2, reason="orthogonality_violation")
        run = temp_db.get_run("run-1")
        assert run.failed_stage == 2
        assert run.reason == "orthogonality_violation"

    def test_resume_resets_outcome(self, temp_db):
        """Test that recording an existing run again clears its failure."""
        temp_db.record_run("run-1", "a" * 64)
        temp_db.finish_run("run-1", "FAILED", failed_stage=3, reason="balance_violation")
        temp_db.record_run("run-1", "a" * 64)
        run = temp_db.get_run("run-1")
        assert run.status == "RUNNING"
        assert run.failed_stage is None
        assert temp_db.get_run_count() == 1

    def test_artifacts(self, temp_db):
        """Test recording and listing artifacts of a run."""
        temp_db.record_run("run-1", "a" * 64)
        temp_db.record_artifact("run-1", 1, "taxonomy", "/runs/1.json", PRODUCED_AT, "f" * 64)
        temp_db.record_artifact("run-1", 0, "keywords", "/runs/0.json", PRODUCED_AT, "e" * 64)
        artifacts = temp_db.get_artifacts("run-1")
        assert [a.stage_index for a in artifacts] == [0, 1]
        assert artifacts[0].produced_at == PRODUCED_AT

    def test_unknown_run(self, temp_db):
        """Test that an unknown run id returns None."""
        assert temp_db.get_run("missing") is None

    def test_history_limit(self, temp_db):
        """Test that history honors the limit."""
        for index in range(5):
            temp_db.record_run(f"run-{index}", "a" * 64)
        assert len(temp_db.get_run_history(limit=3)) == 3
