"""
SQLite Run Ledger for Trust Debt

This module records every pipeline run and every artifact it wrote, so the
history of scores for a repository can be queried without opening the
artifact files.

Design Decisions:
    - SQLite for zero-config, file-based storage
    - The artifact files are authoritative; the ledger indexes them
    - Artifact rows carry the SHA-256 of the written bytes for auditing

Schema:
    runs: One row per run with its outcome, score and grade
    artifacts: One row per written artifact version
"""

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from trustdebt.models import utcnow


# Default database location
DEFAULT_DB_PATH = ".trustdebt/trustdebt.db"


@dataclass
class RunRecord:
    """
    Record of a pipeline run.

    Attributes:
        run_id: Run identifier (also the artifact directory name)
        started_at: When the run started
        finished_at: When it completed or failed, None while running
        status: PENDING / RUNNING / FAILED / COMPLETED
        directory: Corpus directory, if the run was started from one
        config_digest: Digest of the run's configuration
        failed_stage: Index of the failing stage, if any
        reason: Reason code of the failure, if any
        score: Calibrated score, once graded
        grade: Grade band, once graded
    """

    run_id: str
    started_at: datetime
    finished_at: Optional[datetime]
    status: str
    directory: Optional[str]
    config_digest: str
    failed_stage: Optional[int] = None
    reason: Optional[str] = None
    score: Optional[float] = None
    grade: Optional[str] = None


@dataclass
class ArtifactRecord:
    """Ledger entry of one written artifact."""

    run_id: str
    stage_index: int
    label: str
    path: str
    produced_at: datetime
    sha256: str


class Database:
    """
    SQLite run ledger.

    Usage:
        db = Database(".trustdebt/trustdebt.db")
        db.record_run(run_id, config_digest)
        db.record_artifact(run_id, 0, "keywords", path, produced_at, sha256)
        db.finish_run(run_id, "COMPLETED", score=120.5, grade="A")
        history = db.get_run_history()
    """

    def __init__(self, db_path: str | Path = DEFAULT_DB_PATH) -> None:
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file.
                     Parent directories will be created if needed.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections."""
        conn = sqlite3.connect(str(self._db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        """Initialize the database schema if not exists."""
        with self._connection() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS runs (
                    run_id TEXT PRIMARY KEY,
                    started_at TIMESTAMP NOT NULL,
                    finished_at TIMESTAMP,
                    status TEXT NOT NULL,
                    directory TEXT,
                    config_digest TEXT NOT NULL,
                    failed_stage INTEGER,
                    reason TEXT,
                    score REAL,
                    grade TEXT
                );

                CREATE TABLE IF NOT EXISTS artifacts (
                    run_id TEXT NOT NULL,
                    stage_index INTEGER NOT NULL,
                    label TEXT NOT NULL,
                    path TEXT PRIMARY KEY,
                    produced_at TIMESTAMP NOT NULL,
                    sha256 TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_artifacts_run
                    ON artifacts(run_id, stage_index);
            """)

    def record_run(
        self,
        run_id: str,
        config_digest: str,
        directory: Optional[str] = None,
        status: str = "RUNNING",
    ) -> None:
        """
        Record the start of a run.

        Resuming an existing run resets its outcome columns.
        """
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO runs (run_id, started_at, status, directory, config_digest)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(run_id) DO UPDATE SET
                    status = excluded.status,
                    finished_at = NULL,
                    failed_stage = NULL,
                    reason = NULL
                """,
                (run_id, utcnow().isoformat(), status, directory, config_digest),
            )

    def finish_run(
        self,
        run_id: str,
        status: str,
        failed_stage: Optional[int] = None,
        reason: Optional[str] = None,
        score: Optional[float] = None,
        grade: Optional[str] = None,
    ) -> None:
        """Record the outcome of a run."""
        with self._connection() as conn:
            conn.execute(
                """
                UPDATE runs
                SET finished_at = ?, status = ?, failed_stage = ?, reason = ?,
                    score = COALESCE(?, score), grade = COALESCE(?, grade)
                WHERE run_id = ?
                """,
                (utcnow().isoformat(), status, failed_stage, reason, score, grade, run_id),
            )

    def record_artifact(self, run_id: str, stage_index: int, label: str,
                        path: str | Path, produced_at: datetime, sha256: str) -> None:
        """Record one written artifact version."""
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO artifacts (run_id, stage_index, label, path, produced_at, sha256)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (run_id, stage_index, label, str(path), produced_at.isoformat(), sha256),
            )

    def get_run(self, run_id: str) -> Optional[RunRecord]:
        """Load a single run by id."""
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM runs WHERE run_id = ?", (run_id,)).fetchone()
            return None if row is None else _run_from_row(row)

    def get_run_history(self, limit: int = 10) -> list[RunRecord]:
        """
        Get recent runs.

        Args:
            limit: Maximum number of records to return

        Returns:
            List of RunRecords, most recent first
        """
        with self._connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM runs ORDER BY started_at DESC, run_id DESC LIMIT ?",
                (limit,),
            )
            return [_run_from_row(row) for row in cursor]

    def get_artifacts(self, run_id: str) -> list[ArtifactRecord]:
        """All artifacts of a run, by stage then version."""
        with self._connection() as conn:
            cursor = conn.execute(
                """
                SELECT run_id, stage_index, label, path, produced_at, sha256
                FROM artifacts
                WHERE run_id = ?
                ORDER BY stage_index, produced_at
                """,
                (run_id,),
            )
            return [
                ArtifactRecord(
                    run_id=row["run_id"],
                    stage_index=row["stage_index"],
                    label=row["label"],
                    path=row["path"],
                    produced_at=datetime.fromisoformat(row["produced_at"]),
                    sha256=row["sha256"],
                )
                for row in cursor
            ]

    def get_run_count(self) -> int:
        """Get the total number of recorded runs."""
        with self._connection() as conn:
            cursor = conn.execute("SELECT COUNT(*) FROM runs")
            return cursor.fetchone()[0]


def _run_from_row(row: sqlite3.Row) -> RunRecord:
    finished = row["finished_at"]
    return RunRecord(
        run_id=row["run_id"],
        started_at=datetime.fromisoformat(row["started_at"]),
        finished_at=datetime.fromisoformat(finished) if finished else None,
        status=row["status"],
        directory=row["directory"],
        config_digest=row["config_digest"],
        failed_stage=row["failed_stage"],
        reason=row["reason"],
        score=row["score"],
        grade=row["grade"],
    )
