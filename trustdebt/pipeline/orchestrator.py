"""
Pipeline Orchestrator for Trust Debt

This module drives the six stages in order, persists every stage's
artifact, and reports exactly where and why a run failed.

    0 keywords -> 1 taxonomy -> 2 orthogonality -> 3 balance -> 4 matrix -> 5 grade

Design Decisions:
    - No pipeline state outlives a stage except the artifacts: each stage
      receives the payload the previous stage wrote
    - Stage k+1 starts only after artifact k has been validated and written
    - A fresh run gets a new run id and so a new artifact set; resuming a
      run from stage k reads that run's artifact k-1
    - Only TrustDebtError is turned into a FAILED state; anything else is a
      bug: the ledger marks the run FAILED (internal_error) and it propagates
    - Cancellation is cooperative: stages call a checkpoint between
      sub-steps, and nothing is written for the stage in progress. The request
      is cleared when the run it stopped ends
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from trustdebt.config import PipelineConfig
from trustdebt.errors import RunCancelled, TrustDebtError
from trustdebt.grading import GradeReport
from trustdebt.logging_config import get_stage_logger
from trustdebt.models import Corpus, utcnow
from trustdebt.pipeline.stages import LAST_STAGE, StageContext, get_stage
from trustdebt.pipeline.state import PipelineState, PipelineStatus
from trustdebt.storage import ArtifactStore, Database, StageArtifact, StoredArtifact, new_run_id


logger = logging.getLogger(__name__)

# Ledger reason for a run aborted by an exception outside TrustDebtError
INTERNAL_ERROR = "internal_error"


@dataclass
class RunResult:
    """
    Outcome of a pipeline invocation.

    Attributes:
        run_id: Run the artifacts belong to
        state: Final state of the state machine
        artifacts: Artifacts written by this invocation, in stage order
        timings: Stage label -> seconds spent
        error: The failure, if the run failed
    """

    run_id: str
    state: PipelineState
    artifacts: list[StoredArtifact] = field(default_factory=list)
    timings: dict[str, float] = field(default_factory=dict)
    error: Optional[TrustDebtError] = None

    @property
    def status(self) -> PipelineStatus:
        return self.state.status

    @property
    def succeeded(self) -> bool:
        return self.state.status is not PipelineStatus.FAILED

    @property
    def grade_report(self) -> Optional[GradeReport]:
        """The grade report, if this invocation ran the grading stage."""
        for stored in self.artifacts:
            if stored.artifact.label == "grade":
                return GradeReport.from_dict(stored.artifact.payload)
        return None


class PipelineRunner:
    """
    Runs pipeline stages against an artifact store.

    Usage:
        runner = PipelineRunner(ArtifactStore(".trustdebt/runs"), config)
        result = runner.run(corpus)
        if not result.succeeded:
            print(result.state.stage_index, result.error.reason_code)
    """

    def __init__(
        self,
        store: ArtifactStore,
        config: Optional[PipelineConfig] = None,
        ledger: Optional[Database] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.store = store
        self.config = config or PipelineConfig()
        self.ledger = ledger
        self.cancel_event = cancel_event or threading.Event()

    def cancel(self) -> None:
        """Request cancellation of the run in progress, or of the next run if idle."""
        self.cancel_event.set()

    def _checkpoint(self) -> None:
        if self.cancel_event.is_set():
            raise RunCancelled("Run cancelled")

    def run(
        self,
        corpus: Optional[Corpus] = None,
        from_stage: int = 0,
        run_id: Optional[str] = None,
        directory: Optional[str] = None,
    ) -> RunResult:
        """
        Run every stage from from_stage through completion.

        Args:
            corpus: Required when starting at stage 0
            from_stage: First stage to run
            run_id: Run to resume; a new run id is generated if None
            directory: Corpus directory, recorded in the ledger

        Returns:
            RunResult in state COMPLETED or FAILED
        """
        return self._execute(corpus, from_stage, LAST_STAGE, run_id, directory)

    def run_stage(
        self,
        index: int,
        run_id: Optional[str] = None,
        corpus: Optional[Corpus] = None,
        directory: Optional[str] = None,
    ) -> RunResult:
        """
        Run exactly one stage.

        Returns:
            RunResult in state RUNNING(index + 1) on success (COMPLETED for
            the last stage), or FAILED
        """
        return self._execute(corpus, index, index, run_id, directory)

    def _execute(
        self,
        corpus: Optional[Corpus],
        first: int,
        last: int,
        run_id: Optional[str],
        directory: Optional[str],
    ) -> RunResult:
        get_stage(first)
        if first == 0 and corpus is None:
            raise ValueError("Stage 0 needs a corpus")
        if first > 0 and run_id is None:
            raise ValueError(f"Starting at stage {first} needs the run id holding artifact {first - 1}")

        run_id = run_id or new_run_id()
        digest = self.config.digest()
        context = StageContext(config=self.config, checkpoint=self._checkpoint)
        state = PipelineState(last_stage=LAST_STAGE).start(first)
        result = RunResult(run_id=run_id, state=state)
        if self.ledger is not None:
            self.ledger.record_run(run_id, digest, directory=directory)
        logger.info("Run %s: stages %d..%d", run_id, first, last)

        index = first
        try:
            prior: Any = corpus if first == 0 else self.store.read_latest(run_id, first - 1).payload
            while True:
                stage = get_stage(index)
                stage_logger = get_stage_logger(stage.label)
                self._checkpoint()
                stage_logger.info("Stage %d (%s) started", index, stage.label)
                started = time.perf_counter()

                payload = stage.function(prior, context)
                self._checkpoint()
                stored = self.store.write(
                    StageArtifact(
                        run_id=run_id,
                        stage_index=index,
                        label=stage.label,
                        produced_at=utcnow(),
                        config_digest=digest,
                        payload=payload,
                    )
                )
                result.artifacts.append(stored)
                if self.ledger is not None:
                    self.ledger.record_artifact(
                        run_id, index, stage.label, stored.path,
                        stored.artifact.produced_at, stored.sha256,
                    )
                result.timings[stage.label] = time.perf_counter() - started
                stage_logger.info(
                    "Stage %d (%s) finished in %.3fs", index, stage.label, result.timings[stage.label],
                )

                if index == LAST_STAGE:
                    state = state.complete()
                    break
                state = state.advance()
                if index == last:
                    break
                prior = payload
                index += 1
        except TrustDebtError as exc:
            exc.at_stage(index)
            state = state.fail(exc.reason_code)
            result.error = exc
            logger.error("Run %s failed at stage %d: %s (%s)", run_id, index, exc.message, exc.reason_code)
        except Exception:
            logger.exception("Run %s aborted at stage %d", run_id, index)
            if self.ledger is not None:
                self.ledger.finish_run(
                    run_id, PipelineStatus.FAILED.value, failed_stage=index, reason=INTERNAL_ERROR,
                )
            raise
        finally:
            # A cancellation request applies to the run in progress only.
            self.cancel_event.clear()

        result.state = state
        self._finish(result)
        return result

    def _finish(self, result: RunResult) -> None:
        if self.ledger is None:
            return
        report = result.grade_report
        self.ledger.finish_run(
            result.run_id,
            result.status.value,
            failed_stage=result.state.stage_index if result.error else None,
            reason=result.state.reason,
            score=report.calibrated_score if report else None,
            grade=report.grade.value if report else None,
        )
