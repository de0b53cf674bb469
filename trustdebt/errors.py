"""
Typed failures for the Trust Debt pipeline.

Every failure a stage can report is a subclass of TrustDebtError. Each one
carries a machine-readable reason code, the index of the stage that raised
it (filled in by the orchestrator when the raising code does not know it),
and a JSON-serializable detail mapping.

Recoverable conditions (correlation and balance violations) are retried
locally by their validators before they surface here; by the time one of
these exceptions reaches the orchestrator the run has failed.
"""

from typing import Any, Optional


class TrustDebtError(Exception):
    """
    Base class for all typed pipeline failures.

    Attributes:
        reason_code: Stable machine-readable identifier of the failure kind
        stage_index: Index of the failing stage, None until known
        detail: Extra structured information (offending pair, measured value, ...)
        recoverable: Whether the condition is retried locally before escalating
    """

    reason_code = "error"
    recoverable = False

    def __init__(
        self,
        message: str,
        *,
        stage_index: Optional[int] = None,
        detail: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage_index = stage_index
        self.detail = detail or {}

    def at_stage(self, stage_index: int) -> "TrustDebtError":
        """Attach the failing stage index if the raiser did not know it."""
        if self.stage_index is None:
            self.stage_index = stage_index
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the run ledger and CLI output."""
        return {
            "reason_code": self.reason_code,
            "stage_index": self.stage_index,
            "message": self.message,
            "detail": self.detail,
        }


class EmptyCorpusError(TrustDebtError):
    """Both corpora produced zero tokens."""

    reason_code = "empty_corpus"


class DegenerateCategoryError(TrustDebtError):
    """A category stayed empty after the single allowed re-clustering."""

    reason_code = "degenerate_category"


class OrthogonalityViolation(TrustDebtError):
    """A sibling pair stayed correlated above the bound after all repair passes."""

    reason_code = "orthogonality_violation"
    recoverable = True


class BalanceViolation(TrustDebtError):
    """A sibling group's unit spread could not be brought under the CV bound."""

    reason_code = "balance_violation"
    recoverable = True


class DimensionMismatchError(TrustDebtError):
    """The taxonomy handed to the matrix builder changed size since validation."""

    reason_code = "dimension_mismatch"


class SchemaValidationError(TrustDebtError):
    """An artifact document does not match its stage schema, or is missing."""

    reason_code = "schema_validation"


class RunCancelled(TrustDebtError):
    """The run was aborted while a stage was in progress."""

    reason_code = "cancelled"


class DegenerateCategoryWarning(UserWarning):
    """Emitted when clustering leaves a category with no tokens."""
