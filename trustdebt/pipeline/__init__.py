"""
Pipeline module for Trust Debt.

This module sequences the stages, persists their artifacts and tracks each
run through its state machine.
"""

from trustdebt.pipeline.orchestrator import PipelineRunner, RunResult
from trustdebt.pipeline.stages import LAST_STAGE, STAGES, Stage, StageContext, get_stage, stage_index
from trustdebt.pipeline.state import InvalidTransition, PipelineState, PipelineStatus

__all__ = [
    "InvalidTransition",
    "LAST_STAGE",
    "PipelineRunner",
    "PipelineState",
    "PipelineStatus",
    "RunResult",
    "STAGES",
    "Stage",
    "StageContext",
    "get_stage",
    "stage_index",
]
