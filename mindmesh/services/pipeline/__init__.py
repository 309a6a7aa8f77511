"""Pipeline - the message-processing state machine.

PipelineOrchestrator runs one message through every stage in blocking or
streaming mode; build_pipeline wires it from environment configuration.
"""
from .background import BackgroundTasks
from .cancellation import CancellationToken, StageCancelled
from .config import PipelineConfig
from .factory import build_pipeline, ensure_pii_salt
from .orchestrator import (
    AGENT_NAME,
    AGENT_VERSION,
    PipelineOrchestrator,
    StageSink,
    crisis_only_recommendation,
)
from .state import PipelineState, Stage, StageEvent, StateTransitionError

__all__ = [
    "BackgroundTasks",
    "CancellationToken",
    "StageCancelled",
    "PipelineConfig",
    "build_pipeline",
    "ensure_pii_salt",
    "AGENT_NAME",
    "AGENT_VERSION",
    "PipelineOrchestrator",
    "StageSink",
    "crisis_only_recommendation",
    "PipelineState",
    "Stage",
    "StageEvent",
    "StateTransitionError",
]
