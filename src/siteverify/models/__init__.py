"""Data models: target specifications and verification results."""

from siteverify.models.results import ArtifactRef, SignalOutcome, SignalRaceResult, VerificationResult
from siteverify.models.target import (
    CheckKind,
    CompletionSignal,
    Credentials,
    InteractionStep,
    SignalKind,
    StepType,
    TargetSpec,
)

__all__ = [
    "ArtifactRef",
    "CheckKind",
    "CompletionSignal",
    "Credentials",
    "InteractionStep",
    "SignalKind",
    "SignalOutcome",
    "SignalRaceResult",
    "StepType",
    "TargetSpec",
    "VerificationResult",
]
