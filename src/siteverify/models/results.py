"""Result models for verification runs.

Lightweight data classes capturing checkpoint artifacts, the outcome of a
signal race, and the final per-target ``VerificationResult``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class ArtifactRef:
    """A stored checkpoint snapshot."""

    path: str
    name: str
    captured_at: datetime


class SignalOutcome(str, Enum):
    """Tag of a ``SignalRaceResult``."""

    SUCCESS_OBSERVED = "success_observed"
    FAILURE_OBSERVED = "failure_observed"
    INCONCLUSIVE = "inconclusive"


@dataclass(frozen=True)
class SignalRaceResult:
    """Verdict of the outcome arbiter.

    Build through the classmethods so every instance carries an outcome
    and a message. ``fallback`` is ``True`` when the verdict came from the
    post-timeout poll rather than an observed signal.
    """

    outcome: SignalOutcome
    message: str
    fallback: bool = False

    @classmethod
    def success(cls, message: str, *, fallback: bool = False) -> "SignalRaceResult":
        return cls(SignalOutcome.SUCCESS_OBSERVED, message, fallback)

    @classmethod
    def failure(cls, message: str) -> "SignalRaceResult":
        return cls(SignalOutcome.FAILURE_OBSERVED, message)

    @classmethod
    def inconclusive(cls, reason: str, *, fallback: bool = False) -> "SignalRaceResult":
        return cls(SignalOutcome.INCONCLUSIVE, reason, fallback)

    @property
    def succeeded(self) -> bool:
        return self.outcome == SignalOutcome.SUCCESS_OBSERVED


@dataclass(frozen=True)
class VerificationResult:
    """Final, immutable outcome of one target."""

    target: str
    success: bool
    message: str
    artifact_path: str | None = None
    artifacts: tuple[str, ...] = ()
    session_url: str = ""
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def duration_sec(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def status_line(self) -> str:
        return f"{self.target}: {'PASSED' if self.success else 'FAILED'} - {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict suitable for JSON output."""
        return {
            "target": self.target,
            "success": self.success,
            "message": self.message,
            "artifact_path": self.artifact_path,
            "artifacts": list(self.artifacts),
            "session_url": self.session_url,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "duration_sec": round(self.duration_sec, 3),
        }

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, default=str)
