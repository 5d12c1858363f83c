"""Target data models — what to verify and how to drive the page there.

A ``TargetSpec`` is pure data: an entry URL, an ordered tuple of
``InteractionStep`` records, and the ``CompletionSignal`` selectors the
outcome arbiter races after the last step. Per-site custom behaviour is
expressed as a ``custom`` step naming a registered action, never as code.

Template variables in step values (``{credentials.username}``,
``{credentials.password}``, ``{env.NAME}``) are resolved by the sequencer
at run time.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator

WaitUntil = Literal["commit", "domcontentloaded", "load", "networkidle"]


class StepType(str, Enum):
    """Action types an interaction step can perform."""

    NAVIGATE = "navigate"
    FILL = "fill"
    CLICK = "click"
    PRESS = "press"
    SUBMIT = "submit"
    CHECKPOINT = "checkpoint"
    PAUSE = "pause"
    SCROLL = "scroll"
    CUSTOM = "custom"
    SEARCH_FLOW = "search_flow"


class CheckKind(str, Enum):
    """What a target verifies. Drives verdict wording and step validation."""

    LOGIN = "login"
    REACHABILITY = "reachability"
    CONTENT = "content"
    FLOW = "flow"

    @property
    def label(self) -> str:
        return _CHECK_LABELS[self]


_CHECK_LABELS: dict[CheckKind, str] = {
    CheckKind.LOGIN: "Login",
    CheckKind.REACHABILITY: "Reachability check",
    CheckKind.CONTENT: "Content check",
    CheckKind.FLOW: "Flow",
}


class SignalKind(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class CompletionSignal(BaseModel):
    """A selector whose appearance indicates the outcome of a target."""

    model_config = ConfigDict(frozen=True)

    kind: SignalKind
    selector: str = Field(..., min_length=1)
    state: Literal["attached", "visible"] = "visible"


class Credentials(BaseModel):
    """Optional login payload referenced from step values via templates."""

    model_config = ConfigDict(frozen=True)

    username: str = ""
    password: SecretStr = SecretStr("")


# Fields that must be non-empty for each action.
_REQUIRED_FIELDS: dict[StepType, tuple[str, ...]] = {
    StepType.NAVIGATE: ("url",),
    StepType.FILL: ("selector",),
    StepType.CLICK: ("selector",),
    StepType.PRESS: ("key",),
    StepType.CHECKPOINT: ("name",),
    StepType.CUSTOM: ("name",),
    StepType.SEARCH_FLOW: ("url", "query"),
}


class InteractionStep(BaseModel):
    """Single step in a target's interaction sequence.

    Only the fields relevant to ``action`` are read; the rest keep their
    defaults. ``timeout_ms`` bounds the step's own waits.
    """

    model_config = ConfigDict(frozen=True)

    action: StepType
    selector: str = ""
    value: str = ""
    url: str = ""
    key: str = "Enter"
    name: str = ""
    description: str = ""

    timeout_ms: int = Field(default=30_000, ge=1)
    wait_until: WaitUntil = "networkidle"
    navigation_timeout_ms: int = Field(
        default=10_000,
        ge=1,
        description="Best-effort navigation wait after submit / search.",
    )

    # pause
    min_ms: int = Field(default=0, ge=0)
    max_ms: int = Field(default=0, ge=0)

    # scroll / search_flow
    pixels: int = 500
    scroll_count: int = Field(default=2, ge=0)

    # custom / search_flow: alternative selectors, first present wins
    selectors: tuple[str, ...] = ()

    # search_flow
    query: str = ""
    result_selector: str = "h3"
    link_selector: str = "#search a"
    max_results: int = Field(default=5, ge=0)

    @model_validator(mode="after")
    def _check_required_fields(self) -> "InteractionStep":
        missing = [f for f in _REQUIRED_FIELDS.get(self.action, ()) if not getattr(self, f)]
        if missing:
            raise ValueError(f"{self.action.value} step requires: {', '.join(missing)}")
        if self.action == StepType.PAUSE and self.min_ms > self.max_ms:
            raise ValueError(f"pause step has min_ms ({self.min_ms}) > max_ms ({self.max_ms})")
        return self


class TargetSpec(BaseModel):
    """Immutable description of one site/page to verify."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    url: str = Field(..., pattern=r"^https?://", description="Entry URL navigated to first.")
    check: CheckKind = CheckKind.LOGIN
    description: str = ""

    steps: tuple[InteractionStep, ...] = ()
    signals: tuple[CompletionSignal, ...] = Field(..., min_length=1)

    signal_timeout_ms: int = Field(default=10_000, ge=1)
    navigation_timeout_ms: int = Field(default=60_000, ge=1)
    wait_until: WaitUntil = "networkidle"

    credentials: Credentials | None = None
    enabled: bool = True
    tags: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _check_signals_and_steps(self) -> "TargetSpec":
        if not any(s.kind == SignalKind.SUCCESS for s in self.signals):
            raise ValueError("at least one success signal is required")
        if not self.steps and self.check != CheckKind.REACHABILITY:
            raise ValueError(
                f"an empty step sequence is only valid for reachability checks (check={self.check.value})"
            )
        return self

    @property
    def success_signal(self) -> CompletionSignal:
        return next(s for s in self.signals if s.kind == SignalKind.SUCCESS)

    @property
    def failure_signal(self) -> CompletionSignal | None:
        return next((s for s in self.signals if s.kind == SignalKind.FAILURE), None)

    @property
    def slug(self) -> str:
        """Filename-safe form of ``name`` used for artifact names."""
        return slugify(self.name)


def slugify(text: str) -> str:
    """Lower-case *text* and collapse anything but ``[a-z0-9._-]`` into dashes."""
    slug = re.sub(r"[^a-z0-9._-]+", "-", text.strip().lower())
    return slug.strip("-") or "artifact"
