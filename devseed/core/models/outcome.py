"""
StepOutcome — the uniform record of what happened to one step.

Produced exactly once per step per pipeline run. Outcomes live only in
memory for the duration of the run: the machine's filesystem and installed
software are the only persisted record, so re-running always starts from
live state.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class OutcomeStatus(StrEnum):
    """Possible results of reconciling one step."""

    ALREADY_SATISFIED = "already_satisfied"
    APPLIED = "applied"
    WOULD_APPLY = "would_apply"
    FAILED = "failed"


class StepOutcome(BaseModel):
    """Result of reconciling one step."""

    step: str
    phase: str = ""
    status: OutcomeStatus

    detail: str = ""                 # optional line returned by the action
    reason: str | None = None        # failure message
    error_kind: str | None = None    # BootstrapError.kind of the failure
    exit_code: int | None = None     # BootstrapError.exit_code of the failure
    advisory: bool = False
    intents: list[str] = Field(default_factory=list)
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        """True unless the step failed."""
        return self.status != OutcomeStatus.FAILED

    @property
    def failed(self) -> bool:
        return self.status == OutcomeStatus.FAILED

    @property
    def fatal(self) -> bool:
        """A failure that aborts the pipeline."""
        return self.failed and not self.advisory

    @classmethod
    def already_satisfied(cls, step: str, **kwargs: Any) -> StepOutcome:
        return cls(step=step, status=OutcomeStatus.ALREADY_SATISFIED, **kwargs)

    @classmethod
    def applied(cls, step: str, detail: str = "", **kwargs: Any) -> StepOutcome:
        return cls(step=step, status=OutcomeStatus.APPLIED, detail=detail, **kwargs)

    @classmethod
    def would_apply(cls, step: str, intents: list[str], **kwargs: Any) -> StepOutcome:
        return cls(step=step, status=OutcomeStatus.WOULD_APPLY, intents=intents, **kwargs)

    @classmethod
    def failure(cls, step: str, reason: str, **kwargs: Any) -> StepOutcome:
        return cls(step=step, status=OutcomeStatus.FAILED, reason=reason, **kwargs)
