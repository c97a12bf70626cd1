"""
Step model — the unit of reconciliation.

A Step pairs a side-effect-free predicate ("is this already true?") with
an action ("make it true"). The engine only calls the action when the
predicate is false, so every step is safe to run any number of times.

Contract for authors of steps:
    - ``predicate`` must be cheap and must not mutate anything.
    - ``action`` returns an optional one-line detail, or raises a
      ``BootstrapError`` subclass on failure.
    - ``describe`` returns what the action *would* change; it is what the
      dry-run projector records instead of calling ``action``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Callable


class StepMode(StrEnum):
    """Whether a step mutates state or only records intent."""

    REAL = "real"
    DRY = "dry"


def _no_intents() -> list[str]:
    return []


@dataclass
class Step:
    """One idempotent "ensure X" operation."""

    name: str
    predicate: Callable[[], bool]
    action: Callable[[], str | None]
    phase: str = ""
    description: str = ""
    mode: StepMode = StepMode.REAL

    # Failure is logged and downgraded to a warning instead of aborting.
    advisory: bool = False
    # Predicate errors abort the run instead of counting as "not satisfied".
    strict_predicate: bool = False
    # Predicate talks to the network; skipped (assumed unsatisfied) in dry-run.
    network_predicate: bool = False

    describe: Callable[[], list[str]] = field(default=_no_intents)

    def intents(self) -> list[str]:
        """Human-readable list of what the action would change."""
        lines = self.describe()
        if lines:
            return lines
        return [self.description or self.name]

    def __repr__(self) -> str:
        flags = []
        if self.advisory:
            flags.append("advisory")
        if self.strict_predicate:
            flags.append("strict")
        if self.mode == StepMode.DRY:
            flags.append("dry")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        return f"<Step {self.name!r}{suffix}>"
