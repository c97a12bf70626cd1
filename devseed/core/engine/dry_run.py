"""
Dry-run projector — same plan, no mutations.

``project(step)`` keeps the step's predicate (so the report reflects the
real machine) and swaps its action for a recorder that only stores the
step's intent lines. Predicates that need the network are not evaluated at
all under dry-run; those steps are reported as would-apply.
"""

from __future__ import annotations

import dataclasses
import logging

from devseed.core.models.step import Step, StepMode

logger = logging.getLogger(__name__)


class DryRunProjector:
    """Projects steps into their dry-run form and keeps a journal of intents."""

    def __init__(self) -> None:
        self.journal: list[tuple[str, str]] = []

    def project(self, step: Step) -> Step:
        def record() -> str | None:
            for line in step.intents():
                self.journal.append((step.name, line))
                logger.debug("Would: %s", line)
            return None

        return dataclasses.replace(step, action=record, mode=StepMode.DRY)

    def project_all(self, steps: list[Step]) -> list[Step]:
        return [self.project(s) for s in steps]

    def intents_for(self, step_name: str) -> list[str]:
        return [line for name, line in self.journal if name == step_name]
