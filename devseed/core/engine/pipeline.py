"""
Step pipeline — fixed order, fail-fast, guaranteed cleanup.

    pending → running(i) → completed
                         → aborted(i, reason)

Each step is reconciled in order. A failed step aborts the run unless it
is marked advisory, in which case it is reported as a warning and the run
continues. Nothing is retried: re-running the whole pipeline re-evaluates
every predicate from live state, so completed work is skipped.

Cleanup callbacks (secret wipe, transient files, sudo keepalive) are run in
LIFO order exactly once, on completion, abort, or interrupt. A failing
callback is logged and never masks the original error.
"""

from __future__ import annotations

import logging
import signal
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from devseed.core.engine.reconcile import reconcile_step
from devseed.core.errors import EXIT_OK, EXIT_STEP_FAILED, Interrupted
from devseed.core.models.outcome import OutcomeStatus, StepOutcome
from devseed.core.models.step import Step

logger = logging.getLogger(__name__)


class PipelineState(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class PipelineReporter:
    """Progress callbacks. The default implementation does nothing."""

    def step_started(self, index: int, total: int, step: Step) -> None:
        pass

    def step_finished(self, index: int, total: int, outcome: StepOutcome) -> None:
        pass


@dataclass
class PipelineReport:
    """Ordered outcomes of one pipeline run."""

    outcomes: list[StepOutcome] = field(default_factory=list)
    state: PipelineState = PipelineState.PENDING
    total_steps: int = 0
    aborted_at: int | None = None
    reason: str | None = None

    @property
    def failed_outcome(self) -> StepOutcome | None:
        """The fatal failure that aborted the run, if any."""
        if self.aborted_at is None or self.aborted_at >= len(self.outcomes):
            return None
        return self.outcomes[self.aborted_at]

    @property
    def warnings(self) -> list[StepOutcome]:
        """Advisory failures."""
        return [o for o in self.outcomes if o.failed and o.advisory]

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def applied(self) -> int:
        return self.count(OutcomeStatus.APPLIED)

    @property
    def already_satisfied(self) -> int:
        return self.count(OutcomeStatus.ALREADY_SATISFIED)

    @property
    def would_apply(self) -> int:
        return self.count(OutcomeStatus.WOULD_APPLY)

    @property
    def ok(self) -> bool:
        return self.state == PipelineState.COMPLETED

    @property
    def exit_code(self) -> int:
        if self.ok:
            return EXIT_OK
        failed = self.failed_outcome
        if failed is not None and failed.exit_code is not None:
            return failed.exit_code
        return EXIT_STEP_FAILED

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "total_steps": self.total_steps,
            "applied": self.applied,
            "already_satisfied": self.already_satisfied,
            "would_apply": self.would_apply,
            "warnings": len(self.warnings),
            "aborted_at": self.aborted_at,
            "reason": self.reason,
            "outcomes": [o.model_dump(mode="json") for o in self.outcomes],
        }


class StepPipeline:
    """Runs steps in order and owns the cleanup stack."""

    def __init__(self, reporter: PipelineReporter | None = None):
        self._reporter = reporter or PipelineReporter()
        self._cleanups: list[tuple[str, Callable[[], Any]]] = []
        self.state = PipelineState.PENDING
        self.current_index: int | None = None

    # ── Cleanup ─────────────────────────────────────────────────

    def add_cleanup(self, label: str, callback: Callable[[], Any]) -> None:
        """Register ``callback`` to run when the pipeline finishes, however it finishes."""
        self._cleanups.append((label, callback))

    def run_cleanup(self) -> None:
        """Run registered callbacks in LIFO order. Each runs at most once."""
        while self._cleanups:
            label, callback = self._cleanups.pop()
            try:
                callback()
                logger.debug("Cleanup done: %s", label)
            except Exception:
                logger.warning("Cleanup %r failed", label, exc_info=True)

    # ── Run ─────────────────────────────────────────────────────

    def run(self, steps: list[Step]) -> PipelineReport:
        """Reconcile ``steps`` in order.

        Raises:
            Interrupted: On KeyboardInterrupt or a converted signal, after cleanup.
        """
        report = PipelineReport(total_steps=len(steps))
        total = len(steps)
        self.state = report.state = PipelineState.RUNNING

        try:
            for index, step in enumerate(steps):
                self.current_index = index
                self._reporter.step_started(index, total, step)
                outcome = reconcile_step(step)
                report.outcomes.append(outcome)
                self._reporter.step_finished(index, total, outcome)

                if outcome.fatal:
                    report.aborted_at = index
                    report.reason = outcome.reason
                    self.state = report.state = PipelineState.ABORTED
                    logger.error("Aborted at step %d/%d (%s): %s", index + 1, total, step.name, outcome.reason)
                    return report

            self.state = report.state = PipelineState.COMPLETED
            return report

        except (KeyboardInterrupt, Interrupted) as e:
            report.aborted_at = self.current_index
            report.reason = str(e) if isinstance(e, Interrupted) else "interrupted"
            self.state = report.state = PipelineState.ABORTED
            logger.warning("Interrupted during step %s", self.current_index)
            self.run_cleanup()
            if isinstance(e, Interrupted):
                raise
            raise Interrupted("Interrupted by user") from None

        finally:
            self.run_cleanup()


@contextmanager
def interrupt_on_signals(*signums: int) -> Iterator[None]:
    """Convert SIGTERM/SIGHUP into ``Interrupted`` for the duration of the block."""
    if not signums:
        signums = (signal.SIGTERM, signal.SIGHUP)

    def _raise(signum: int, frame: object) -> None:
        raise Interrupted(f"Received {signal.Signals(signum).name}")

    previous: dict[int, Any] = {}
    try:
        for signum in signums:
            previous[signum] = signal.signal(signum, _raise)
    except ValueError:
        # Not the main thread: leave handlers untouched.
        logger.debug("Cannot install signal handlers outside the main thread")
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)
