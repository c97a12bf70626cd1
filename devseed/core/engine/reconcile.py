"""
Step reconciliation — the idempotency primitive.

    predicate true   → already_satisfied (action never called)
    predicate false  → action → applied | failed(reason)
    dry mode         → action is the projector's recorder → would_apply

Predicate errors count as "not satisfied" (the action is attempted and
will surface the real problem), except for ``strict_predicate`` steps,
whose predicate error is itself a fatal failure.

Interrupts (``KeyboardInterrupt``, ``Interrupted``) are never converted
into outcomes: they propagate so the pipeline can clean up and exit.
"""

from __future__ import annotations

import logging
import time

from devseed.core.errors import BootstrapError, ExternalCapabilityFailed, Interrupted
from devseed.core.models.outcome import StepOutcome
from devseed.core.models.step import Step, StepMode

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _failure(step: Step, error: BootstrapError, start: float, *, advisory: bool) -> StepOutcome:
    return StepOutcome.failure(
        step.name,
        reason=str(error),
        phase=step.phase,
        error_kind=error.kind,
        exit_code=error.exit_code,
        advisory=advisory,
        duration_ms=_elapsed_ms(start),
    )


def evaluate_predicate(step: Step) -> bool:
    """Evaluate ``step.predicate`` honouring ``strict_predicate``.

    Raises:
        BootstrapError: The predicate failed and the step is strict.
    """
    try:
        return bool(step.predicate())
    except (KeyboardInterrupt, Interrupted):
        raise
    except BootstrapError:
        if step.strict_predicate:
            raise
        logger.debug("Predicate of %s raised, treating as unsatisfied", step.name, exc_info=True)
        return False
    except Exception as e:
        if step.strict_predicate:
            raise ExternalCapabilityFailed(f"{step.name}: state check failed: {e}") from e
        logger.debug("Predicate of %s raised, treating as unsatisfied", step.name, exc_info=True)
        return False


def reconcile_step(step: Step) -> StepOutcome:
    """Reconcile one step against live state. Produces exactly one outcome."""
    start = time.monotonic()
    dry = step.mode == StepMode.DRY

    # ── Predicate ───────────────────────────────────────────────
    if dry and step.network_predicate:
        satisfied = False
    else:
        try:
            satisfied = evaluate_predicate(step)
        except BootstrapError as e:
            logger.error("State check for %s failed: %s", step.name, e)
            return _failure(step, e, start, advisory=False)

    if satisfied:
        logger.debug("Already satisfied: %s", step.name)
        return StepOutcome.already_satisfied(
            step.name,
            phase=step.phase,
            advisory=step.advisory,
            duration_ms=_elapsed_ms(start),
        )

    # ── Action ──────────────────────────────────────────────────
    try:
        detail = step.action() or ""
    except (KeyboardInterrupt, Interrupted):
        raise
    except BootstrapError as e:
        log = logger.warning if step.advisory else logger.error
        log("Step %s failed: %s", step.name, e)
        return _failure(step, e, start, advisory=step.advisory)
    except Exception as e:
        logger.exception("Step %s raised unexpectedly", step.name)
        wrapped = ExternalCapabilityFailed(f"{step.name}: {e}")
        return _failure(step, wrapped, start, advisory=step.advisory)

    if dry:
        return StepOutcome.would_apply(
            step.name,
            intents=step.intents(),
            phase=step.phase,
            advisory=step.advisory,
            duration_ms=_elapsed_ms(start),
        )

    logger.info("Applied: %s%s", step.name, f" ({detail})" if detail else "")
    return StepOutcome.applied(
        step.name,
        detail=detail,
        phase=step.phase,
        advisory=step.advisory,
        duration_ms=_elapsed_ms(start),
    )
