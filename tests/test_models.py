"""
Tests for core models and the error taxonomy.
"""

from __future__ import annotations

from pathlib import Path

from devseed.core.errors import (
    EXIT_AUTH_FAILED,
    EXIT_EMPTY_INPUT,
    EXIT_INTERRUPTED,
    EXIT_PRECONDITION,
    EXIT_STEP_FAILED,
    EXIT_UNSUPPORTED,
    AuthenticationFailed,
    BootstrapError,
    EmptyInput,
    EnvironmentUnsupported,
    ExternalCapabilityFailed,
    Interrupted,
    PreconditionMissing,
)
from devseed.core.models import LinkClassification, LinkEntry, LinkZone, OutcomeStatus, Step, StepOutcome


class TestErrors:
    def test_exit_codes(self):
        assert PreconditionMissing().exit_code == EXIT_PRECONDITION
        assert AuthenticationFailed().exit_code == EXIT_AUTH_FAILED
        assert ExternalCapabilityFailed().exit_code == EXIT_STEP_FAILED
        assert EnvironmentUnsupported().exit_code == EXIT_UNSUPPORTED
        assert EmptyInput().exit_code == EXIT_EMPTY_INPUT
        assert Interrupted().exit_code == EXIT_INTERRUPTED

    def test_message_or_kind(self):
        assert str(PreconditionMissing("no Brewfile")) == "no Brewfile"
        assert str(Interrupted()) == "interrupted"
        assert isinstance(EmptyInput(), BootstrapError)


class TestStepOutcome:
    def test_fatal_only_when_not_advisory(self):
        assert StepOutcome.failure("a", reason="x").fatal
        assert not StepOutcome.failure("a", reason="x", advisory=True).fatal
        assert not StepOutcome.applied("a").fatal

    def test_ok(self):
        assert StepOutcome.already_satisfied("a").ok
        assert StepOutcome.would_apply("a", intents=["x"]).status == OutcomeStatus.WOULD_APPLY
        assert not StepOutcome.failure("a", reason="x").ok

    def test_serialises(self):
        d = StepOutcome.applied("zsh", detail="installed via apt", phase="Zsh").model_dump(mode="json")
        assert d["status"] == "applied"
        assert d["detail"] == "installed via apt"


class TestStep:
    def test_repr_flags(self):
        step = Step(name="gpg-key", predicate=lambda: True, action=lambda: None, strict_predicate=True)
        assert repr(step) == "<Step 'gpg-key' [strict]>"


class TestLinkEntry:
    def _entry(self, classification, zone=LinkZone.HOME, **kw):
        return LinkEntry(
            source=Path("/h/.dotfiles/.zshrc"),
            dest=Path("/h/.zshrc"),
            zone=zone,
            classification=classification,
            **kw,
        )

    def test_needs_change(self):
        assert not self._entry(LinkClassification.CORRECT_LINK).needs_change
        assert self._entry(LinkClassification.MISSING).needs_change
        assert self._entry(LinkClassification.FOREIGN_EXISTING).needs_change

    def test_labels(self):
        assert self._entry(LinkClassification.MISSING).label == ".zshrc"
        assert self._entry(LinkClassification.MISSING, zone=LinkZone.CONFIG).label == ".config/.zshrc"

    def test_stale_intent(self):
        entry = self._entry(LinkClassification.MISSING, replaced_link="/old/.zshrc")
        assert entry.intent() == "Replace stale link /h/.zshrc (→ /old/.zshrc) with symlink .zshrc"
