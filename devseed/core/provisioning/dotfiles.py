"""
Dotfile link step — run the LinkReconciler over ``~/.dotfiles``.
"""

from __future__ import annotations

import logging

from devseed.core.errors import PreconditionMissing
from devseed.core.models.link import LinkAction
from devseed.core.models.step import Step
from devseed.core.provisioning.context import ProvisionContext
from devseed.core.services.link_reconciler import LinkReconciler

logger = logging.getLogger(__name__)

PHASE_LINKS = "Link Dotfiles"


def link_reconciler(ctx: ProvisionContext) -> LinkReconciler:
    return LinkReconciler(
        ctx.dotfiles_dir,
        ctx.home,
        nested_zone=ctx.config.links.nested_zone,
        excluded=ctx.config.links.exclude,
        clock=ctx.clock,
    )


def link_steps(ctx: ProvisionContext) -> list[Step]:
    reconciler = link_reconciler(ctx)
    source = ctx.dotfiles_dir
    nested = ctx.config.links.nested_zone

    def satisfied() -> bool:
        if not source.is_dir():
            return False
        return not any(entry.needs_change for entry in reconciler.plan())

    def link() -> str:
        if not source.is_dir():
            raise PreconditionMissing(f"Dotfiles directory not found at {ctx.display(source)}")
        entries = reconciler.reconcile()
        linked = sum(1 for e in entries if e.action == LinkAction.LINKED)
        backed_up = sum(1 for e in entries if e.action == LinkAction.BACKED_UP_AND_LINKED)
        return f"{linked} linked, {backed_up} backed up and linked"

    def intents() -> list[str]:
        if not source.is_dir():
            return [
                f"mkdir -p ~/{nested}",
                f"Symlink {ctx.display(source)}/{nested}/* → ~/{nested}/",
                f"Symlink all top-level dotfiles (.*) from {ctx.display(source)} to ~/",
                f"(Excluding {', '.join(sorted(ctx.config.links.exclude))})",
            ]
        return [entry.intent() for entry in reconciler.plan() if entry.needs_change]

    return [
        Step(
            name="link-dotfiles",
            phase=PHASE_LINKS,
            description=f"Symlink {ctx.display(source)} into ~",
            predicate=satisfied,
            action=link,
            describe=intents,
        )
    ]
