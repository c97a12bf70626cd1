"""
Repository steps — clone the password store and the dotfiles, keep them fresh.

Each repository gets two steps:

    <name>         clone if the directory is not a working copy (fatal);
                   a non-repository directory in the way is moved aside
                   to ``<dir>.backup.<unix-ts>`` first
    <name>-update  ``pull --ff-only`` when behind upstream (advisory; the
                   freshness check needs the network, so dry-run skips it)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from devseed.core.models.machine import RepositorySpec
from devseed.core.models.step import Step
from devseed.core.provisioning.context import ProvisionContext

logger = logging.getLogger(__name__)

PHASE_PASSWORD_STORE = "Password Store"
PHASE_DOTFILES = "Dotfiles"


def move_aside(path: Path, timestamp: float) -> Path:
    """Rename ``path`` to ``<name>.backup.<ts>`` (``-N`` on collision)."""
    base = f"{path.name}.backup.{int(timestamp)}"
    target = path.with_name(base)
    n = 1
    while os.path.lexists(target):
        target = path.with_name(f"{base}-{n}")
        n += 1
    path.rename(target)
    return target


def repository_steps(ctx: ProvisionContext, spec: RepositorySpec, phase: str) -> list[Step]:
    vcs = ctx.caps.vcs
    path = spec.local_path(ctx.home)
    shown = ctx.display(path)

    def clone() -> str:
        detail = ""
        if os.path.lexists(path) and not vcs.is_repository(path):
            backup = move_aside(path, ctx.clock())
            logger.warning("%s exists but is not a git repo, moved to %s", shown, backup.name)
            detail = f", previous directory moved to {backup.name}"
        vcs.clone(spec.url, path).raise_for_status()
        return f"cloned into {shown}{detail}"

    def clone_intents() -> list[str]:
        lines = []
        if os.path.lexists(path) and not vcs.is_repository(path):
            lines.append(f"Move {shown} to {path.name}.backup.<timestamp> (not a git repo)")
        lines.append(f"git clone {spec.url} {shown}")
        return lines

    def update() -> str:
        vcs.update(path).raise_for_status()
        return f"updated {shown}"

    return [
        Step(
            name=spec.name,
            phase=phase,
            description=f"git clone {spec.url} {shown}",
            predicate=lambda: vcs.is_repository(path),
            action=clone,
            describe=clone_intents,
        ),
        Step(
            name=f"{spec.name}-update",
            phase=phase,
            description=f"git pull --ff-only in {shown}",
            predicate=lambda: vcs.is_current(path),
            action=update,
            advisory=True,
            network_predicate=True,
        ),
    ]


def password_store_steps(ctx: ProvisionContext) -> list[Step]:
    return repository_steps(ctx, ctx.config.seed, PHASE_PASSWORD_STORE)


def dotfiles_steps(ctx: ProvisionContext) -> list[Step]:
    return repository_steps(ctx, ctx.config.dotfiles, PHASE_DOTFILES)
