"""
Provisioning plan — the fixed, ordered list of steps.

    1  Build Dependencies & Git      build-tools, git-available
    2  Homebrew                      homebrew, homebrew-shellenv:*
    3  GnuPG                         gnupg
    4  Password Store                password-store, password-store-update (A)
    5  GPG Key Import                gpg-key (strict predicate)
    6  Zsh                           zsh, default-shell (A)
    7  Essential Packages            linuxbrew-zsh-permissions (A, Linux), package:*
    8  SSH Keys                      ssh-directory, ssh-key:*, ssh-config, ssh-agent (A)
    9  Dotfiles                      dotfiles, dotfiles-update (A)
   10  Link Dotfiles                 link-dotfiles
   11  Homebrew Packages (Brewfile)  brewfile (A)

(A) = advisory: a failure is reported as a warning and the run continues.

The order encodes the dependencies: gpg before the password-store key
import, the key before ``pass``-backed SSH extraction, the SSH agent before
the SSH dotfiles clone, the clone before linking and the Brewfile.
"""

from __future__ import annotations

from dataclasses import dataclass

from devseed.core.models.step import Step
from devseed.core.provisioning.context import ProvisionContext
from devseed.core.provisioning.dotfiles import link_steps
from devseed.core.provisioning.identity import SecretGate, ssh_steps
from devseed.core.provisioning.repositories import dotfiles_steps, password_store_steps
from devseed.core.provisioning.toolchain import (
    brewfile_steps,
    build_dependency_steps,
    essential_package_steps,
    gnupg_steps,
    homebrew_steps,
    zsh_steps,
)

TOTAL_PHASES = 11


@dataclass
class ProvisionPlan:
    steps: list[Step]
    gate: SecretGate

    @property
    def phases(self) -> list[str]:
        """Phase names in order of first appearance."""
        seen: list[str] = []
        for step in self.steps:
            if step.phase not in seen:
                seen.append(step.phase)
        return seen

    def step(self, name: str) -> Step:
        for s in self.steps:
            if s.name == name:
                return s
        raise KeyError(name)


def build_plan(ctx: ProvisionContext) -> ProvisionPlan:
    """Assemble every step for ``ctx``'s platform, in execution order."""
    gate = SecretGate(ctx)
    steps: list[Step] = [
        *build_dependency_steps(ctx),
        *homebrew_steps(ctx),
        *gnupg_steps(ctx),
        *password_store_steps(ctx),
        gate.step(),
        *zsh_steps(ctx),
        *essential_package_steps(ctx),
        *ssh_steps(ctx),
        *dotfiles_steps(ctx),
        *link_steps(ctx),
        *brewfile_steps(ctx),
    ]
    return ProvisionPlan(steps=steps, gate=gate)
