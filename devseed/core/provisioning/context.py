"""
Provisioning context — everything a plan step may consult, resolved once.

Built at startup by the provision use case and passed explicitly to every
step builder. Nothing in the plan reads the process environment or looks
up a capability globally.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from devseed.adapters.registry import Capabilities
from devseed.core.models.machine import MachineConfig
from devseed.core.models.platform import PlatformInfo
from devseed.core.services.platform_probe import current_login_shell
from devseed.core.services.secret_lifecycle import PromptSource, SecretLifecycle


@dataclass
class ProvisionContext:
    config: MachineConfig
    platform: PlatformInfo
    home: Path
    caps: Capabilities
    lifecycle: SecretLifecycle
    prompt: PromptSource
    dry_run: bool = False
    etc_shells: Path = Path("/etc/shells")
    login_shell: Callable[[], str] = field(default=current_login_shell)
    clock: Callable[[], float] = time.time

    # ── Well-known paths ────────────────────────────────────────

    @property
    def password_store_dir(self) -> Path:
        return self.config.seed.local_path(self.home)

    @property
    def dotfiles_dir(self) -> Path:
        return self.config.dotfiles.local_path(self.home)

    @property
    def ssh_dir(self) -> Path:
        return self.home / self.config.ssh.directory

    @property
    def encrypted_key(self) -> Path:
        return self.config.encrypted_key_path(self.home)

    @property
    def brewfile(self) -> Path:
        return self.dotfiles_dir / self.config.brewfile.for_os(self.platform.os)

    def which(self, name: str) -> str | None:
        return self.caps.env.which(name)

    def display(self, path: Path) -> str:
        """``~``-relative form of ``path`` for messages."""
        try:
            return "~/" + str(path.relative_to(self.home))
        except ValueError:
            return str(path)
