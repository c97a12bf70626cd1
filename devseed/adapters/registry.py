"""
Capability registry — resolves the concrete adapters for this machine.

The platform probe runs once at startup; ``build_capabilities`` then picks
exactly one implementation per capability and wires them all to a single
shared CommandEnvironment. The core receives the resulting ``Capabilities``
container and never looks anything up globally.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from devseed.adapters.base import (
    BuildToolchain,
    DecryptOracle,
    Homebrew,
    PackageManager,
    PasswordStore,
    PrivilegeHelper,
    SshAgent,
    TrustImporter,
    VCSClient,
)
from devseed.adapters.crypto.gpg import GnuPG
from devseed.adapters.crypto.pass_store import PassCli
from devseed.adapters.packages.apt import AptPackageManager
from devseed.adapters.packages.brew import HomebrewPackageManager
from devseed.adapters.packages.dnf import DnfPackageManager
from devseed.adapters.packages.pacman import PacmanPackageManager
from devseed.adapters.packages.xcode import XcodeCommandLineTools
from devseed.adapters.shell.command import CommandEnvironment
from devseed.adapters.shell.sudo import SudoHelper
from devseed.adapters.ssh.openssh import OpenSshAgent
from devseed.adapters.vcs.git import GitClient
from devseed.core.errors import EnvironmentUnsupported
from devseed.core.models.platform import PackageManagerKind, PlatformInfo

logger = logging.getLogger(__name__)

_SYSTEM_MANAGERS = {
    PackageManagerKind.APT: AptPackageManager,
    PackageManagerKind.DNF: DnfPackageManager,
    PackageManagerKind.PACMAN: PacmanPackageManager,
}


@dataclass
class Capabilities:
    """Every external collaborator the provisioning plan consumes."""

    toolchain: BuildToolchain
    homebrew: Homebrew
    vcs: VCSClient
    decrypt_oracle: DecryptOracle
    trust_importer: TrustImporter
    password_store: PasswordStore
    ssh_agent: SshAgent
    privilege: PrivilegeHelper
    env: CommandEnvironment = field(default_factory=CommandEnvironment)
    # Native manager for the few packages installed outside Homebrew (Linux only).
    native: PackageManager | None = None

    def status(self) -> dict[str, dict[str, Any]]:
        """Availability of each resolved capability, for ``--debug`` output."""
        result: dict[str, dict[str, Any]] = {}
        for label in ("toolchain", "homebrew", "vcs", "decrypt_oracle", "password_store", "ssh_agent", "privilege"):
            cap = getattr(self, label)
            try:
                available = cap.is_available()
            except OSError:
                available = False
            result[label] = {"name": cap.name, "available": available, "type": cap.__class__.__name__}
        return result


def build_capabilities(
    platform: PlatformInfo,
    home: Path,
    env: CommandEnvironment | None = None,
    wait_for_user: Callable[[str], None] | None = None,
) -> Capabilities:
    """Resolve one implementation per capability for ``platform``.

    Args:
        platform: Result of the startup probe.
        home: The user's home directory.
        env: Shared command environment (a fresh one by default).
        wait_for_user: Terminal pause used by the Xcode installer.

    Raises:
        EnvironmentUnsupported: No implementation for the probed package manager.
    """
    env = env or CommandEnvironment()
    use_sudo = not platform.is_root

    homebrew = HomebrewPackageManager(env, platform.os, platform.arch, home)
    homebrew.activate()

    native: PackageManager | None = None
    toolchain: BuildToolchain
    if platform.is_macos:
        toolchain = XcodeCommandLineTools(env, wait_for_user=wait_for_user)
    else:
        manager_cls = _SYSTEM_MANAGERS.get(platform.package_manager)
        if manager_cls is None:
            raise EnvironmentUnsupported(
                f"No package manager implementation for {platform.package_manager.value}"
            )
        system_manager = manager_cls(env, use_sudo=use_sudo)
        native = system_manager
        toolchain = system_manager

    gpg = GnuPG(env, home / ".gnupg")
    caps = Capabilities(
        toolchain=toolchain,
        homebrew=homebrew,
        vcs=GitClient(env),
        decrypt_oracle=gpg,
        trust_importer=gpg,
        password_store=PassCli(env, home / ".password-store"),
        ssh_agent=OpenSshAgent(env, home, use_keychain=platform.is_macos),
        privilege=SudoHelper(env),
        env=env,
        native=native,
    )
    logger.debug("Resolved capabilities: %s", caps.status())
    return caps
