"""
Homebrew adapter — macOS native manager, secondary manager on Linux.

Besides installing packages, Homebrew has to install itself, be found on
well-known prefixes before it is on PATH, and be loaded into future login
shells through a ``brew shellenv`` profile line. Activation only records the
bin directory on the shared CommandEnvironment; the process environment is
left alone.
"""

from __future__ import annotations

import logging
from pathlib import Path

from devseed.adapters.base import Homebrew
from devseed.adapters.shell.command import CommandEnvironment, run_command
from devseed.adapters.shell.progress import run_with_progress
from devseed.core.models.platform import OsKind
from devseed.core.models.receipt import Receipt

logger = logging.getLogger(__name__)

INSTALL_SCRIPT_URL = "https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh"

_PREFIX_MACOS_ARM = Path("/opt/homebrew")
_PREFIX_MACOS_INTEL = Path("/usr/local")
_PREFIX_LINUX = Path("/home/linuxbrew/.linuxbrew")


def expected_prefix(os_kind: OsKind, arch: str) -> Path:
    """Where the official installer puts Homebrew on this platform."""
    if os_kind == OsKind.LINUX:
        return _PREFIX_LINUX
    if arch == "arm64":
        return _PREFIX_MACOS_ARM
    return _PREFIX_MACOS_INTEL


class HomebrewPackageManager(Homebrew):
    """Homebrew through the ``brew`` CLI."""

    def __init__(
        self,
        env: CommandEnvironment,
        os_kind: OsKind,
        arch: str = "",
        home: Path | None = None,
    ):
        self._env = env
        self._os = os_kind
        self._prefix = expected_prefix(os_kind, arch)
        self._home = home or Path.home()

    @property
    def name(self) -> str:
        return "brew"

    @property
    def prefix(self) -> Path:
        return self._prefix

    def candidate_binaries(self) -> list[Path]:
        """Known brew locations, the expected prefix first."""
        candidates = [self._prefix / "bin" / "brew"]
        if self._os == OsKind.LINUX:
            candidates.append(self._home / ".linuxbrew" / "bin" / "brew")
        else:
            candidates += [_PREFIX_MACOS_ARM / "bin" / "brew", _PREFIX_MACOS_INTEL / "bin" / "brew"]
        seen: list[Path] = []
        for c in candidates:
            if c not in seen:
                seen.append(c)
        return seen

    def binary(self) -> str | None:
        found = self._env.which("brew")
        if found:
            return found
        for candidate in self.candidate_binaries():
            if candidate.is_file():
                return str(candidate)
        return None

    def is_available(self) -> bool:
        return self.binary() is not None

    def is_present(self) -> bool:
        return self.is_available()

    def activate(self) -> bool:
        brew = self.binary()
        if brew is None:
            return False
        bin_dir = Path(brew).parent
        self._env.prepend_path(bin_dir.parent / "sbin")
        self._env.prepend_path(bin_dir)
        logger.debug("Homebrew active at %s", bin_dir)
        return True

    def shellenv_line(self) -> str:
        return f'eval "$({self._prefix}/bin/brew shellenv)"'

    def profile_files(self) -> list[Path]:
        """Login-shell profiles that need the shellenv line."""
        if self._os == OsKind.LINUX:
            return [self._home / ".zshrc", self._home / ".zprofile"]
        if self._prefix == _PREFIX_MACOS_ARM:
            return [self._home / ".zprofile"]
        # /usr/local/bin is already on the default macOS PATH.
        return []

    # ── Self install ────────────────────────────────────────────

    def install_self(self) -> Receipt:
        logger.info("Installing Homebrew from %s", INSTALL_SCRIPT_URL)
        env = self._env.derive(NONINTERACTIVE="1")
        receipt = run_with_progress(
            ["/bin/bash", "-c", f'/bin/bash -c "$(curl -fsSL {INSTALL_SCRIPT_URL})"'],
            adapter=self.name,
            operation="install Homebrew",
            label="Installing Homebrew",
            env=env,
        )
        if receipt.ok:
            self.activate()
        return receipt

    # ── Packages ────────────────────────────────────────────────

    def _brew(self) -> str:
        return self.binary() or str(self._prefix / "bin" / "brew")

    def is_installed(self, package: str) -> bool:
        receipt = run_command(
            [self._brew(), "list", "--versions", package],
            adapter=self.name,
            operation=f"brew list {package}",
            env=self._env,
            timeout=60,
        )
        return receipt.ok and bool(receipt.output)

    def install_command(self, packages: list[str]) -> list[str]:
        return ["brew", "install", *packages]

    def install(self, packages: list[str]) -> Receipt:
        logger.info("Installing with brew: %s", ", ".join(packages))
        return run_command(
            [self._brew(), "install", *packages],
            adapter=self.name,
            operation=f"brew install {' '.join(packages)}",
            env=self._env,
        )

    # ── Bundle ──────────────────────────────────────────────────

    def bundle_satisfied(self, brewfile: Path) -> bool:
        if not self.is_present():
            return False
        receipt = run_command(
            [self._brew(), "bundle", "check", f"--file={brewfile}"],
            adapter=self.name,
            operation="brew bundle check",
            env=self._env.derive(HOMEBREW_NO_AUTO_UPDATE="1"),
            timeout=120,
        )
        return receipt.ok

    def bundle_install(self, brewfile: Path) -> Receipt:
        return run_with_progress(
            [self._brew(), "bundle", "install", f"--file={brewfile}"],
            adapter=self.name,
            operation=f"brew bundle install ({brewfile.name})",
            label=f"Installing packages from {brewfile.name}",
            env=self._env,
        )
