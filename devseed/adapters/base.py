"""
Capability base — the protocol contract between the core and external tools.

The core only talks to the outside world through these interfaces, never
directly to a package manager, git, gpg or ssh. Each capability is
constructed once at startup and injected into the provisioning context.

Adapters perform external side effects and return Receipts. They never
raise for a failed tool: the step that called them decides, through
``Receipt.raise_for_status()``, whether the failure is fatal.

Capabilities:
    PackageManager   native package install (apt, dnf, pacman, brew)
    BuildToolchain   compiler / build tool bootstrap (per platform)
    Homebrew         PackageManager plus self-install, bundle, shellenv
    VCSClient        clone / update / freshness check
    DecryptOracle    decrypt an encrypted blob with a passphrase file
    TrustImporter    import a secret key, elevate its trust
    PasswordStore    read an entry into a private file
    SshAgent         agent discovery, key loading, public-key derivation
    PrivilegeHelper  sudo validation, refresh and privileged commands
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from pathlib import Path

from devseed.core.models.platform import PackageManagerKind
from devseed.core.models.receipt import Receipt


class Capability(ABC):
    """Abstract base class for every external capability."""

    @property
    @abstractmethod
    def name(self) -> str:
        """The capability identifier (e.g., 'apt', 'git', 'gpg')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the underlying tool is installed.

        Should be fast, read-only, and never raise.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


# ── Packages ────────────────────────────────────────────────────


class PackageManager(Capability):
    """Install named packages through one native package manager."""

    kind: PackageManagerKind

    @abstractmethod
    def is_installed(self, package: str) -> bool:
        """Read-only query: is ``package`` installed?"""

    @abstractmethod
    def install(self, packages: list[str]) -> Receipt:
        """Install ``packages``. Mutating."""

    def install_command(self, packages: list[str]) -> list[str]:
        """The argv ``install`` would run, for dry-run intent lines."""
        return [self.name, "install", *packages]

    def ensure_installed(self, package: str) -> bool:
        """Install ``package`` unless present.

        Returns:
            True if it was installed now, False if it already was.

        Raises:
            ExternalCapabilityFailed: If the install failed.
        """
        if self.is_installed(package):
            return False
        self.install([package]).raise_for_status()
        return True


class BuildToolchain(Capability):
    """Compiler and base build tools for the platform."""

    @abstractmethod
    def toolchain_satisfied(self) -> bool:
        """Read-only query: are the build tools present?"""

    @abstractmethod
    def install_toolchain(self) -> Receipt:
        """Install the build tools. Mutating, may prompt."""

    @abstractmethod
    def toolchain_intents(self) -> list[str]:
        """Commands ``install_toolchain`` would run."""


class Homebrew(PackageManager):
    """Homebrew: a package manager that can install itself."""

    kind = PackageManagerKind.BREW

    @property
    @abstractmethod
    def prefix(self) -> Path:
        """The expected install prefix for this platform."""

    @abstractmethod
    def is_present(self) -> bool:
        """Whether a brew binary can be found."""

    @abstractmethod
    def install_self(self) -> Receipt:
        """Run the official installer non-interactively."""

    @abstractmethod
    def activate(self) -> bool:
        """Put brew's bin directories on the command PATH if found."""

    @abstractmethod
    def shellenv_line(self) -> str:
        """The profile line that loads brew into login shells."""

    @abstractmethod
    def profile_files(self) -> list[Path]:
        """Profiles that must carry ``shellenv_line()``."""

    @abstractmethod
    def bundle_satisfied(self, brewfile: Path) -> bool:
        """Read-only query: ``brew bundle check``."""

    @abstractmethod
    def bundle_install(self, brewfile: Path) -> Receipt:
        """Install everything listed in ``brewfile``."""


# ── Version control ─────────────────────────────────────────────


class VCSClient(Capability):
    """Clone and update repositories."""

    @abstractmethod
    def is_repository(self, path: Path) -> bool:
        """Whether ``path`` is a working copy."""

    @abstractmethod
    def clone(self, url: str, path: Path) -> Receipt:
        """Clone ``url`` into ``path``."""

    @abstractmethod
    def update(self, path: Path) -> Receipt:
        """Fast-forward the working copy at ``path``."""

    @abstractmethod
    def is_current(self, path: Path) -> bool:
        """Whether the working copy matches its upstream. Uses the network."""

    def clone_or_update(self, url: str, path: Path) -> Receipt:
        """Update ``path`` if it is already a working copy, else clone it."""
        if self.is_repository(path):
            return self.update(path)
        return self.clone(url, path)


# ── Secrets ─────────────────────────────────────────────────────


class DecryptOracle(Capability):
    """Decrypts a blob given a passphrase file. Never sees the passphrase on argv."""

    @abstractmethod
    def decrypt(self, passphrase_file: Path, blob: Path, output: Path) -> Receipt:
        """Decrypt ``blob`` into ``output``. A failed receipt means wrong passphrase."""


class TrustImporter(Capability):
    """Imports a secret key into the keyring and marks it trusted."""

    @abstractmethod
    def has_secret_key(self, key_id: str, *, read_only: bool = False) -> bool:
        """Is the secret key for ``key_id`` in the keyring?

        Never creates a keyring. ``read_only`` forbids starting helper
        processes as well. Raises ``ExternalCapabilityFailed`` when the
        keyring cannot be queried, so a broken keyring is never mistaken for
        a missing key.
        """

    @abstractmethod
    def import_key(self, key_file: Path) -> Receipt:
        """Import the key material in ``key_file``."""

    @abstractmethod
    def elevate_trust(self, key_id: str) -> Receipt:
        """Set ownertrust of ``key_id`` to ultimate."""

    @abstractmethod
    def loopback_pinentry(self) -> AbstractContextManager[None]:
        """Context manager enabling loopback pinentry for its duration only."""


class PasswordStore(Capability):
    """Reads entries from the password store."""

    @abstractmethod
    def show(self, entry: str, output: Path) -> Receipt:
        """Write the decrypted ``entry`` into ``output`` (mode 0600)."""


# ── SSH ─────────────────────────────────────────────────────────


class SshAgent(Capability):
    """Reaches (or starts) an ssh-agent and manages key material."""

    @abstractmethod
    def is_running(self) -> bool:
        """Whether a usable agent is reachable."""

    @abstractmethod
    def ensure_started(self) -> Receipt:
        """Reuse a reachable agent or start a new one."""

    @abstractmethod
    def has_key(self, name: str) -> bool:
        """Whether the agent holds a key whose comment mentions ``name``."""

    @abstractmethod
    def add_key(self, key_file: Path) -> Receipt:
        """Load ``key_file`` into the agent."""

    @abstractmethod
    def derive_public_key(self, private_key: Path, public_key: Path) -> Receipt:
        """Regenerate ``public_key`` from ``private_key``."""


# ── Privilege ───────────────────────────────────────────────────


class PrivilegeHelper(Capability):
    """Runs commands with elevated privileges (sudo)."""

    @property
    @abstractmethod
    def is_root(self) -> bool:
        """Whether the process already runs as root."""

    @abstractmethod
    def validate(self) -> Receipt:
        """Prompt for and cache credentials (``sudo -v``)."""

    @abstractmethod
    def refresh(self) -> Receipt:
        """Extend the credential cache without prompting (``sudo -n -v``)."""

    @abstractmethod
    def run(self, args: list[str], operation: str, input_text: str | None = None) -> Receipt:
        """Run ``args`` as root."""
