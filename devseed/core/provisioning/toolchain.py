"""
Toolchain steps — build tools, Homebrew, GnuPG, zsh, essential packages, Brewfile.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from devseed.core.errors import ExternalCapabilityFailed, PreconditionMissing
from devseed.core.models.platform import OsKind
from devseed.core.models.step import Step
from devseed.core.provisioning.context import ProvisionContext

logger = logging.getLogger(__name__)

PHASE_BUILD = "Build Dependencies & Git"
PHASE_HOMEBREW = "Homebrew"
PHASE_GNUPG = "GnuPG"
PHASE_ZSH = "Zsh"
PHASE_ESSENTIALS = "Essential Packages"
PHASE_BREWFILE = "Homebrew Packages (Brewfile)"


# ── 1. Build dependencies & git ─────────────────────────────────


def build_dependency_steps(ctx: ProvisionContext) -> list[Step]:
    toolchain = ctx.caps.toolchain

    def install_toolchain() -> str:
        toolchain.install_toolchain().raise_for_status()
        return f"installed via {toolchain.name}"

    def require_git() -> str:
        raise PreconditionMissing("git is not available on PATH after installing build tools")

    return [
        Step(
            name="build-tools",
            phase=PHASE_BUILD,
            description=f"Install build tools ({toolchain.name})",
            predicate=toolchain.toolchain_satisfied,
            action=install_toolchain,
            describe=toolchain.toolchain_intents,
        ),
        Step(
            name="git-available",
            phase=PHASE_BUILD,
            description="Verify git is on PATH",
            predicate=lambda: ctx.which("git") is not None,
            action=require_git,
        ),
    ]


# ── 2. Homebrew ─────────────────────────────────────────────────


def _file_has_line(path: Path, line: str) -> bool:
    if not path.is_file():
        return False
    return line in path.read_text(encoding="utf-8")


def _managed_by_dotfiles(ctx: ProvisionContext, path: Path) -> bool:
    """Whether ``path`` is a symlink into the dotfiles checkout."""
    if not path.is_symlink():
        return False
    return Path(os.path.realpath(path)).is_relative_to(os.path.realpath(ctx.dotfiles_dir))


def _append_profile_line(path: Path, line: str) -> None:
    existing = path.read_text(encoding="utf-8") if path.is_file() else ""
    with open(path, "a", encoding="utf-8") as f:
        if existing and not existing.endswith("\n"):
            f.write("\n")
        f.write(f"\n{line}\n")


def homebrew_steps(ctx: ProvisionContext) -> list[Step]:
    brew = ctx.caps.homebrew

    def install() -> str:
        brew.install_self().raise_for_status()
        brew.activate()
        return f"installed at {brew.prefix}"

    steps = [
        Step(
            name="homebrew",
            phase=PHASE_HOMEBREW,
            description="Install Homebrew via official script",
            predicate=brew.is_present,
            action=install,
            describe=lambda: ["Install Homebrew via official script (NONINTERACTIVE=1)"],
        ),
    ]

    line = brew.shellenv_line()
    marker = f"{brew.prefix}/bin/brew shellenv"
    for profile in brew.profile_files():

        def configured(profile: Path = profile) -> bool:
            if _file_has_line(profile, marker):
                return True
            if _managed_by_dotfiles(ctx, profile):
                # Linked from the dotfiles checkout: never write into tracked files.
                logger.warning("%s comes from the dotfiles repo and does not load Homebrew", ctx.display(profile))
                return True
            return False

        def add_line(profile: Path = profile) -> str:
            _append_profile_line(profile, line)
            return ctx.display(profile)

        steps.append(
            Step(
                name=f"homebrew-shellenv:{profile.name}",
                phase=PHASE_HOMEBREW,
                description=f"Add Homebrew to {ctx.display(profile)}",
                predicate=configured,
                action=add_line,
            )
        )
    return steps


# ── 3. GnuPG ────────────────────────────────────────────────────


def gnupg_steps(ctx: ProvisionContext) -> list[Step]:
    package = ctx.config.gnupg_package

    def install() -> str:
        ctx.caps.homebrew.install([package]).raise_for_status()
        return f"brew install {package}"

    return [
        Step(
            name="gnupg",
            phase=PHASE_GNUPG,
            description=f"brew install {package}",
            predicate=lambda: ctx.which("gpg") is not None,
            action=install,
        )
    ]


# ── 6. Zsh ──────────────────────────────────────────────────────


def zsh_steps(ctx: ProvisionContext) -> list[Step]:
    native = ctx.caps.native
    brew = ctx.caps.homebrew

    def install() -> str:
        if ctx.platform.os == OsKind.LINUX and native is not None:
            receipt = native.install(["zsh"])
            if receipt.ok:
                return f"installed via {native.name}"
            logger.warning("%s could not install zsh (%s), trying Homebrew", native.name, receipt.error)
        brew.install(["zsh"]).raise_for_status()
        return "installed via brew"

    def install_intents() -> list[str]:
        if ctx.platform.os == OsKind.LINUX and native is not None:
            return [" ".join(native.install_command(["zsh"]))]
        return ["brew install zsh"]

    def zsh_path() -> str:
        return ctx.which("zsh") or "/bin/zsh"

    def is_default_shell() -> bool:
        current = ctx.login_shell()
        found = ctx.which("zsh")
        if found and os.path.realpath(current) == os.path.realpath(found):
            return True
        return os.path.basename(current) == "zsh"

    def make_default() -> str:
        path = zsh_path()
        listed = ctx.etc_shells.is_file() and path in ctx.etc_shells.read_text(encoding="utf-8").splitlines()
        if not listed:
            logger.info("Adding %s to %s", path, ctx.etc_shells)
            ctx.caps.privilege.run(
                ["tee", "-a", str(ctx.etc_shells)],
                f"add zsh to {ctx.etc_shells}",
                input_text=f"{path}\n",
            ).raise_for_status()
        user = ctx.platform.user
        receipt = ctx.caps.privilege.run(["chsh", "-s", path, user], f"chsh -s {path}")
        if receipt.failed:
            raise ExternalCapabilityFailed(
                f"Could not change default shell. You may need to run: sudo chsh -s {path} {user}"
            )
        return f"default shell is now {path} (takes effect on next login)"

    return [
        Step(
            name="zsh",
            phase=PHASE_ZSH,
            description="Install zsh",
            predicate=lambda: ctx.which("zsh") is not None,
            action=install,
            describe=install_intents,
        ),
        Step(
            name="default-shell",
            phase=PHASE_ZSH,
            description="Make zsh the default shell",
            predicate=is_default_shell,
            action=make_default,
            describe=lambda: [
                f"Add {zsh_path()} to {ctx.etc_shells} (if needed)",
                f"chsh -s {zsh_path()}",
            ],
            advisory=True,
        ),
    ]


# ── 7. Essential packages ───────────────────────────────────────


def essential_package_steps(ctx: ProvisionContext) -> list[Step]:
    brew = ctx.caps.homebrew
    steps: list[Step] = []

    if ctx.platform.os == OsKind.LINUX:
        zsh_dirs = [brew.prefix / "share" / "zsh", brew.prefix / "share" / "zsh" / "site-functions"]

        def writable() -> bool:
            return not zsh_dirs[0].is_dir() or os.access(zsh_dirs[0], os.W_OK)

        def fix_permissions() -> str:
            paths = [str(d) for d in zsh_dirs if d.exists()]
            ctx.caps.privilege.run(
                ["chown", "-R", ctx.platform.user, *paths], "chown Homebrew zsh directories"
            ).raise_for_status()
            for d in zsh_dirs:
                if d.exists():
                    d.chmod(d.stat().st_mode | 0o200)
            return "Homebrew zsh directories are writable"

        steps.append(
            Step(
                name="linuxbrew-zsh-permissions",
                phase=PHASE_ESSENTIALS,
                description="Fix Homebrew zsh directory permissions",
                predicate=writable,
                action=fix_permissions,
                advisory=True,
            )
        )

    for package in ctx.config.essential_packages:

        def install(package: str = package) -> str:
            brew.install([package]).raise_for_status()
            return f"brew install {package}"

        steps.append(
            Step(
                name=f"package:{package}",
                phase=PHASE_ESSENTIALS,
                description=f"brew install {package}",
                predicate=lambda package=package: ctx.which(package) is not None,
                action=install,
            )
        )
    return steps


# ── 11. Brewfile ────────────────────────────────────────────────


def brewfile_steps(ctx: ProvisionContext) -> list[Step]:
    brew = ctx.caps.homebrew
    brewfile = ctx.brewfile

    def satisfied() -> bool:
        return brewfile.is_file() and brew.bundle_satisfied(brewfile)

    def install() -> str:
        if not brewfile.is_file():
            raise PreconditionMissing(
                f"Brewfile not found at {ctx.display(brewfile)}; "
                "create it in your dotfiles to auto-install packages"
            )
        brew.bundle_install(brewfile).raise_for_status()
        return f"bundle installed from {brewfile.name}"

    return [
        Step(
            name="brewfile",
            phase=PHASE_BREWFILE,
            description=f"brew bundle install --file={ctx.display(brewfile)}",
            predicate=satisfied,
            action=install,
            advisory=True,
            network_predicate=True,
        )
    ]
