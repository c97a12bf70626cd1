"""
Platform probe — decide OS and package manager once, at startup.

Raises ``EnvironmentUnsupported`` for an unknown OS or a Linux without a
known package manager, before anything has been mutated.
"""

from __future__ import annotations

import getpass
import logging
import os
import platform as _platform
import shutil
from collections.abc import Callable

from devseed.core.errors import EnvironmentUnsupported
from devseed.core.models.platform import OsKind, PackageManagerKind, PlatformInfo

logger = logging.getLogger(__name__)

# Probe order matters: the first binary found wins.
_LINUX_MANAGERS: list[tuple[str, PackageManagerKind]] = [
    ("apt-get", PackageManagerKind.APT),
    ("dnf", PackageManagerKind.DNF),
    ("pacman", PackageManagerKind.PACMAN),
]


def current_login_shell(user: str | None = None) -> str:
    """The login shell recorded in the password database (live lookup)."""
    import pwd

    try:
        entry = pwd.getpwnam(user) if user else pwd.getpwuid(os.getuid())
    except KeyError:
        return os.environ.get("SHELL", "")
    return entry.pw_shell


def probe_platform(
    system: str | None = None,
    machine: str | None = None,
    which: Callable[[str], str | None] = shutil.which,
) -> PlatformInfo:
    """Detect the running platform.

    Args:
        system: Override ``platform.system()`` (tests).
        machine: Override ``platform.machine()`` (tests).
        which: Binary lookup used to find the Linux package manager.

    Raises:
        EnvironmentUnsupported: Unknown OS or Linux distribution.
    """
    system = system or _platform.system()
    machine = machine or _platform.machine()

    if system == "Darwin":
        os_kind = OsKind.MACOS
        manager = PackageManagerKind.BREW
    elif system == "Linux":
        os_kind = OsKind.LINUX
        found = next((kind for binary, kind in _LINUX_MANAGERS if which(binary)), None)
        if found is None:
            raise EnvironmentUnsupported(
                "Unsupported Linux distribution. Please install build tools, curl, and git manually."
            )
        manager = found
    else:
        raise EnvironmentUnsupported(f"Unsupported operating system: {system}")

    user = getpass.getuser()
    info = PlatformInfo(
        os=os_kind,
        arch=machine,
        package_manager=manager,
        user=user,
        login_shell=current_login_shell(user),
        is_root=os.geteuid() == 0,
    )
    logger.debug("Platform: %s/%s via %s", info.os.value, info.arch, info.package_manager.value)
    return info
