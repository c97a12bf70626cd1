"""
Adapters — every external tool devseed drives, behind capability interfaces.
"""

from devseed.adapters.base import (
    BuildToolchain,
    Capability,
    DecryptOracle,
    Homebrew,
    PackageManager,
    PasswordStore,
    PrivilegeHelper,
    SshAgent,
    TrustImporter,
    VCSClient,
)
from devseed.adapters.registry import Capabilities, build_capabilities

__all__ = [
    "BuildToolchain",
    "Capabilities",
    "Capability",
    "DecryptOracle",
    "Homebrew",
    "PackageManager",
    "PasswordStore",
    "PrivilegeHelper",
    "SshAgent",
    "TrustImporter",
    "VCSClient",
    "build_capabilities",
]
