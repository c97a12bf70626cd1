"""
MachineConfig — the declared target state.

Validated from the packaged ``machine.yml``. Relative paths are resolved
against the home directory by the callers, never against the CWD.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from devseed.core.models.platform import OsKind


class RepositorySpec(BaseModel):
    """A git repository cloned under the home directory."""

    name: str
    url: str
    path: str

    def local_path(self, home: Path) -> Path:
        return home / self.path


class SshSpec(BaseModel):
    """SSH key material restored from the password store."""

    directory: str = ".ssh"
    keys: list[str] = Field(default_factory=list)
    agent_key: str = ""
    pass_prefix: str = "ssh"
    config_entry: str = "config"

    def entry(self, name: str) -> str:
        """Password-store entry for a key or the config file."""
        return f"{self.pass_prefix}/{name}"


class LinkSpec(BaseModel):
    """Shape of the dotfiles tree."""

    nested_zone: str = ".config"
    exclude: list[str] = Field(default_factory=lambda: [".git", ".gitignore", ".DS_Store"])


class BrewfileSpec(BaseModel):
    macos: str = "Brewfile"
    linux: str = "Brewfile.linux"

    def for_os(self, os_kind: OsKind) -> str:
        return self.linux if os_kind == OsKind.LINUX else self.macos


class PrivilegeSpec(BaseModel):
    """Background sudo credential refresh."""

    refresh_seconds: float = 50.0
    max_minutes: float = 60.0


class MachineConfig(BaseModel):
    """Everything devseed converges a workstation towards."""

    github_user: str
    key_id: str
    seed: RepositorySpec
    dotfiles: RepositorySpec
    encrypted_key: str = "gpg-key.enc"
    ssh: SshSpec = Field(default_factory=SshSpec)
    links: LinkSpec = Field(default_factory=LinkSpec)
    gnupg_package: str = "gnupg"
    essential_packages: list[str] = Field(default_factory=list)
    brewfile: BrewfileSpec = Field(default_factory=BrewfileSpec)
    privilege: PrivilegeSpec = Field(default_factory=PrivilegeSpec)

    @field_validator("key_id")
    @classmethod
    def _key_id_is_hex(cls, value: str) -> str:
        cleaned = value.strip().upper()
        if not cleaned or any(c not in "0123456789ABCDEF" for c in cleaned):
            raise ValueError(f"key_id must be a hex key id, got {value!r}")
        return cleaned

    def encrypted_key_path(self, home: Path) -> Path:
        return self.seed.local_path(home) / self.encrypted_key
