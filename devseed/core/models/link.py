"""
Link models — one entry per dotfile the reconciler manages.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path


class LinkClassification(StrEnum):
    """Observed state of a destination path."""

    CORRECT_LINK = "correct_link"          # symlink into the source tree
    FOREIGN_EXISTING = "foreign_existing"  # real file/dir we do not own
    MISSING = "missing"                    # nothing there, or a stale symlink


class LinkAction(StrEnum):
    """What the reconciler did (or would do) to a destination."""

    NONE = "none"
    LINKED = "linked"
    BACKED_UP_AND_LINKED = "backed_up_and_linked"


class LinkZone(StrEnum):
    CONFIG = "config"   # <source>/.config/<name> → ~/.config/<name>
    HOME = "home"       # <source>/<.name>        → ~/<.name>


@dataclass
class LinkEntry:
    """A source path, its destination, and what reconciliation found/did."""

    source: Path
    dest: Path
    zone: LinkZone
    classification: LinkClassification
    signature: str = ""                 # substring the resolved target must contain
    action: LinkAction = LinkAction.NONE
    backup: Path | None = None
    replaced_link: str | None = None    # old target of a stale symlink

    @property
    def name(self) -> str:
        return self.source.name

    @property
    def label(self) -> str:
        """Short display label, e.g. ``.config/nvim`` or ``.zshrc``."""
        if self.zone == LinkZone.CONFIG:
            return f".config/{self.name}"
        return self.name

    @property
    def needs_change(self) -> bool:
        return self.classification != LinkClassification.CORRECT_LINK

    def intent(self) -> str:
        """Describe the mutation this entry requires, for dry-run output."""
        if self.classification == LinkClassification.CORRECT_LINK:
            return f"Keep {self.dest} (already linked)"
        if self.classification == LinkClassification.FOREIGN_EXISTING:
            return f"Back up {self.dest} to {self.dest.name}.backup.<timestamp>, then symlink {self.label} → {self.dest}"
        if self.replaced_link is not None:
            return f"Replace stale link {self.dest} (→ {self.replaced_link}) with symlink {self.label}"
        return f"Symlink {self.label} → {self.dest}"
