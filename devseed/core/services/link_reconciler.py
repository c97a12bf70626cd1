"""
Link reconciler — symlink a dotfiles tree onto the home directory.

Two zones are managed:

    nested   <source>/.config/<name>  →  <home>/.config/<name>
    flat     <source>/.<name>         →  <home>/.<name>
             (minus the nested directory itself and the exclusion set)

``plan()`` only reads: it classifies each destination. ``apply()`` makes
the changes. A destination we do not own (a real file or directory) is
renamed to ``<name>.backup.<unix-ts>`` before the link is created; backups
are never deleted. Stale or dangling symlinks are replaced atomically
(temporary link + ``os.replace``), so there is no moment with nothing at
the destination.

Every filesystem mutation increments ``mutations``. A second run over an
already reconciled tree performs zero.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable, Iterable
from pathlib import Path

from devseed.core.errors import PreconditionMissing
from devseed.core.models.link import LinkAction, LinkClassification, LinkEntry, LinkZone

logger = logging.getLogger(__name__)

DEFAULT_NESTED_ZONE = ".config"
DEFAULT_EXCLUDED = frozenset({".git", ".gitignore", ".gitmodules", ".DS_Store"})


def _matches_signature(target: str, signature: str) -> bool:
    """``target`` ends with the ``signature`` path (on a component boundary)."""
    target = target.rstrip("/")
    return target == signature or target.endswith("/" + signature)


class LinkReconciler:
    """Plans and applies dotfile symlinks from ``source_root`` into ``dest_root``."""

    def __init__(
        self,
        source_root: Path,
        dest_root: Path,
        *,
        nested_zone: str = DEFAULT_NESTED_ZONE,
        excluded: Iterable[str] = DEFAULT_EXCLUDED,
        clock: Callable[[], float] = time.time,
    ):
        self.source_root = source_root
        self.dest_root = dest_root
        self.nested_zone = nested_zone
        self.excluded = frozenset(excluded)
        self._clock = clock
        self.mutations = 0

    # ── Plan ────────────────────────────────────────────────────

    def plan(self) -> list[LinkEntry]:
        """Classify every managed destination. Read-only.

        Raises:
            PreconditionMissing: The source tree does not exist.
        """
        if not self.source_root.is_dir():
            raise PreconditionMissing(f"Dotfiles directory not found at {self.source_root}")

        entries: list[LinkEntry] = []
        root_name = self.source_root.name

        nested_src = self.source_root / self.nested_zone
        if nested_src.is_dir():
            for child in sorted(nested_src.iterdir()):
                if child.name in self.excluded:
                    continue
                signature = f"{root_name}/{self.nested_zone}/{child.name}"
                dest = self.dest_root / self.nested_zone / child.name
                entries.append(self._entry(child, dest, LinkZone.CONFIG, signature))

        for child in sorted(self.source_root.iterdir()):
            name = child.name
            if not name.startswith(".") or name == self.nested_zone or name in self.excluded:
                continue
            signature = f"{root_name}/{name}"
            entries.append(self._entry(child, self.dest_root / name, LinkZone.HOME, signature))

        return entries

    def _entry(self, source: Path, dest: Path, zone: LinkZone, signature: str) -> LinkEntry:
        classification, replaced = self.classify(source, dest, signature)
        return LinkEntry(
            source=source,
            dest=dest,
            zone=zone,
            classification=classification,
            signature=signature,
            replaced_link=replaced,
        )

    @staticmethod
    def classify(source: Path, dest: Path, signature: str) -> tuple[LinkClassification, str | None]:
        """Classify ``dest``. Returns (classification, stale link target or None)."""
        if dest.is_symlink():
            raw = os.readlink(dest)
            if os.path.exists(dest):
                resolved = os.path.realpath(dest)
                if (
                    _matches_signature(resolved, signature)
                    or _matches_signature(raw, signature)
                    or resolved == os.path.realpath(source)
                ):
                    return LinkClassification.CORRECT_LINK, None
            return LinkClassification.MISSING, raw
        if os.path.lexists(dest):
            return LinkClassification.FOREIGN_EXISTING, None
        return LinkClassification.MISSING, None

    # ── Apply ───────────────────────────────────────────────────

    def apply(self, entries: list[LinkEntry]) -> list[LinkEntry]:
        """Make every entry a correct link. Returns the same entries, updated."""
        if any(e.zone == LinkZone.CONFIG and e.needs_change for e in entries):
            self._ensure_dir(self.dest_root / self.nested_zone)

        for entry in entries:
            if not entry.needs_change:
                entry.action = LinkAction.NONE
                logger.debug("Already linked: %s", entry.label)
                continue

            if entry.classification == LinkClassification.FOREIGN_EXISTING:
                entry.backup = self._backup(entry.dest)
                self._link(entry.source, entry.dest)
                entry.action = LinkAction.BACKED_UP_AND_LINKED
                logger.warning("Backed up existing %s to %s", entry.dest, entry.backup.name)
            else:
                self._link(entry.source, entry.dest)
                entry.action = LinkAction.LINKED
                logger.info("Linked %s", entry.label)

            entry.classification = LinkClassification.CORRECT_LINK

        return entries

    def reconcile(self) -> list[LinkEntry]:
        """``apply(plan())``."""
        return self.apply(self.plan())

    # ── Filesystem mutations ────────────────────────────────────

    def _ensure_dir(self, path: Path) -> None:
        if path.is_dir():
            return
        path.mkdir(parents=True)
        self.mutations += 1

    def _backup(self, dest: Path) -> Path:
        backup = self.backup_path(dest)
        dest.rename(backup)
        self.mutations += 1
        return backup

    def backup_path(self, dest: Path) -> Path:
        """``<name>.backup.<unix-ts>``, with ``-N`` appended on collision."""
        base = f"{dest.name}.backup.{int(self._clock())}"
        candidate = dest.with_name(base)
        n = 1
        while os.path.lexists(candidate):
            candidate = dest.with_name(f"{base}-{n}")
            n += 1
        return candidate

    def _link(self, source: Path, dest: Path) -> None:
        target = str(source.absolute())
        if dest.is_symlink():
            tmp = dest.with_name(f".{dest.name}.devseed-{os.getpid()}")
            if os.path.lexists(tmp):
                tmp.unlink()
            os.symlink(target, tmp)
            os.replace(tmp, dest)
        else:
            os.symlink(target, dest)
        self.mutations += 1
