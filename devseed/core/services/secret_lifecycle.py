"""
Secret lifecycle — passphrase collection, key decryption and import.

This is the only place plaintext secret material exists. The rules:

    - The passphrase is read from the controlling terminal (``/dev/tty``)
      with echo disabled. Piped stdin is never read, so ``curl | devseed``
      style invocations still prompt the human.
    - It lives in a mutable ``Secret`` buffer that is zero-filled as soon
      as decryption has been attempted, and never appears in a log record,
      repr, argv, or environment variable.
    - It reaches gpg only through a 0600 file inside a private 0700 temp
      directory, created with O_CREAT|O_EXCL.
    - The decrypted key goes into a second 0600 file in the same directory
      and is destroyed (overwritten, then unlinked) right after import.
    - A failed decryption destroys both files and raises
      ``AuthenticationFailed``. There is no retry loop.

Every transient path is tracked, and ``destroy_transients()`` is registered
with the pipeline cleanup, so an interrupt at any point still removes them.

Secure deletion is best effort: on SSDs and copy-on-write filesystems the
overwrite may not reach the original blocks, and the plaintext key did exist
on disk briefly. Use an encrypted or RAM-backed ``TMPDIR`` where that matters.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

from devseed.adapters.base import DecryptOracle, TrustImporter
from devseed.core.errors import (
    AuthenticationFailed,
    EmptyInput,
    ExternalCapabilityFailed,
    PreconditionMissing,
)

logger = logging.getLogger(__name__)

DRY_RUN_PLACEHOLDER = "dry-run-placeholder"

TTY_PATH = "/dev/tty"


# ═══════════════════════════════════════════════════════════════════════
#  Secret buffer
# ═══════════════════════════════════════════════════════════════════════


class Secret:
    """A mutable, wipeable secret buffer.

    Use as a context manager to guarantee the wipe::

        with lifecycle.acquire(prompt) as secret:
            ...
    """

    __slots__ = ("_buf",)

    def __init__(self, value: bytes | bytearray | str = b""):
        if isinstance(value, str):
            value = value.encode("utf-8")
        self._buf = bytearray(value)

    def __repr__(self) -> str:
        state = "wiped" if self.wiped else "***"
        return f"<Secret {state}>"

    __str__ = __repr__

    def __len__(self) -> int:
        return len(self._buf)

    @property
    def wiped(self) -> bool:
        return not self._buf

    def write_to(self, fd: int) -> None:
        """Write the secret to an open file descriptor without copying it."""
        view = memoryview(self._buf)
        try:
            written = 0
            while written < len(view):
                written += os.write(fd, view[written:])
        finally:
            view.release()

    def wipe(self) -> None:
        """Zero-fill and empty the buffer. Idempotent."""
        _zero(self._buf)
        del self._buf[:]

    def __enter__(self) -> Secret:
        return self

    def __exit__(self, *exc: object) -> None:
        self.wipe()


# ═══════════════════════════════════════════════════════════════════════
#  Prompt sources
# ═══════════════════════════════════════════════════════════════════════


class PromptSource(ABC):
    """Where interactive input comes from."""

    @abstractmethod
    def read_secret(self, message: str) -> Secret:
        """Prompt for a hidden value."""

    @abstractmethod
    def pause(self, message: str) -> None:
        """Show ``message`` and wait for Enter."""


class TerminalPrompt(PromptSource):
    """Reads from the controlling terminal only, never from stdin."""

    def __init__(self, tty_path: str = TTY_PATH):
        self._tty_path = tty_path

    def _open(self) -> int:
        try:
            return os.open(self._tty_path, os.O_RDWR | os.O_NOCTTY)
        except OSError as e:
            raise PreconditionMissing(
                f"No interactive terminal available ({self._tty_path}: {e.strerror}); "
                "run devseed from a terminal"
            ) from e

    def read_secret(self, message: str) -> Secret:
        import termios

        fd = self._open()
        try:
            os.write(fd, message.encode("utf-8"))
            saved = termios.tcgetattr(fd)
            hidden = termios.tcgetattr(fd)
            hidden[3] &= ~termios.ECHO
            termios.tcsetattr(fd, termios.TCSAFLUSH, hidden)
            try:
                line = _read_line(fd)
                secret = Secret(line)
                _zero(line)
            finally:
                termios.tcsetattr(fd, termios.TCSAFLUSH, saved)
                os.write(fd, b"\n")
        finally:
            os.close(fd)

        if not len(secret):
            raise EmptyInput("No password provided")
        return secret

    def pause(self, message: str) -> None:
        fd = self._open()
        try:
            os.write(fd, message.encode("utf-8"))
            _zero(_read_line(fd))
        finally:
            os.close(fd)


class PlaceholderPrompt(PromptSource):
    """Dry-run stand-in: never touches the terminal."""

    def read_secret(self, message: str) -> Secret:
        return Secret(DRY_RUN_PLACEHOLDER)

    def pause(self, message: str) -> None:
        logger.debug("Dry-run: skipping pause (%s)", message)


def _zero(buf: bytearray) -> None:
    for i in range(len(buf)):
        buf[i] = 0


def _read_line(fd: int) -> bytearray:
    """Read one line byte by byte into a mutable buffer (newline dropped)."""
    buf = bytearray()
    while True:
        chunk = os.read(fd, 1)
        if not chunk or chunk in (b"\n", b"\r"):
            return buf
        buf += chunk


# ═══════════════════════════════════════════════════════════════════════
#  Secure deletion
# ═══════════════════════════════════════════════════════════════════════


def secure_delete(path: Path) -> None:
    """Overwrite ``path`` with random data, then unlink it.

    Uses ``shred -u`` when available, otherwise a urandom overwrite with
    fsync followed by unlink. Missing files are ignored.
    """
    if not os.path.lexists(path):
        return

    shred = shutil.which("shred")
    if shred and not path.is_symlink():
        result = subprocess.run(
            [shred, "-u", str(path)],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
        if result.returncode == 0 and not os.path.lexists(path):
            return
        logger.debug("shred failed on %s, falling back to overwrite", path.name)

    try:
        if path.is_file() and not path.is_symlink():
            size = path.stat().st_size
            if size:
                with open(path, "r+b") as f:
                    f.write(os.urandom(size))
                    f.flush()
                    os.fsync(f.fileno())
    finally:
        path.unlink(missing_ok=True)


# ═══════════════════════════════════════════════════════════════════════
#  Lifecycle
# ═══════════════════════════════════════════════════════════════════════


@dataclass
class ImportResult:
    """What ``decrypt_and_import`` did. Contains no secret material."""

    key_id: str
    imported: bool = False
    trust_elevated: bool = False
    destroyed: list[str] = field(default_factory=list)

    @property
    def detail(self) -> str:
        return f"key {self.key_id} imported, trust ultimate, {len(self.destroyed)} temp files destroyed"


class SecretLifecycle:
    """Owns the passphrase and every plaintext file derived from it."""

    def __init__(
        self,
        oracle: DecryptOracle,
        importer: TrustImporter,
        tmp_root: Path | None = None,
    ):
        self._oracle = oracle
        self._importer = importer
        self._tmp_root = tmp_root
        self._transient_dirs: list[Path] = []
        self._held: Secret | None = None

    @property
    def transient_dirs(self) -> list[Path]:
        return list(self._transient_dirs)

    @property
    def holds_secret(self) -> bool:
        return self._held is not None and not self._held.wiped

    def acquire(self, prompt: PromptSource) -> Secret:
        """Read the passphrase through ``prompt``.

        Raises:
            EmptyInput: Nothing was entered.
            PreconditionMissing: No terminal is available.
        """
        return prompt.read_secret("Enter encryption password: ")

    def hold(self, secret: Secret) -> None:
        """Keep ``secret`` until ``take()`` or ``discard()``. Replaces (and wipes) any held one."""
        self.discard()
        self._held = secret

    def take(self) -> Secret | None:
        """Hand over the held secret, if any. The caller must wipe it."""
        secret, self._held = self._held, None
        if secret is not None and secret.wiped:
            return None
        return secret

    def discard(self) -> None:
        """Wipe the held secret. Idempotent; registered as a pipeline cleanup."""
        if self._held is not None:
            self._held.wipe()
            self._held = None

    def decrypt_and_import(self, secret: Secret, blob_path: Path, key_id: str) -> ImportResult:
        """Decrypt ``blob_path`` with ``secret``, import the key, trust it.

        The secret is wiped before this returns or raises.

        Raises:
            PreconditionMissing: The encrypted blob does not exist.
            AuthenticationFailed: The passphrase did not decrypt the blob.
            ExternalCapabilityFailed: Import or trust elevation failed.
        """
        if not blob_path.is_file():
            secret.wipe()
            raise PreconditionMissing(f"Encrypted GPG key not found at {blob_path}")

        result = ImportResult(key_id=key_id)
        workdir = Path(tempfile.mkdtemp(prefix="devseed-", dir=self._tmp_root))
        self._transient_dirs.append(workdir)
        passphrase_file = workdir / "passphrase"
        key_file = workdir / "key"

        try:
            _write_private(passphrase_file, secret)
            _write_private(key_file, None)

            logger.info("Decrypting %s", blob_path.name)
            decrypted = self._oracle.decrypt(passphrase_file, blob_path, key_file)

            secret.wipe()
            secure_delete(passphrase_file)
            result.destroyed.append(passphrase_file.name)

            if decrypted.failed:
                logger.debug("Decrypt failed: %s", decrypted.error)
                raise AuthenticationFailed("Authentication failed: wrong password")

            with self._importer.loopback_pinentry():
                self._importer.import_key(key_file).raise_for_status(ExternalCapabilityFailed)
                result.imported = True
                self._importer.elevate_trust(key_id).raise_for_status(ExternalCapabilityFailed)
                result.trust_elevated = True

            secure_delete(key_file)
            result.destroyed.append(key_file.name)
            logger.info("Key %s imported, temp files destroyed", key_id)
            return result
        finally:
            secret.wipe()
            self.destroy_transients()

    def destroy_transients(self) -> None:
        """Securely delete every tracked transient file. Idempotent."""
        while self._transient_dirs:
            workdir = self._transient_dirs.pop()
            if not workdir.exists():
                continue
            for child in sorted(workdir.iterdir()):
                secure_delete(child)
            workdir.rmdir()
            logger.debug("Destroyed transient directory %s", workdir.name)


def _write_private(path: Path, secret: Secret | None) -> None:
    """Create ``path`` as a new 0600 file, optionally holding ``secret``."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    try:
        if secret is not None:
            secret.write_to(fd)
            os.fsync(fd)
    finally:
        os.close(fd)
