"""
Progress indicator — run a long external process behind a spinner.

Used for the slow, quiet operations (the Homebrew installer, ``brew bundle
install``). The process runs under Popen; its stdout/stderr are polled with
``selectors`` at a fixed interval so the spinner keeps moving even while the
tool prints nothing. The renderer only reads: it never feeds the process
input or touches any pipeline state.
"""

from __future__ import annotations

import itertools
import logging
import os
import re
import selectors
import subprocess
import sys
import time
from collections.abc import Callable, Generator
from pathlib import Path

import click

from devseed.adapters.shell.command import CommandEnvironment
from devseed.core.models.receipt import Receipt

logger = logging.getLogger(__name__)

POLL_INTERVAL_S = 0.2
SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"
READ_CHUNK = 4096

# Installers redraw progress with a bare carriage return.
_LINE_BREAK = re.compile(rb"\r\n|[\r\n]")

# ("stdout", line) | ("stderr", line) | ("tick", None) | ("exit", code)
StreamEvent = tuple[str, str | int | None]


def stream_process(
    args: list[str],
    *,
    env: CommandEnvironment | None = None,
    cwd: Path | None = None,
    interval: float = POLL_INTERVAL_S,
    timeout: float = 3600,
) -> Generator[StreamEvent, None, None]:
    """Run ``args`` via Popen and yield output lines as they arrive.

    Yields:
        ("stdout", line)  a line from stdout (trailing newline stripped)
        ("stderr", line)  a line from stderr (trailing newline stripped)
        ("tick", None)    no output during one poll interval
        ("exit", code)    process exit code (always last)
    """
    env = env or CommandEnvironment()
    logger.debug("Streaming command: %s (timeout=%ss)", args[:2], timeout)
    try:
        proc = subprocess.Popen(
            args,
            cwd=str(cwd) if cwd else None,
            env=env.build(),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            bufsize=0,
        )
    except OSError as e:
        yield ("stderr", f"Cannot start {args[0]}: {e}")
        yield ("exit", 127)
        return

    deadline = time.monotonic() + timeout
    sel = selectors.DefaultSelector()
    pending: dict[str, bytes] = {"stdout": b"", "stderr": b""}
    try:
        if proc.stdout:
            sel.register(proc.stdout, selectors.EVENT_READ, "stdout")
        if proc.stderr:
            sel.register(proc.stderr, selectors.EVENT_READ, "stderr")

        open_streams = 2
        while open_streams > 0:
            if time.monotonic() > deadline:
                proc.kill()
                proc.wait()
                yield ("stderr", f"Timed out after {timeout:.0f}s, process killed")
                yield ("exit", -1)
                return

            events = sel.select(timeout=interval)
            if not events:
                yield ("tick", None)
                continue

            for key, _ in events:
                source: str = key.data
                # Only what is already in the pipe; a partial line never blocks.
                chunk = os.read(key.fd, READ_CHUNK)
                if not chunk:
                    sel.unregister(key.fileobj)
                    open_streams -= 1
                    if pending[source]:
                        yield (source, _decode(pending[source]))
                        pending[source] = b""
                    continue
                *lines, pending[source] = _LINE_BREAK.split(pending[source] + chunk)
                for line in lines:
                    if line:
                        yield (source, _decode(line))
    finally:
        sel.close()
        if proc.poll() is None:
            proc.kill()
        proc.wait()

    yield ("exit", proc.returncode)


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")


def _render_spinner(frame: str, label: str, last_line: str) -> None:
    detail = f"  {last_line[:60]}" if last_line else ""
    click.echo(f"\r\033[K   {frame} {label}{detail}", nl=False, err=True)


def _clear_spinner() -> None:
    click.echo("\r\033[K", nl=False, err=True)


def run_with_progress(
    args: list[str],
    *,
    adapter: str,
    operation: str,
    label: str,
    env: CommandEnvironment | None = None,
    cwd: Path | None = None,
    interval: float = POLL_INTERVAL_S,
    timeout: float = 3600,
    render: Callable[[str, str, str], None] | None = None,
) -> Receipt:
    """Run ``args`` with a spinner and return a Receipt.

    The spinner is drawn on stderr only when it is a terminal (or when a
    ``render`` callback is supplied); otherwise the process just runs.
    """
    if render is None and sys.stderr.isatty():
        render = _render_spinner
    frames = itertools.cycle(SPINNER_FRAMES)

    start = time.monotonic()
    last_line = ""
    tail: list[str] = []
    code: int | None = None

    for source, payload in stream_process(args, env=env, cwd=cwd, interval=interval, timeout=timeout):
        if source == "exit":
            code = payload if isinstance(payload, int) else -1
            break
        if source in ("stdout", "stderr") and isinstance(payload, str) and payload.strip():
            last_line = payload.strip()
            tail = (tail + [last_line])[-20:]
        if render is not None:
            render(next(frames), label, last_line)

    if render is _render_spinner:
        _clear_spinner()

    elapsed_ms = int((time.monotonic() - start) * 1000)
    if code == 0:
        return Receipt.success(
            adapter=adapter,
            operation=operation,
            output="\n".join(tail),
            duration_ms=elapsed_ms,
            return_code=0,
        )
    return Receipt.failure(
        adapter=adapter,
        operation=operation,
        error=last_line or f"Command exited with code {code}",
        duration_ms=elapsed_ms,
        return_code=code,
        output="\n".join(tail),
    )
