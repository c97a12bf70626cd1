"""
Error taxonomy — every fatal condition the bootstrap can surface.

Each error carries a stable ``kind`` (recorded on the StepOutcome) and the
process exit code the CLI maps it to, so scripts wrapping devseed can tell
a wrong passphrase apart from a failed package install.

    PreconditionMissing       required file/tool absent; user remediates
    AuthenticationFailed      wrong passphrase; terminal, never retried
    ExternalCapabilityFailed  package install / clone / import failed
    EnvironmentUnsupported    unknown platform; raised before any mutation
    EmptyInput                nothing entered at the passphrase prompt
    Interrupted               SIGINT/SIGTERM/SIGHUP during the run
"""

from __future__ import annotations

EXIT_OK = 0
EXIT_STEP_FAILED = 1
EXIT_AUTH_FAILED = 2
EXIT_PRECONDITION = 3
EXIT_UNSUPPORTED = 4
EXIT_EMPTY_INPUT = 5
EXIT_INTERRUPTED = 130


class BootstrapError(Exception):
    """Base class for all errors that abort (or downgrade) a step."""

    kind = "error"
    exit_code = EXIT_STEP_FAILED

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message or self.kind


class PreconditionMissing(BootstrapError):
    """A required file or tool is absent; the user must fix it manually."""

    kind = "precondition_missing"
    exit_code = EXIT_PRECONDITION


class AuthenticationFailed(BootstrapError):
    """The passphrase did not decrypt the key blob."""

    kind = "authentication_failed"
    exit_code = EXIT_AUTH_FAILED


class ExternalCapabilityFailed(BootstrapError):
    """An external tool (package manager, git, gpg, ...) reported failure."""

    kind = "external_capability_failed"
    exit_code = EXIT_STEP_FAILED


class EnvironmentUnsupported(BootstrapError):
    """The operating system or distribution is not one devseed knows."""

    kind = "environment_unsupported"
    exit_code = EXIT_UNSUPPORTED


class EmptyInput(BootstrapError):
    """The passphrase prompt returned nothing."""

    kind = "empty_input"
    exit_code = EXIT_EMPTY_INPUT


class Interrupted(BootstrapError):
    """The run was interrupted by a signal."""

    kind = "interrupted"
    exit_code = EXIT_INTERRUPTED
