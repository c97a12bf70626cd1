"""
Domain models for devseed.

All models are re-exported here for convenient access:

    from devseed.core.models import Step, StepOutcome, Receipt, LinkEntry
"""

from devseed.core.models.link import LinkAction, LinkClassification, LinkEntry, LinkZone
from devseed.core.models.machine import MachineConfig, RepositorySpec
from devseed.core.models.outcome import OutcomeStatus, StepOutcome
from devseed.core.models.platform import OsKind, PackageManagerKind, PlatformInfo
from devseed.core.models.receipt import Receipt
from devseed.core.models.step import Step, StepMode

__all__ = [
    # link.py
    "LinkAction",
    "LinkClassification",
    "LinkEntry",
    "LinkZone",
    # machine.py
    "MachineConfig",
    # platform.py
    "OsKind",
    # outcome.py
    "OutcomeStatus",
    "PackageManagerKind",
    "PlatformInfo",
    # receipt.py
    "Receipt",
    "RepositorySpec",
    # step.py
    "Step",
    "StepMode",
    "StepOutcome",
]
