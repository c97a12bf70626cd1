"""
Packaged data files.

The machine definition ships inside the package (``machine.yml``) so the
target state is compiled in rather than read from the user's environment.
"""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent

MACHINE_FILE = "machine.yml"


def data_path(relative_path: str) -> Path:
    """Absolute path of a packaged data file."""
    return DATA_DIR / relative_path
