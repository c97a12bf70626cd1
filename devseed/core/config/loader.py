"""
Configuration loader — reads the packaged machine definition.

The definition is YAML validated against the ``MachineConfig`` Pydantic
schema. It is compiled in: the CLI exposes no way to point at another file,
only tests pass an explicit ``path``.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from devseed.core.data import MACHINE_FILE, data_path
from devseed.core.models.machine import MachineConfig

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when the machine definition is missing or invalid."""


def load_machine_config(path: Path | None = None) -> MachineConfig:
    """Load and validate the machine definition.

    Args:
        path: Explicit YAML file. Defaults to the packaged ``machine.yml``.

    Returns:
        Validated MachineConfig.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if path is None:
        path = data_path(MACHINE_FILE)

    if not path.is_file():
        raise ConfigError(f"Machine definition not found: {path}")

    logger.debug("Loading machine definition from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = MachineConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid machine definition: {e}") from e

    logger.debug(
        "Machine definition: key %s, %d ssh keys, %d essential packages",
        config.key_id,
        len(config.ssh.keys),
        len(config.essential_packages),
    )
    return config
