"""
Configuration — the compiled-in machine definition.

    from devseed.core.config import load_machine_config
"""

from devseed.core.config.loader import ConfigError, load_machine_config

__all__ = ["ConfigError", "load_machine_config"]
