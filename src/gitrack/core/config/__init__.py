"""
Configuration for gitrack.

Configuration is layered: built-in defaults, the user file, the project
file, then environment variables.
"""

from gitrack.core.config.loader import load_config, write_project_config
from gitrack.core.config.models import DisplayConfig, GitrackConfig, IdsConfig, SyncConfig

__all__ = [
    "DisplayConfig",
    "GitrackConfig",
    "IdsConfig",
    "SyncConfig",
    "load_config",
    "write_project_config",
]
