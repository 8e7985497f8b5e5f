"""Configuration loading for the SENIK-ADMIN worker.

Configuration is loaded from a single config/config.yaml file.

Main Functions
--------------

    - load_config(): Load configuration from YAML
    - get_config(): Get or load the singleton config instance
    - set_config(): Replace the singleton (tests)
    - reset_config(): Reset the singleton config instance

Usage Examples
--------------

    >>> from config import get_config
    >>>
    >>> config = get_config()
    >>> topic = config.get_topic("income_calculation")
    >>> policy = config.get_retry_policy()

Custom config path:
    >>> from pathlib import Path
    >>> config = load_config(config_path=Path("/custom/path/config.yaml"))

Configuration Priority
---------------------

Settings are merged in the following priority (highest to lowest):

1. Overrides passed to load_config()
2. Environment variables referenced as ${VAR} or ${VAR:-default} in YAML
3. YAML configuration file
4. Dataclass defaults
"""

from config.config import (
    AdminConfig,
    get_config,
    load_config,
    reset_config,
    set_config,
)

__all__ = [
    "load_config",
    "get_config",
    "set_config",
    "reset_config",
    "AdminConfig",
]
