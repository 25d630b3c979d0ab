"""Runtime configuration for pastoralist - centralized configuration management."""

import copy
import json
import os
from pathlib import Path
from typing import Any

from pastoralist.utils.constants import (
    CONFIG_FILE_NAME,
    DEFAULT_CLI_TIMEOUT,
    DEFAULT_GH_CLI_TIMEOUT,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_INSTALL_TIMEOUT,
    DEFAULT_SCAN_TIMEOUT,
)
from pastoralist.utils.logging import logger

DEFAULTS = {
    "timeouts": {
        "cli": DEFAULT_CLI_TIMEOUT,
        "scan": DEFAULT_SCAN_TIMEOUT,
        "install": DEFAULT_INSTALL_TIMEOUT,
        "gh_cli": DEFAULT_GH_CLI_TIMEOUT,
        "http": DEFAULT_HTTP_TIMEOUT,
    },
    "limits": {
        "cache_max": 500,
        "cache_ttl_ms": 60 * 60 * 1000,
        "osv_concurrency": 10,
        "registry_concurrency": 5,
    },
    "retry": {
        "retries": 3,
        "factor": 2,
        "min_timeout": 1000,
        "max_timeout": 30000,
    },
}


def load_runtime_config(root: str = ".") -> dict[str, Any]:
    """
    Load runtime configuration from .pastoralist/config.json and environment variables.

    Config priority (highest to lowest):
    1. Environment variables (PASTORALIST_<SECTION>_<KEY>)
    2. .pastoralist/config.json file
    3. Built-in defaults

    Args:
        root: Root directory to look for config file

    Returns:
        Configuration dictionary with merged values
    """
    cfg = copy.deepcopy(DEFAULTS)

    path = Path(root) / ".pastoralist" / CONFIG_FILE_NAME
    try:
        if path.exists():
            with open(path, encoding="utf-8") as f:
                user = json.load(f)

            if isinstance(user, dict):
                for section in cfg:
                    if section in user and isinstance(user[section], dict):
                        for key, value in user[section].items():
                            if key in cfg[section] and isinstance(value, (int, float)) and not isinstance(value, bool):
                                cfg[section][key] = value
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Could not load config file from {path}: {e}")
        logger.info("Continuing with default configuration")

    for section in cfg:
        for key in cfg[section]:
            env_var = f"PASTORALIST_{section.upper()}_{key.upper()}"
            if env_var in os.environ:
                value = os.environ[env_var]
                try:
                    default_value = cfg[section][key]
                    if isinstance(default_value, float):
                        cfg[section][key] = float(value)
                    else:
                        cfg[section][key] = int(value)
                except ValueError as e:
                    logger.warning(f"Invalid value for environment variable {env_var}: '{value}' - {e}")
                    logger.info(f"Using default value: {cfg[section][key]}")

    return cfg
