"""Pastoralist utilities package."""

from .constants import ERROR_LOG_FILE, STATE_DIR
from .error_handler import handle_exceptions
from .exit_codes import ExitCodes
from .limit import ConcurrencyLimiter, create_limit
from .logging import logger
from .lru import LRUCache
from .retry import retry
from .semver import compare_versions

__all__ = [
    "STATE_DIR",
    "ERROR_LOG_FILE",
    "handle_exceptions",
    "ExitCodes",
    "ConcurrencyLimiter",
    "create_limit",
    "logger",
    "LRUCache",
    "retry",
    "compare_versions",
]
