"""Centralized constants for the pastoralist utils package.

Single source of truth for paths, environment variable names, and the
timeouts used by the security providers.
"""

from pathlib import Path

# ============================================================================
# OUTPUT DIRECTORIES
# ============================================================================

STATE_DIR = Path("./.pastoralist")

ERROR_LOG_FILE = STATE_DIR / "error.log"
CONFIG_FILE_NAME = "config.json"

# ============================================================================
# ENVIRONMENT VARIABLES (read only by the CLI entry point)
# ============================================================================

ENV_GITHUB_TOKEN = "GITHUB_TOKEN"
ENV_SNYK_TOKEN = "SNYK_TOKEN"
ENV_SOCKET_TOKEN = "SOCKET_SECURITY_API_KEY"

ENV_MOCK_MODE = "PASTORALIST_MOCK_SECURITY"
ENV_FORCE_VULNERABLE = "MOCK_FORCE_VULNERABLE"
ENV_MOCK_FILE = "MOCK_ALERTS_FILE"

PROVIDER_TOKEN_ENV = {
    "github": ENV_GITHUB_TOKEN,
    "snyk": ENV_SNYK_TOKEN,
    "socket": ENV_SOCKET_TOKEN,
}

# ============================================================================
# TIMEOUTS (seconds)
# ============================================================================

DEFAULT_CLI_TIMEOUT = 30
DEFAULT_SCAN_TIMEOUT = 60
DEFAULT_INSTALL_TIMEOUT = 120
DEFAULT_GH_CLI_TIMEOUT = 60
DEFAULT_HTTP_TIMEOUT = 30

# ============================================================================
# TOKEN PAGES (shown in auth messages)
# ============================================================================

GITHUB_TOKEN_URL = "https://github.com/settings/tokens"
SNYK_TOKEN_URL = "https://app.snyk.io/account"
SOCKET_TOKEN_URL = "https://socket.dev/dashboard/api-keys"

AUTH_MESSAGES = {
    "GITHUB_CLI_NOT_FOUND": (
        "GitHub CLI not found and no GITHUB_TOKEN provided. Please install gh CLI "
        f"or set GITHUB_TOKEN environment variable. Create a token at: {GITHUB_TOKEN_URL}"
    ),
    "SNYK_AUTH_REQUIRED": (
        "Snyk requires authentication. Set SNYK_TOKEN or provide --token. "
        f"Create a token at: {SNYK_TOKEN_URL}"
    ),
    "SOCKET_AUTH_REQUIRED": (
        "Socket requires authentication. Set SOCKET_SECURITY_API_KEY or provide --token. "
        f"Create an API key at: {SOCKET_TOKEN_URL}"
    ),
}
