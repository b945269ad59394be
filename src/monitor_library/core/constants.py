# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""Default values shared by the monitor components."""

from pathlib import Path

# =============================================================================
# REGISTRY
# =============================================================================

DEFAULT_ACCOUNTS_FILE = (
    Path.home() / ".config" / "opencode" / "antigravity-accounts.json"
)

# Quiet period before a burst of writes is treated as settled
DEFAULT_DEBOUNCE_SECONDS = 0.1

# =============================================================================
# TIMERS
# =============================================================================

DEFAULT_STATUS_CLOCK_INTERVAL = 15.0
DEFAULT_HEARTBEAT_INTERVAL = 30.0
DEFAULT_QUOTA_POLL_INTERVAL = 120.0

# =============================================================================
# QUOTA PROVIDER
# =============================================================================

TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"

# Public client id of the desktop OAuth app the accounts were issued for
DEFAULT_CLIENT_ID = (
    "1071006060591-tmhssin2h21lcre235vtolojh4g403ep.apps.googleusercontent.com"
)

# Fixed preference order; first success wins
QUOTA_ENDPOINTS = (
    "https://cloudcode-pa.googleapis.com",
    "https://daily-cloudcode-pa.sandbox.googleapis.com",
)
FETCH_MODELS_PATH = "/v1internal:fetchAvailableModels"

QUOTA_HEADERS = {
    "User-Agent": "antigravity/1.11.5 windows/amd64",
    "X-Goog-Api-Client": "google-cloud-sdk vscode_cloudshelleditor/0.1",
    "Client-Metadata": '{"ideType":"IDE_UNSPECIFIED","platform":"PLATFORM_UNSPECIFIED","pluginType":"GEMINI"}',
}

DEFAULT_REQUEST_TIMEOUT = 15.0
DEFAULT_ACCOUNT_DELAY_SECONDS = 0.5

# Cached access tokens are reused only while they have this much life left
TOKEN_EXPIRY_MARGIN_MS = 60_000
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600

# =============================================================================
# FAMILY CLASSIFICATION
# =============================================================================

# Case-insensitive substrings matched against model names
CLAUDE_MODEL_MARKERS = ("claude", "anthropic")
GEMINI_MODEL_MARKERS = ("gemini",)

# =============================================================================
# BROADCASTER
# =============================================================================

DEFAULT_SUBSCRIBER_QUEUE_SIZE = 256

# =============================================================================
# TRANSPORT
# =============================================================================

DEFAULT_DASHBOARD_HOST = "127.0.0.1"
DEFAULT_DASHBOARD_PORT = 3456
