# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Exception types for the monitor library.

Every failure in the monitor is attributable to a single account or a
single cycle. None of these are fatal to the process: callers catch them
at the component boundary, log, and keep the last known-good state.
"""

from typing import Optional


class MonitorError(Exception):
    """Base class for monitor errors."""


class RegistryParseError(MonitorError):
    """The account registry exists but its content could not be parsed."""

    def __init__(self, path: str, message: str):
        self.path = path
        self.message = message
        super().__init__(f"Malformed account registry {path}: {message}")


class TokenRefreshError(MonitorError):
    """Exchanging a refresh token for an access token failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class QuotaFetchError(MonitorError):
    """Every quota endpoint failed for one account."""

    def __init__(self, message: str, attempts: int = 0):
        self.message = message
        self.attempts = attempts
        super().__init__(message)


def mask_credential(credential: Optional[str], visible: int = 6) -> str:
    """Mask an opaque credential for log output, keeping only its tail."""
    if not credential:
        return "<none>"
    if len(credential) <= visible:
        return "*" * len(credential)
    return f"...{credential[-visible:]}"
