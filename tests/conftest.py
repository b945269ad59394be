"""
Shared fixtures and builders for the monitor test suite.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from monitor_library.accounts.registry import parse_registry
from monitor_library.core.types import RawRegistry

NOW = 1_700_000_000_000  # fixed evaluation time, epoch ms


def account_entry(
    email: str,
    refresh_token: Optional[str] = None,
    claude_reset: Optional[int] = None,
    gemini_reset: Optional[int] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """One registry account entry in the on-disk camelCase format."""
    entry: Dict[str, Any] = {
        "email": email,
        "refreshToken": refresh_token or f"refresh-{email}",
        "projectId": f"project-{email.split('@')[0]}",
        "addedAt": NOW - 86_400_000,
        "lastUsed": NOW - 60_000,
        "rateLimitResetTimes": {},
    }
    if claude_reset is not None:
        entry["rateLimitResetTimes"]["claude"] = claude_reset
    if gemini_reset is not None:
        entry["rateLimitResetTimes"]["gemini"] = gemini_reset
    entry.update(extra)
    return entry


def registry_document(
    accounts: List[Dict[str, Any]],
    active_index: Optional[int] = 0,
    active_by_family: Optional[Dict[str, int]] = None,
) -> Dict[str, Any]:
    doc: Dict[str, Any] = {"version": 1, "accounts": accounts}
    if active_index is not None:
        doc["activeIndex"] = active_index
    if active_by_family is not None:
        doc["activeIndexByFamily"] = active_by_family
    return doc


def make_registry(
    accounts: List[Dict[str, Any]],
    active_index: Optional[int] = 0,
    active_by_family: Optional[Dict[str, int]] = None,
) -> RawRegistry:
    return parse_registry(registry_document(accounts, active_index, active_by_family))


def write_registry(path: Path, document: Any) -> None:
    path.write_text(json.dumps(document), encoding="utf-8")


@pytest.fixture
def registry_path(tmp_path: Path) -> Path:
    path = tmp_path / "antigravity-accounts.json"
    write_registry(
        path,
        registry_document(
            [
                account_entry("alice@example.com"),
                account_entry("bob@example.com", claude_reset=NOW + 60_000),
            ]
        ),
    )
    return path
