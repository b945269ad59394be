# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Account registry loading.

The registry is a JSON document written by an external tool:

    {
        "version": 1,
        "accounts": [
            {
                "email": "...",
                "refreshToken": "...",
                "projectId": "...",
                "managedProjectId": "...",
                "addedAt": 1700000000000,
                "lastUsed": 1700000000000,
                "rateLimitResetTimes": {"claude": 1700000060000, "gemini": ...}
            }
        ],
        "activeIndex": 0,
        "activeIndexByFamily": {"claude": 0, "gemini": 1}
    }

The content is untrusted. A document whose top-level shape is wrong raises
RegistryParseError; individual records that lack an email are skipped but
keep their position so the active pointers still line up.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..core.errors import RegistryParseError
from ..core.types import ModelFamily, RawAccountRecord, RawRegistry

lib_logger = logging.getLogger("monitor_library")


def _as_int(value: Any) -> Optional[int]:
    # bool is an int subclass; a flag is never a timestamp or index
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return None


def _as_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


def _parse_family_map(value: Any) -> Dict[ModelFamily, int]:
    result: Dict[ModelFamily, int] = {}
    if not isinstance(value, dict):
        return result
    for family in ModelFamily:
        parsed = _as_int(value.get(family.value))
        if parsed is not None:
            result[family] = parsed
    return result


def _parse_record(index: int, raw: Any) -> Optional[RawAccountRecord]:
    if not isinstance(raw, dict):
        lib_logger.warning(f"Registry entry {index} is not an object, skipping")
        return None

    email = _as_str(raw.get("email"))
    if not email:
        lib_logger.warning(f"Registry entry {index} has no email, skipping")
        return None

    return RawAccountRecord(
        email=email,
        refresh_token=_as_str(raw.get("refreshToken")) or "",
        project_id=_as_str(raw.get("projectId")),
        managed_project_id=_as_str(raw.get("managedProjectId")),
        added_at=_as_int(raw.get("addedAt")) or 0,
        last_used=_as_int(raw.get("lastUsed")) or 0,
        rate_limit_reset_times=_parse_family_map(raw.get("rateLimitResetTimes")),
    )


def parse_registry(data: Any, source: str = "<memory>") -> RawRegistry:
    """
    Convert a decoded registry document into a RawRegistry.

    Args:
        data: The decoded JSON document
        source: Label used in error messages

    Returns:
        RawRegistry with records in file order

    Raises:
        RegistryParseError: If the top-level shape is invalid
    """
    if not isinstance(data, dict):
        raise RegistryParseError(source, "top-level value is not an object")

    accounts_raw = data.get("accounts")
    if not isinstance(accounts_raw, list):
        raise RegistryParseError(source, "'accounts' is missing or not a list")

    records: List[Optional[RawAccountRecord]] = []
    seen = set()
    for index, raw in enumerate(accounts_raw):
        record = _parse_record(index, raw)
        if record is not None and record.email in seen:
            lib_logger.warning(
                f"Registry entry {index} duplicates {record.email}, skipping"
            )
            record = None
        if record is not None:
            seen.add(record.email)
        records.append(record)

    return RawRegistry(
        accounts=tuple(records),
        active_index=_as_int(data.get("activeIndex")),
        active_index_by_family=_parse_family_map(data.get("activeIndexByFamily")),
        version=_as_int(data.get("version")) or 1,
    )


def load_registry(path: Union[str, Path]) -> Optional[RawRegistry]:
    """
    Read and parse the registry file.

    Returns:
        RawRegistry, or None when the file does not exist (explicit empty)

    Raises:
        RegistryParseError: If the file exists but cannot be decoded or parsed
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        raise RegistryParseError(str(path), f"unreadable: {e}") from e

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise RegistryParseError(str(path), f"invalid JSON: {e}") from e

    return parse_registry(data, source=str(path))
