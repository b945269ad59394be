# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from .builder import build_account_state, build_account_states, derive_status
from .clock import StatusClock, advance_account
from .diff import apply_changes, changed_fields, diff_accounts
from .registry import load_registry, parse_registry
from .store import AccountStore
from .watcher import RegistryWatcher

__all__ = [
    "AccountStore",
    "RegistryWatcher",
    "StatusClock",
    "advance_account",
    "apply_changes",
    "build_account_state",
    "build_account_states",
    "changed_fields",
    "derive_status",
    "diff_accounts",
    "load_registry",
    "parse_registry",
]
