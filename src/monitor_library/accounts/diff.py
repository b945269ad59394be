# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Account list diffing.

Diffs are keyed by email, never by position, so reordering the registry
produces no events. An update carries the complete new AccountState rather
than a minimal patch; ``AccountUpdated.fields`` lists which keys actually
changed so consumers that want a patch can project one.
"""

from typing import Dict, Iterable, List, Sequence

from ..core.types import AccountState
from ..events.types import AccountAdded, AccountRemoved, AccountUpdated, ChangeEvent


def _by_email(accounts: Iterable[AccountState]) -> Dict[str, AccountState]:
    return {account.email: account for account in accounts}


def changed_fields(previous: AccountState, current: AccountState) -> List[str]:
    """Names of the fields whose values differ between two states."""
    return [
        name
        for name in AccountState.field_names()
        if getattr(previous, name) != getattr(current, name)
    ]


def diff_accounts(
    previous: Sequence[AccountState], current: Sequence[AccountState]
) -> List[ChangeEvent]:
    """
    Compute the changes that turn ``previous`` into ``current``.

    Adds and updates come first in ``current`` order, then removals in
    ``previous`` order. No event is produced for an unchanged account.
    """
    prev_map = _by_email(previous)
    curr_map = _by_email(current)
    changes: List[ChangeEvent] = []

    for email, account in curr_map.items():
        prev = prev_map.get(email)
        if prev is None:
            changes.append(AccountAdded(account=account))
        elif prev != account:
            changes.append(
                AccountUpdated(
                    email=email,
                    account=account,
                    fields=tuple(changed_fields(prev, account)),
                )
            )

    for email in prev_map:
        if email not in curr_map:
            changes.append(AccountRemoved(email=email))

    return changes


def apply_changes(
    previous: Sequence[AccountState], changes: Iterable[ChangeEvent]
) -> List[AccountState]:
    """
    Replay change events onto an account list.

    Existing accounts keep their position, added accounts are appended.
    Keyed by email, the result equals the ``current`` the changes were
    computed from.
    """
    accounts = _by_email(previous)
    for change in changes:
        if isinstance(change, AccountAdded):
            accounts[change.account.email] = change.account
        elif isinstance(change, AccountUpdated):
            accounts[change.email] = change.account
        elif isinstance(change, AccountRemoved):
            accounts.pop(change.email, None)
    return list(accounts.values())
