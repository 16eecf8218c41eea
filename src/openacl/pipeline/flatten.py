"""Flatten expanded identities into one row per (ACE, account)."""

from __future__ import annotations

from collections.abc import Iterable

from openacl.core.types import AccountPermissionRow, ExpandedIdentity


def flatten(
    expanded: Iterable[ExpandedIdentity],
    expand_group_members: bool = True,
) -> list[AccountPermissionRow]:
    """Emit a row for every principal/ACE pair.

    A group with expansion enabled yields its own row plus one row per
    direct member, each attributed to the group through ``via_group``.
    """
    rows: list[AccountPermissionRow] = []
    for item in expanded:
        principal = item.principal
        for ace in item.access_entries:
            rows.append(AccountPermissionRow(account=principal, source_ace=ace))
            if not (expand_group_members and principal.is_group):
                continue
            for member in principal.members:
                rows.append(AccountPermissionRow(account=member, source_ace=ace, via_group=principal.name))
    return rows
