"""Deduplication across ignored domains and per-folder aggregation.

Accounts whose names differ only by an ignored domain prefix
(``CONTOSO1\\svc`` and ``CONTOSO2\\svc`` with both domains ignored) are the
same account for reporting purposes and are merged under the bare name.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import replace

from openacl.core.types import AccountAccess, AccountPermissionRow, FolderPermission, split_account_name

logger = logging.getLogger(__name__)


def strip_ignored_domain(name: str, ignore_domains: Iterable[str]) -> str:
    """Drop the domain prefix of *name* when it is one of *ignore_domains*."""
    domain, account = split_account_name(name)
    if domain and domain.upper() in {d.upper() for d in ignore_domains}:
        return account
    return name


def merge_accounts(
    accounts: Iterable[AccountAccess],
    ignore_domains: Iterable[str] = (),
) -> list[AccountAccess]:
    """Merge accounts that are equal once ignored domains are stripped.

    The merged account keeps the first-seen position, the union of all
    source rows (unique per ACE and via group, in order) and, as its
    representative, the account with the most non-empty attributes.
    Ties go to the first one seen. ``via_group`` names lose ignored domain
    prefixes the same way. Merging merged accounts changes nothing.
    """
    ignored = [d.upper() for d in ignore_domains]
    merged: dict[str, AccountAccess] = {}
    seen: dict[str, set] = {}

    for access in accounts:
        display = strip_ignored_domain(access.name, ignored)
        key = display.upper()
        current = merged.get(key)
        if current is None:
            current = merged[key] = AccountAccess(name=display, account=access.account)
            seen[key] = set()
        elif access.account.attribute_richness > current.account.attribute_richness:
            current.account = access.account

        for row in access.rows:
            if row.via_group:
                row = replace(row, via_group=strip_ignored_domain(row.via_group, ignored))
            if row.access_key in seen[key]:
                continue
            seen[key].add(row.access_key)
            current.rows.append(row)

    for current in merged.values():
        current.rows = [
            replace(row, account=current.account, display_name=current.name) for row in current.rows
        ]
    return list(merged.values())


def deduplicate(
    rows: Iterable[AccountPermissionRow],
    ignore_domains: Iterable[str] = (),
) -> list[AccountAccess]:
    """Group flattened rows into accounts, merging across ignored domains."""
    accounts = merge_accounts((AccountAccess.from_row(row) for row in rows), ignore_domains)
    logger.debug("Deduplicated rows into %d accounts", len(accounts))
    return accounts


def aggregate_by_folder(accounts: Iterable[AccountAccess]) -> list[FolderPermission]:
    """Regroup account rows by the folder of their source ACE."""
    folders: dict[str, FolderPermission] = {}
    for access in accounts:
        for row in access.rows:
            path = row.source_ace.source_path
            folder = folders.get(path.upper())
            if folder is None:
                folder = folders[path.upper()] = FolderPermission(folder_path=path)
            folder.rows.append(row)

    result = sorted(folders.values(), key=lambda f: f.folder_path.upper())
    for folder in result:
        # stable: rows of one account keep their ACE order
        folder.rows.sort(key=lambda row: row.name.upper())
    return result
