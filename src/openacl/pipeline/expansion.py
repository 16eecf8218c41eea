"""Identity expansion.

Turns each distinct resolved identity into a SecurityPrincipal with its
directory attributes and, for groups, its direct members. Expansion is
one level deep: a nested group shows up as a member but is never opened.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import replace

from openacl.core.cache import CacheSet
from openacl.core.constants import FAKE_PRINCIPALS, MEMBER_EXPANSION_DEPTH
from openacl.core.dispatcher import Dispatcher
from openacl.core.types import (
    DirectoryEntry,
    ExpandedIdentity,
    PrincipalType,
    ResolutionStatus,
    ResolvedAce,
    ResolvedIdentity,
    SecurityPrincipal,
)
from openacl.directory.base import DirectoryService
from openacl.exceptions import DirectoryError

logger = logging.getLogger(__name__)


def group_by_principal(resolved: Iterable[ResolvedAce]) -> dict[str, list[ResolvedAce]]:
    """Group resolved ACEs by qualified principal name (case-insensitive)."""
    groups: dict[str, list[ResolvedAce]] = {}
    for item in resolved:
        groups.setdefault(item.identity.domain_qualified_name.upper(), []).append(item)
    return groups


def shell_principal(identity: ResolvedIdentity) -> SecurityPrincipal:
    """Placeholder principal for an identity the directory could not describe."""
    if identity.status == ResolutionStatus.FAKE:
        caption, is_group, description = FAKE_PRINCIPALS.get(
            identity.sid or "", (identity.domain_qualified_name, False, "")
        )
        return SecurityPrincipal(
            name=identity.domain_qualified_name,
            sid=identity.sid,
            principal_type=PrincipalType.FAKE_GROUP if is_group else PrincipalType.FAKE_USER,
            attributes={"description": description} if description else {},
            status=ResolutionStatus.FAKE,
        )
    return SecurityPrincipal(
        name=identity.domain_qualified_name,
        sid=identity.sid,
        principal_type=PrincipalType.USER,
        status=identity.status,
    )


def _principal_from_entry(entry: DirectoryEntry, status: ResolutionStatus, sid: str | None = None) -> SecurityPrincipal:
    return SecurityPrincipal(
        name=entry.name,
        sid=entry.sid or sid,
        principal_type=entry.principal_type,
        attributes=dict(entry.attributes),
        status=status,
    )


class IdentityExpander:
    """Builds SecurityPrincipals for resolved identities.

    Directory entries go through ``caches.directory_entries`` so a principal
    that is both listed in an ACL and a member of a listed group is fetched
    once.
    """

    def __init__(
        self,
        caches: CacheSet,
        directory: DirectoryService,
        expand_group_members: bool = True,
    ):
        self.caches = caches
        self.directory = directory
        self.expand_group_members = expand_group_members

    def expand(self, identity: ResolvedIdentity) -> SecurityPrincipal:
        if identity.status != ResolutionStatus.RESOLVED:
            return shell_principal(identity)

        entry = self.caches.directory_entries.get_or_compute(
            identity.domain_qualified_name, self._lookup
        )
        if entry is None:
            local = self.caches.local_accounts_by_caption.get(identity.domain_qualified_name)
            if local is None:
                logger.debug("No directory entry for %s", identity.domain_qualified_name)
                return shell_principal(replace(identity, status=ResolutionStatus.UNRESOLVED_SID))
            entry = DirectoryEntry(
                name=local.caption,
                sid=local.sid,
                principal_type=PrincipalType.GROUP if local.is_group else PrincipalType.USER,
                attributes={"description": local.description} if local.description else {},
            )

        principal = _principal_from_entry(entry, identity.status, identity.sid)
        if principal.is_group and self.expand_group_members:
            principal.members = self._members_of(principal.name, depth=MEMBER_EXPANSION_DEPTH)
        return principal

    def _lookup(self, name: str) -> DirectoryEntry | None:
        try:
            return self.directory.lookup_principal(name)
        except (DirectoryError, OSError) as e:
            logger.warning("Directory lookup failed for %s: %s", name, e)
            return None

    def _members_of(self, group_name: str, depth: int) -> list[SecurityPrincipal]:
        if depth < 1:
            return []
        try:
            entries = self.directory.list_group_members(group_name)
        except (DirectoryError, OSError) as e:
            logger.warning("Cannot list members of %s: %s", group_name, e)
            return []

        members: dict[str, SecurityPrincipal] = {}
        for entry in entries:
            canonical = self.caches.directory_entries.put_if_absent(entry.name, entry) or entry
            # depth - 1 == 0: members never carry members of their own
            members.setdefault(
                canonical.name.upper(),
                _principal_from_entry(canonical, ResolutionStatus.RESOLVED),
            )
        return list(members.values())


def expand_identities(
    resolved: Iterable[ResolvedAce],
    caches: CacheSet,
    directory: DirectoryService,
    dispatcher: Dispatcher,
    expand_group_members: bool = True,
) -> list[ExpandedIdentity]:
    """Expand every distinct principal referenced by *resolved* exactly once.

    Returns one ExpandedIdentity per principal, sorted by principal name,
    each carrying every ACE that referenced it.
    """
    groups = group_by_principal(resolved)
    expander = IdentityExpander(caches, directory, expand_group_members)

    def _expand(items: list[ResolvedAce]) -> ExpandedIdentity:
        principal = expander.expand(items[0].identity)
        return ExpandedIdentity(principal=principal, access_entries=[item.ace for item in items])

    outcome = dispatcher.map(
        list(groups.values()),
        _expand,
        key=lambda items: items[0].identity.domain_qualified_name,
    )
    by_name = {
        items[0].identity.domain_qualified_name.upper(): result
        for items, result in outcome.completed
    }

    expanded: list[ExpandedIdentity] = []
    for name, items in groups.items():
        result = by_name.get(name)
        if result is None:
            result = ExpandedIdentity(
                principal=shell_principal(items[0].identity),
                access_entries=[item.ace for item in items],
            )
        expanded.append(result)

    expanded.sort(key=lambda item: item.principal.name.upper())
    logger.info(
        "Expanded %d principals (%d groups)",
        len(expanded),
        sum(1 for item in expanded if item.principal.is_group),
    )
    return expanded
