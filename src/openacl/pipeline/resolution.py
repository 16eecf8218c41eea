"""ACE identity resolution.

Maps the raw identity reference of every ACE (a string SID or an
NT-style ``DOMAIN\\name``) to a domain-qualified ResolvedIdentity. Each
distinct reference is resolved once per run through the identity cache,
however many ACEs and workers ask for it.

Every ACE gets exactly one ResolvedIdentity. References that cannot be
resolved come back as UNRESOLVED_SID rather than raising.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from openacl.core.cache import CacheSet
from openacl.core.constants import BUILTIN_DOMAINS, FAKE_DOMAINS, FAKE_PRINCIPALS, FAKE_PRINCIPALS_BY_CAPTION
from openacl.core.dispatcher import Dispatcher
from openacl.core.types import (
    AccessControlEntry,
    ResolutionStatus,
    ResolvedAce,
    ResolvedIdentity,
    domain_sid_of,
    is_sid,
    split_account_name,
)
from openacl.directory.base import DirectoryService
from openacl.directory.filesystem import server_from_path
from openacl.exceptions import DirectoryError

logger = logging.getLogger(__name__)


def unresolved_identity(reference: str) -> ResolvedIdentity:
    """Identity used when a reference could not be resolved at all."""
    sid = reference.upper() if is_sid(reference) else None
    return ResolvedIdentity(
        identity_reference=reference,
        domain_qualified_name=reference,
        sid=sid,
        status=ResolutionStatus.UNRESOLVED_SID,
    )


def resolve_identity(
    reference: str,
    server_name: str,
    caches: CacheSet,
    directory: DirectoryService,
) -> ResolvedIdentity:
    """Resolve one identity reference (uncached; see resolve_access_entries)."""
    text = reference.strip()
    if is_sid(text):
        return _resolve_sid(reference, text.upper(), server_name, caches, directory)
    return _resolve_name(reference, text, caches)


def _resolve_sid(
    reference: str,
    sid: str,
    server_name: str,
    caches: CacheSet,
    directory: DirectoryService,
) -> ResolvedIdentity:
    local = caches.local_accounts_by_sid.get(sid)
    if local is not None:
        return ResolvedIdentity(reference, local.caption, local.sid, ResolutionStatus.RESOLVED)

    if sid in FAKE_PRINCIPALS:
        caption = FAKE_PRINCIPALS[sid][0]
        return ResolvedIdentity(reference, caption, sid, ResolutionStatus.FAKE)

    server = caches.servers.get(server_name)
    if server is not None and server.reachable:
        try:
            name = directory.lookup_sid(sid, server.name)
        except (DirectoryError, OSError) as e:
            logger.warning("SID lookup failed for %s on %s: %s", sid, server.name, e)
            name = None
        if name:
            return ResolvedIdentity(reference, name, sid, ResolutionStatus.RESOLVED)

    domain = caches.domains_by_sid.get(domain_sid_of(sid))
    if domain is not None:
        return ResolvedIdentity(
            reference, f"{domain.netbios}\\{sid}", sid, ResolutionStatus.UNRESOLVED_SID
        )
    return ResolvedIdentity(reference, sid, sid, ResolutionStatus.UNRESOLVED_SID)


def _resolve_name(reference: str, name: str, caches: CacheSet) -> ResolvedIdentity:
    domain, account = split_account_name(name)

    local = caches.local_accounts_by_caption.get(name)
    if local is None and not domain:
        local = caches.local_accounts_by_caption.get(f"BUILTIN\\{account}")
    if local is not None:
        return ResolvedIdentity(reference, local.caption, local.sid, ResolutionStatus.RESOLVED)

    fake_sid = FAKE_PRINCIPALS_BY_CAPTION.get(name.upper())
    if fake_sid is not None:
        caption = FAKE_PRINCIPALS[fake_sid][0]
        return ResolvedIdentity(reference, caption, fake_sid, ResolutionStatus.FAKE)
    if domain.upper() in FAKE_DOMAINS:
        return ResolvedIdentity(reference, name, None, ResolutionStatus.FAKE)

    if domain:
        server = caches.servers.get(domain)
        if server is not None and not server.reachable:
            logger.debug("Server %s of %s was not reachable during discovery", domain, name)
            return ResolvedIdentity(reference, name, None, ResolutionStatus.UNRESOLVED_SID)

    if domain and domain.upper() not in BUILTIN_DOMAINS:
        known = caches.find_domain(domain)
        if known is None:
            logger.debug("Domain %s of %s is not a known or trusted domain", domain, name)
        elif known.netbios.upper() != domain.upper():
            # DNS-qualified reference (contoso.com\alice) -> NetBIOS form
            name = f"{known.netbios}\\{account}"
    return ResolvedIdentity(reference, name, None, ResolutionStatus.RESOLVED)


def resolve_access_entries(
    entries: Iterable[AccessControlEntry],
    caches: CacheSet,
    directory: DirectoryService,
    dispatcher: Dispatcher,
    local_server: str,
) -> list[ResolvedAce]:
    """Resolve the identity of every ACE.

    Returns one ResolvedAce per input ACE, in input order, whatever the
    dispatcher's completion order. ACEs whose work item failed or timed
    out get an UNRESOLVED_SID identity.
    """
    indexed = list(enumerate(entries))

    def _resolve(item: tuple[int, AccessControlEntry]) -> ResolvedAce:
        _, ace = item
        server = server_from_path(ace.source_path, local_server)
        identity = caches.identities.get_or_compute(
            ace.identity_reference,
            lambda ref: resolve_identity(ref, server, caches, directory),
        )
        return ResolvedAce(ace=ace, identity=identity)

    outcome = dispatcher.map(
        indexed,
        _resolve,
        key=lambda item: f"#{item[0]} {item[1].identity_reference} on {item[1].source_path}",
    )
    by_index = {index: resolved for (index, _), resolved in outcome.completed}

    resolved: list[ResolvedAce] = []
    for index, ace in indexed:
        result = by_index.get(index)
        if result is None:
            result = ResolvedAce(ace=ace, identity=unresolved_identity(ace.identity_reference))
        resolved.append(result)

    counts: dict[str, int] = {}
    for item in resolved:
        counts[item.identity.status.value] = counts.get(item.identity.status.value, 0) + 1
    logger.info(
        "Resolved %d ACEs (%d distinct identities): %s",
        len(resolved),
        len(caches.identities),
        counts,
    )
    return resolved
