"""Server and trusted-domain discovery.

Runs once, sequentially, before any identity resolution. Warming the server,
local-account and domain caches up front means the parallel resolution
workers all find them populated instead of each discovering the same
server at the same time.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from openacl.core.cache import CacheSet
from openacl.core.types import AccessControlEntry, DirectoryServer, DomainInfo
from openacl.directory.base import DirectoryService
from openacl.directory.filesystem import server_from_path
from openacl.exceptions import DirectoryError

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryResult:
    """Servers and domains found by the discovery pass."""

    servers: list[DirectoryServer] = field(default_factory=list)
    unreachable: list[str] = field(default_factory=list)
    domains: list[DomainInfo] = field(default_factory=list)


def distinct_servers(entries: Iterable[AccessControlEntry], local_server: str) -> list[str]:
    """Distinct (case-insensitive) servers hosting the folders of *entries*, in first-seen order."""
    seen: dict[str, str] = {}
    for ace in entries:
        server = server_from_path(ace.source_path, local_server)
        seen.setdefault(server.upper(), server)
    return list(seen.values())


def discover(
    entries: Iterable[AccessControlEntry],
    caches: CacheSet,
    directory: DirectoryService,
    local_server: str,
) -> DiscoveryResult:
    """Populate the server, local-account and domain caches.

    A server that cannot be discovered is cached as unreachable and its
    identities later resolve as unresolved SIDs. Nothing here is fatal.
    """
    result = DiscoveryResult()

    def _discover(name: str) -> DirectoryServer:
        try:
            return directory.discover_server(name)
        except (DirectoryError, OSError) as e:
            logger.warning("Server discovery failed for %s: %s", name, e)
            return DirectoryServer.unreachable(name)

    for name in distinct_servers(entries, local_server):
        server = caches.servers.get_or_compute(name, _discover)
        if not server.reachable:
            result.unreachable.append(server.name)
            continue

        result.servers.append(server)
        if server.domain is not None:
            caches.remember_domain(server.domain)
        for account in server.local_accounts:
            caches.remember_local_account(account)
        logger.debug(
            "Discovered server %s (domain %s, %d local accounts)",
            server.name,
            server.domain.netbios if server.domain else "-",
            len(server.local_accounts),
        )

    try:
        trusted = directory.lookup_trusted_domains()
    except (DirectoryError, OSError) as e:
        logger.warning("Trusted domain lookup failed: %s", e)
        trusted = []

    for domain in trusted:
        caches.remember_domain(domain)

    result.domains = [domain for _, domain in caches.domains_by_netbios.items()]
    logger.info(
        "Discovery: %d servers, %d unreachable, %d domains",
        len(result.servers),
        len(result.unreachable),
        len(result.domains),
    )
    return result
