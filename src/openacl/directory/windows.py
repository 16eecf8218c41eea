"""Live Windows directory service backed by pywin32.

Account lookups go through the LSA (``LookupAccountSid`` /
``LookupAccountName``) and the NetAPI (``win32net``) of the server that
hosts a share, so both domain and machine-local principals resolve.

Only the domain the queried machine is joined to is reported as trusted;
forest and external trusts are not enumerated.
"""

from __future__ import annotations

import logging
from typing import Any

from openacl.core.constants import BUILTIN_DOMAINS
from openacl.core.types import (
    DirectoryEntry,
    DirectoryServer,
    DomainInfo,
    LocalAccount,
    PrincipalType,
    split_account_name,
)
from openacl.exceptions import AdapterUnavailableError, DirectoryLookupError, ServerUnreachableError

logger = logging.getLogger(__name__)

ERROR_NONE_MAPPED = 1332

# SID_NAME_USE (winnt.h)
_SID_TYPES = {
    1: PrincipalType.USER,      # SidTypeUser
    2: PrincipalType.GROUP,     # SidTypeGroup
    4: PrincipalType.GROUP,     # SidTypeAlias
    5: PrincipalType.GROUP,     # SidTypeWellKnownGroup
    9: PrincipalType.COMPUTER,  # SidTypeComputer
}

# NetAPI enumeration buffer size
_PREFERRED_MAX_LEN = 0x10000


class WindowsDirectory:
    """DirectoryService over the Windows LSA and NetAPI."""

    def __init__(self, local_server: str):
        try:
            import win32net
            import win32security
        except ImportError as e:
            raise AdapterUnavailableError(
                "pywin32 is required for live directory lookups",
                adapter_type="directory",
                operation="init",
            ) from e
        self._win32net = win32net
        self._win32security = win32security
        self.local_server = local_server
        self._joined_domain: DomainInfo | None = None

    def _server_arg(self, server: str | None) -> str | None:
        if not server or server.upper() == self.local_server.upper():
            return None
        return f"\\\\{server}"

    # ── Servers and domains ─────────────────────────────────────────

    def discover_server(self, name: str) -> DirectoryServer:
        server = self._server_arg(name)
        try:
            info = self._win32net.NetWkstaGetInfo(server, 100)
        except self._win32net.error as e:
            raise ServerUnreachableError(f"NetWkstaGetInfo failed: {e}", server=name) from e

        domain = self._domain_info(server, info.get("langroup") or "")
        accounts = self._local_groups(server) + self._local_users(server)
        return DirectoryServer(name=info.get("computername") or name, domain=domain, local_accounts=tuple(accounts))

    def lookup_trusted_domains(self) -> list[DomainInfo]:
        if self._joined_domain is None:
            try:
                dc = self._win32security.DsGetDcName()
            except self._win32security.error as e:
                logger.info("Machine is not joined to a domain: %s", e)
                return []
            flat = dc.get("DomainName", "").split(".")[0]
            self._joined_domain = self._domain_info(None, flat)
        return [self._joined_domain] if self._joined_domain else []

    def _domain_info(self, server: str | None, netbios: str) -> DomainInfo | None:
        if not netbios:
            return None
        win32security = self._win32security
        sid = None
        try:
            sid_obj, _, _ = win32security.LookupAccountName(server, netbios)
            sid = win32security.ConvertSidToStringSid(sid_obj)
        except win32security.error as e:
            logger.debug("Cannot look up SID of domain %s: %s", netbios, e)
        fqdn = netbios.lower()
        try:
            fqdn = win32security.DsGetDcName(domainName=netbios).get("DomainName", fqdn)
        except win32security.error as e:
            logger.debug("Cannot locate a domain controller for %s: %s", netbios, e)
        return DomainInfo(netbios=netbios.upper(), fqdn=fqdn.lower(), sid=sid)

    def _enumerate(self, func, *args: Any) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        resume = 0
        while True:
            batch, _, resume = func(*args, resume, _PREFERRED_MAX_LEN)
            items.extend(batch)
            if not resume:
                return items

    def _local_groups(self, server: str | None) -> list[LocalAccount]:
        try:
            groups = self._enumerate(self._win32net.NetLocalGroupEnum, server, 1)
        except self._win32net.error as e:
            logger.warning("Cannot enumerate local groups on %s: %s", server or "local host", e)
            return []
        accounts = [self._local_account(server, g["name"], g.get("comment", ""), True) for g in groups]
        return [account for account in accounts if account is not None]

    def _local_users(self, server: str | None) -> list[LocalAccount]:
        try:
            users = self._enumerate(self._win32net.NetUserEnum, server, 1, 0)
        except self._win32net.error as e:
            logger.warning("Cannot enumerate local users on %s: %s", server or "local host", e)
            return []
        accounts = [self._local_account(server, u["name"], u.get("comment", ""), False) for u in users]
        return [account for account in accounts if account is not None]

    def _local_account(self, server: str | None, name: str, comment: str, is_group: bool) -> LocalAccount | None:
        win32security = self._win32security
        try:
            sid_obj, domain, _ = win32security.LookupAccountName(server, name)
        except win32security.error as e:
            logger.debug("Cannot look up local account %s: %s", name, e)
            return None
        return LocalAccount(
            caption=f"{domain}\\{name}",
            sid=win32security.ConvertSidToStringSid(sid_obj),
            is_group=is_group,
            description=comment or "",
        )

    # ── Principals ──────────────────────────────────────────────────

    def lookup_sid(self, sid: str, server: str) -> str | None:
        win32security = self._win32security
        try:
            sid_obj = win32security.ConvertStringSidToSid(sid)
            name, domain, _ = win32security.LookupAccountSid(self._server_arg(server), sid_obj)
        except win32security.error as e:
            if e.winerror == ERROR_NONE_MAPPED:
                return None
            raise DirectoryLookupError(f"LookupAccountSid failed: {e}", server=server, identity=sid) from e
        return f"{domain}\\{name}" if domain else name

    def lookup_principal(self, name: str) -> DirectoryEntry | None:
        win32security = self._win32security
        try:
            sid_obj, domain, sid_type = win32security.LookupAccountName(None, name)
        except win32security.error as e:
            if e.winerror == ERROR_NONE_MAPPED:
                return None
            raise DirectoryLookupError(f"LookupAccountName failed: {e}", identity=name) from e

        account = split_account_name(name)[1]
        principal_type = _SID_TYPES.get(sid_type, PrincipalType.USER)
        qualified = f"{domain}\\{account}" if domain else account
        return DirectoryEntry(
            name=qualified,
            sid=win32security.ConvertSidToStringSid(sid_obj),
            principal_type=principal_type,
            attributes=self._attributes(domain, account, principal_type),
        )

    def _attributes(self, domain: str, account: str, principal_type: PrincipalType) -> dict[str, Any]:
        server = self._domain_controller(domain)
        try:
            if principal_type == PrincipalType.USER:
                info = self._win32net.NetUserGetInfo(server, account, 2)
                return {
                    "full_name": info.get("full_name", ""),
                    "description": info.get("comment", ""),
                    "disabled": bool(info.get("flags", 0) & 0x2),  # UF_ACCOUNTDISABLE
                }
            if principal_type == PrincipalType.GROUP:
                info = self._win32net.NetGroupGetInfo(server, account, 1)
                return {"description": info.get("comment", "")}
        except self._win32net.error as e:
            logger.debug("No NetAPI attributes for %s\\%s: %s", domain, account, e)
        return {}

    def _domain_controller(self, domain: str) -> str | None:
        if not domain or domain.upper() in BUILTIN_DOMAINS or domain.upper() == self.local_server.upper():
            return None
        try:
            return self._win32security.DsGetDcName(domainName=domain).get("DomainControllerName")
        except self._win32security.error:
            return None

    def list_group_members(self, name: str) -> list[DirectoryEntry]:
        domain, account = split_account_name(name)
        win32net = self._win32net
        try:
            if not domain or domain.upper() in BUILTIN_DOMAINS or domain.upper() == self.local_server.upper():
                members = self._enumerate(win32net.NetLocalGroupGetMembers, None, account, 2)
                return [self._local_member(member) for member in members]
            server = self._domain_controller(domain)
            users = self._enumerate(win32net.NetGroupGetUsers, server, account, 0)
        except win32net.error as e:
            raise DirectoryLookupError(f"Cannot list members: {e}", identity=name) from e

        entries: list[DirectoryEntry] = []
        for user in users:
            entry = self.lookup_principal(f"{domain}\\{user['name']}")
            entries.append(entry or DirectoryEntry(
                name=f"{domain}\\{user['name']}", sid=None, principal_type=PrincipalType.USER
            ))
        return entries

    def _local_member(self, member: dict[str, Any]) -> DirectoryEntry:
        return DirectoryEntry(
            name=member["domainandname"],
            sid=self._win32security.ConvertSidToStringSid(member["sid"]),
            principal_type=_SID_TYPES.get(member.get("sidusage", 1), PrincipalType.USER),
        )
