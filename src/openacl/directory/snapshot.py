"""
Offline directory and ACL snapshot.

A snapshot is a YAML (or JSON) document describing domains, servers,
principals, DFS-style targets and folder ACEs. It implements all three
collaborator protocols, so a report can be produced without a live
domain: captured data from a customer site, fixtures for tests, or a
what-if edit of a real export.

Document layout::

    domains:
      - {netbios: CONTOSO, fqdn: contoso.com, sid: S-1-5-21-1-2-3}
    trusts: [CONTOSO]            # optional; defaults to every domain
    servers:
      - name: FS01
        domain: CONTOSO
        unreachable: false
        local_accounts:
          - {caption: BUILTIN\\Administrators, sid: S-1-5-32-544, group: true}
    principals:
      - name: CONTOSO\\Admins
        sid: S-1-5-21-1-2-3-1100
        type: Group
        attributes: {description: File server admins}
        members: [CONTOSO\\bob]
    targets:
      \\\\contoso.com\\dfs\\projects: [\\\\FS01\\projects]
    access:
      \\\\FS01\\projects:
        - {identity: CONTOSO\\Admins, type: Allow, rights: FullControl, inherited: false}
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import yaml

from openacl.core.constants import NAMED_RIGHTS, FileSystemRights
from openacl.core.types import (
    AccessControlEntry,
    AccessControlType,
    DirectoryEntry,
    DirectoryServer,
    DomainInfo,
    LocalAccount,
    PrincipalType,
    is_sid,
)
from openacl.directory.filesystem import normalize_path, path_depth
from openacl.exceptions import (
    ConfigurationError,
    DirectoryLookupError,
    FilesystemError,
    ServerUnreachableError,
)

logger = logging.getLogger(__name__)

_NAMED_RIGHTS = {name.upper(): bits for name, bits in NAMED_RIGHTS}


def parse_rights(value: Any) -> int:
    """Parse a rights value from a snapshot.

    Accepts an integer, a hex/decimal string, a composite name
    (``FullControl``, ``Modify``, ``ReadAndExecute``, ``Read``, ``Write``),
    a single right (``ReadData``, ``Delete``, ...), a ``|``-separated
    combination of those, or a list.
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid rights value: {value!r}", setting="rights")
    if isinstance(value, int):
        return value
    if isinstance(value, (list, tuple)):
        mask = 0
        for part in value:
            mask |= parse_rights(part)
        return mask
    if not isinstance(value, str):
        raise ConfigurationError(f"Invalid rights value: {value!r}", setting="rights")

    text = value.strip()
    if "|" in text or "," in text:
        return parse_rights([p for p in text.replace(",", "|").split("|") if p.strip()])
    try:
        return int(text, 0)
    except ValueError:
        pass

    key = text.upper().replace(" ", "")
    if key in _NAMED_RIGHTS:
        return _NAMED_RIGHTS[key]
    for flag in FileSystemRights:
        if (flag.name or "").replace("_", "") == key:
            return flag.value
    raise ConfigurationError(f"Unknown right: {value!r}", setting="rights")


def _parse_principal_type(value: str | None) -> PrincipalType:
    if not value:
        return PrincipalType.USER
    for member in PrincipalType:
        if member.value.upper() == value.strip().upper():
            return member
    raise ConfigurationError(f"Unknown principal type: {value!r}", setting="principals.type")


def _parse_local_account(raw: dict[str, Any]) -> LocalAccount:
    return LocalAccount(
        caption=str(raw["caption"]),
        sid=str(raw["sid"]),
        is_group=bool(raw.get("group", False)),
        description=str(raw.get("description", "")),
    )


class DirectorySnapshot:
    """Directory, target resolver and ACL reader backed by a snapshot document."""

    def __init__(self, data: dict[str, Any], source: str | None = None):
        self.source = source or "<memory>"
        self._domains: dict[str, DomainInfo] = {}
        self._servers: dict[str, dict[str, Any]] = {}
        self._principals: dict[str, dict[str, Any]] = {}
        self._principals_by_sid: dict[str, dict[str, Any]] = {}
        self._local: dict[str, tuple[LocalAccount, ...]] = {}
        self._targets: dict[str, list[str]] = {}
        self._access: dict[str, list[AccessControlEntry]] = {}
        self._trusts: list[str] | None = None
        self._load(data)

    # ── Loading ─────────────────────────────────────────────────────

    @classmethod
    def from_file(cls, path: str | Path) -> DirectorySnapshot:
        """Load a snapshot from a ``.yaml``/``.yml`` or ``.json`` file."""
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                if path.suffix.lower() == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f) or {}
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Cannot read snapshot: {e}",
                context=f"loading {path}",
            ) from e
        if not isinstance(data, dict):
            raise ConfigurationError("Snapshot must be a mapping", context=f"loading {path}")
        logger.info("Loaded directory snapshot from %s", path)
        return cls(data, source=str(path))

    def _load(self, data: dict[str, Any]) -> None:
        section = "domains"
        try:
            for raw in data.get("domains") or []:
                domain = DomainInfo(
                    netbios=str(raw["netbios"]),
                    fqdn=str(raw.get("fqdn") or raw["netbios"]).lower(),
                    sid=raw.get("sid"),
                )
                self._domains[domain.netbios.upper()] = domain

            section = "trusts"
            trusts = data.get("trusts")
            if trusts is not None:
                self._trusts = [str(t).upper() for t in trusts]

            section = "servers"
            for raw in data.get("servers") or []:
                key = str(raw["name"]).upper()
                self._servers[key] = raw
                self._local[key] = tuple(
                    _parse_local_account(acct) for acct in raw.get("local_accounts") or []
                )

            section = "principals"
            for raw in data.get("principals") or []:
                entry = dict(raw)
                entry["name"] = str(raw["name"])
                _parse_principal_type(entry.get("type"))
                self._principals[entry["name"].upper()] = entry
                if raw.get("sid"):
                    self._principals_by_sid[str(raw["sid"]).upper()] = entry

            section = "targets"
            for source, links in (data.get("targets") or {}).items():
                self._targets[normalize_path(source).upper()] = [normalize_path(t) for t in links]

            section = "access"
            for folder, entries in (data.get("access") or {}).items():
                folder_path = normalize_path(folder)
                self._access[folder_path.upper()] = [
                    self._parse_ace(folder_path, raw) for raw in entries or []
                ]
        except KeyError as e:
            raise ConfigurationError(
                f"Missing required key {e.args[0]!r}",
                setting=section,
                context=f"loading {self.source}",
            ) from e
        except (TypeError, ValueError, AttributeError) as e:
            raise ConfigurationError(
                f"Malformed {section} entry: {e}",
                setting=section,
                context=f"loading {self.source}",
            ) from e

        logger.debug(
            "Snapshot %s: %d domains, %d servers, %d principals, %d folders",
            self.source,
            len(self._domains),
            len(self._servers),
            len(self._principals),
            len(self._access),
        )

    @staticmethod
    def _parse_ace(folder_path: str, raw: dict[str, Any]) -> AccessControlEntry:
        try:
            ace_type = AccessControlType(str(raw.get("type", "Allow")).capitalize())
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid access type {raw.get('type')!r}",
                context=f"ACE on {folder_path}",
            ) from e
        return AccessControlEntry(
            source_path=folder_path,
            identity_reference=str(raw["identity"]),
            access_control_type=ace_type,
            rights=parse_rights(raw.get("rights", 0)),
            is_inherited=bool(raw.get("inherited", False)),
            inheritance_flags=int(raw.get("inheritance_flags", 0)),
            propagation_flags=int(raw.get("propagation_flags", 0)),
        )

    # ── TargetResolver ──────────────────────────────────────────────

    def resolve_targets(self, path: str) -> list[str]:
        normalized = normalize_path(path)
        return list(self._targets.get(normalized.upper(), [normalized]))

    # ── AccessListReader ────────────────────────────────────────────

    def list_access_entries(self, folder_path: str, recurse_levels: int) -> list[AccessControlEntry]:
        root = normalize_path(folder_path)
        root_key = root.upper()
        if root_key not in self._access:
            raise FilesystemError("No access list for folder", path=root, operation="list_access_entries")

        root_depth = path_depth(root)
        entries: list[AccessControlEntry] = []
        for key in sorted(self._access):
            if key == root_key:
                entries.extend(self._access[key])
            elif key.startswith(root_key.rstrip("\\") + "\\"):
                if path_depth(key) - root_depth <= recurse_levels:
                    entries.extend(self._access[key])
        return entries

    # ── DirectoryService ────────────────────────────────────────────

    def discover_server(self, name: str) -> DirectoryServer:
        raw = self._servers.get(name.upper())
        if raw is None:
            raise DirectoryLookupError("Unknown server", server=name)
        if raw.get("unreachable"):
            raise ServerUnreachableError("Server did not respond", server=name)

        domain = None
        if raw.get("domain"):
            domain = self._domains.get(str(raw["domain"]).upper())
        return DirectoryServer(
            name=str(raw["name"]), domain=domain, local_accounts=self._local[name.upper()]
        )

    def lookup_trusted_domains(self) -> list[DomainInfo]:
        if self._trusts is None:
            return list(self._domains.values())
        return [self._domains[t] for t in self._trusts if t in self._domains]

    def lookup_sid(self, sid: str, server: str) -> str | None:
        entry = self._principals_by_sid.get(sid.upper())
        if entry is not None:
            return entry["name"]
        for account in self._local.get(server.upper(), ()):
            if account.sid.upper() == sid.upper():
                return account.caption
        return None

    def lookup_principal(self, name: str) -> DirectoryEntry | None:
        raw = self._find_principal(name)
        if raw is not None:
            return self._to_entry(raw)
        for account in self._local_accounts():
            if account.caption.upper() == name.upper():
                return DirectoryEntry(
                    name=account.caption,
                    sid=account.sid,
                    principal_type=PrincipalType.GROUP if account.is_group else PrincipalType.USER,
                    attributes={"description": account.description} if account.description else {},
                )
        return None

    def list_group_members(self, name: str) -> list[DirectoryEntry]:
        raw = self._find_principal(name)
        if raw is None:
            raise DirectoryLookupError("Unknown group", identity=name)
        members: list[DirectoryEntry] = []
        for ref in raw.get("members") or []:
            member = self._find_principal(str(ref))
            if member is not None:
                members.append(self._to_entry(member))
            else:
                # Member not in the snapshot: keep it, with nothing known about it
                members.append(DirectoryEntry(
                    name=str(ref),
                    sid=str(ref) if is_sid(str(ref)) else None,
                    principal_type=PrincipalType.USER,
                ))
        return members

    # ── Helpers ─────────────────────────────────────────────────────

    def _find_principal(self, ref: str) -> dict[str, Any] | None:
        if is_sid(ref):
            return self._principals_by_sid.get(ref.upper())
        return self._principals.get(ref.upper())

    def _local_accounts(self) -> Iterable[LocalAccount]:
        for accounts in self._local.values():
            yield from accounts

    @staticmethod
    def _to_entry(raw: dict[str, Any]) -> DirectoryEntry:
        return DirectoryEntry(
            name=raw["name"],
            sid=raw.get("sid"),
            principal_type=_parse_principal_type(raw.get("type")),
            attributes=dict(raw.get("attributes") or {}),
        )
