"""
Core data types for the openacl permission pipeline.

This module defines the records passed between pipeline stages:
- AccessControlEntry: one raw ACE as read from a folder's DACL
- ResolvedIdentity: an ACE identity reference mapped to a qualified name
- SecurityPrincipal: a fully described account or group (one level of members)
- AccountPermissionRow: the flattening unit, one per (ACE, principal) pair
- AccountAccess: rows merged across ignored domains
- FolderPermission: rows regrouped by folder for reporting
- NtfsIssue: a severity-tagged misconfiguration finding

Directory-side types (DomainInfo, LocalAccount, DirectoryServer,
DirectoryEntry) describe what the directory collaborators return.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .constants import SID_PATTERN, describe_rights

__all__ = [
    # Enums
    "AccessControlType",
    "ResolutionStatus",
    "PrincipalType",
    "Severity",
    "HealthStatus",
    # Functions
    "split_account_name",
    "is_sid",
    "domain_sid_of",
    # Directory records
    "DomainInfo",
    "LocalAccount",
    "DirectoryServer",
    "DirectoryEntry",
    # Pipeline records
    "AccessControlEntry",
    "ResolvedIdentity",
    "ResolvedAce",
    "SecurityPrincipal",
    "ExpandedIdentity",
    "AccountPermissionRow",
    "AccountAccess",
    "FolderPermission",
    "NtfsIssue",
]


class AccessControlType(str, Enum):
    """Whether an ACE grants or denies its rights."""

    ALLOW = "Allow"
    DENY = "Deny"


class ResolutionStatus(str, Enum):
    """Outcome of resolving an ACE identity reference."""

    RESOLVED = "Resolved"
    UNRESOLVED_SID = "UnresolvedSID"
    FAKE = "Fake"  # well-known pseudo principal with no directory object


class PrincipalType(str, Enum):
    """Kind of security principal."""

    USER = "User"
    GROUP = "Group"
    COMPUTER = "Computer"
    FAKE_USER = "FakeUser"
    FAKE_GROUP = "FakeGroup"

    @property
    def is_group(self) -> bool:
        return self in (PrincipalType.GROUP, PrincipalType.FAKE_GROUP)


class Severity(str, Enum):
    """Severity of an NTFS issue."""

    WARNING = "Warning"
    ERROR = "Error"


class HealthStatus(str, Enum):
    """Health a monitoring consumer derives from the issue feed."""

    OK = "ok"
    DEGRADED = "degraded"


# =============================================================================
# NAME HELPERS
# =============================================================================


def split_account_name(name: str) -> tuple[str, str]:
    """Split ``DOMAIN\\account`` into its parts.

    Names without a backslash return an empty domain.
    """
    if "\\" in name:
        domain, account = name.split("\\", 1)
        return domain, account
    return "", name


def is_sid(text: str) -> bool:
    """Check whether *text* is a string SID (``S-1-5-...``)."""
    return bool(SID_PATTERN.match(text.strip()))


def domain_sid_of(sid: str) -> str:
    """Return the domain portion of an account SID (everything before the RID)."""
    return sid.rsplit("-", 1)[0]


# =============================================================================
# DIRECTORY RECORDS
# =============================================================================


@dataclass(frozen=True, slots=True)
class DomainInfo:
    """An Active Directory domain known by NetBIOS name, FQDN and SID."""

    netbios: str
    fqdn: str
    sid: str | None = None


@dataclass(frozen=True, slots=True)
class LocalAccount:
    """A local (machine or BUILTIN) account reported by a server."""

    caption: str  # e.g. "FS01\\Administrator" or "BUILTIN\\Users"
    sid: str
    is_group: bool = False
    description: str = ""


@dataclass(frozen=True, slots=True)
class DirectoryServer:
    """Metadata about a server that hosts ACL'd paths."""

    name: str
    domain: DomainInfo | None = None
    local_accounts: tuple[LocalAccount, ...] = ()
    reachable: bool = True

    @classmethod
    def unreachable(cls, name: str) -> DirectoryServer:
        """Placeholder cached for a server whose discovery failed."""
        return cls(name=name, reachable=False)


@dataclass(frozen=True, slots=True)
class DirectoryEntry:
    """A principal as returned by a directory lookup."""

    name: str  # domain-qualified
    sid: str | None
    principal_type: PrincipalType
    attributes: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)


# =============================================================================
# PIPELINE RECORDS
# =============================================================================


@dataclass(frozen=True, slots=True)
class AccessControlEntry:
    """One entry in a folder's discretionary access-control list."""

    source_path: str
    identity_reference: str
    access_control_type: AccessControlType
    rights: int
    is_inherited: bool = False
    inheritance_flags: int = 0
    propagation_flags: int = 0

    @property
    def rights_names(self) -> list[str]:
        return describe_rights(self.rights)

    @property
    def is_allow(self) -> bool:
        return self.access_control_type == AccessControlType.ALLOW


@dataclass(frozen=True, slots=True)
class ResolvedIdentity:
    """An identity reference mapped to its domain-qualified name."""

    identity_reference: str
    domain_qualified_name: str
    sid: str | None
    status: ResolutionStatus

    @property
    def domain(self) -> str:
        return split_account_name(self.domain_qualified_name)[0]

    @property
    def account_name(self) -> str:
        return split_account_name(self.domain_qualified_name)[1]


@dataclass(frozen=True, slots=True)
class ResolvedAce:
    """An ACE paired with the identity its reference resolved to."""

    ace: AccessControlEntry
    identity: ResolvedIdentity


@dataclass(slots=True)
class SecurityPrincipal:
    """A fully described account or group.

    ``members`` holds the direct members of a group only. Members are
    principals in their own right but never carry members of their own.
    """

    name: str
    sid: str | None
    principal_type: PrincipalType
    attributes: dict[str, Any] = field(default_factory=dict)
    members: list[SecurityPrincipal] = field(default_factory=list)
    status: ResolutionStatus = ResolutionStatus.RESOLVED

    @property
    def is_group(self) -> bool:
        return self.principal_type.is_group

    @property
    def domain(self) -> str:
        return split_account_name(self.name)[0]

    @property
    def account_name(self) -> str:
        return split_account_name(self.name)[1]

    @property
    def attribute_richness(self) -> int:
        """Number of non-empty directory attributes."""
        return sum(1 for value in self.attributes.values() if value not in (None, "", [], {}))


@dataclass(slots=True)
class ExpandedIdentity:
    """A principal together with every ACE that referenced it."""

    principal: SecurityPrincipal
    access_entries: list[AccessControlEntry] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class AccountPermissionRow:
    """One account's access through one ACE.

    ``via_group`` is None when the account is listed directly in the ACL,
    or the group name when the account is a member of a listed group.
    """

    account: SecurityPrincipal = field(hash=False, compare=False)
    source_ace: AccessControlEntry
    via_group: str | None = None
    display_name: str | None = None

    @property
    def name(self) -> str:
        return self.display_name or self.account.name

    @property
    def listed_directly(self) -> bool:
        return self.via_group is None

    @property
    def access_key(self) -> tuple[AccessControlEntry, str | None]:
        """Identity of the grant this row describes, independent of display name."""
        return (self.source_ace, self.via_group.upper() if self.via_group else None)


@dataclass(slots=True)
class AccountAccess:
    """Rows of equivalent accounts merged under one display name."""

    name: str
    account: SecurityPrincipal
    rows: list[AccountPermissionRow] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: AccountPermissionRow) -> AccountAccess:
        return cls(name=row.name, account=row.account, rows=[row])


@dataclass(slots=True)
class FolderPermission:
    """All account rows that apply to one folder."""

    folder_path: str
    rows: list[AccountPermissionRow] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class NtfsIssue:
    """A misconfiguration finding for one folder and account."""

    folder_path: str
    account: str
    rule_id: str
    severity: Severity
    message: str

    def to_dict(self) -> dict[str, str]:
        return {
            "folder": self.folder_path,
            "account": self.account,
            "rule": self.rule_id,
            "severity": self.severity.value,
            "message": self.message,
        }
