"""
Well-known identities and filesystem rights.

Pseudo principals are identities that appear in ACLs but have no object in
any directory (CREATOR OWNER, Everyone, NT AUTHORITY\\SYSTEM, ...). They
resolve with status FAKE instead of being looked up.
"""

from __future__ import annotations

import re
from enum import IntFlag

# SID -> (caption, is_group, description)
# https://learn.microsoft.com/en-us/windows-server/identity/ad-ds/manage/understand-security-identifiers
FAKE_PRINCIPALS: dict[str, tuple[str, bool, str]] = {
    "S-1-0-0": ("NULL SID", False, "No security principal"),
    "S-1-1-0": ("Everyone", True, "All users, including anonymous in some configurations"),
    "S-1-2-0": ("LOCAL", True, "Users who log on to terminals locally"),
    "S-1-2-1": ("CONSOLE LOGON", True, "Users who log on to the physical console"),
    "S-1-3-0": ("CREATOR OWNER", False, "Placeholder replaced by the creator of a new object"),
    "S-1-3-1": ("CREATOR GROUP", True, "Placeholder replaced by the primary group of the creator"),
    "S-1-3-4": ("OWNER RIGHTS", False, "The current owner of the object"),
    "S-1-5-1": ("NT AUTHORITY\\DIALUP", True, "Users who log on through a dial-up connection"),
    "S-1-5-2": ("NT AUTHORITY\\NETWORK", True, "Users who log on across a network"),
    "S-1-5-3": ("NT AUTHORITY\\BATCH", True, "Users who log on through a batch queue"),
    "S-1-5-4": ("NT AUTHORITY\\INTERACTIVE", True, "Users who log on interactively"),
    "S-1-5-6": ("NT AUTHORITY\\SERVICE", True, "Security principals that log on as a service"),
    "S-1-5-7": ("NT AUTHORITY\\ANONYMOUS LOGON", False, "Anonymous logon"),
    "S-1-5-9": ("NT AUTHORITY\\ENTERPRISE DOMAIN CONTROLLERS", True, "All domain controllers in the forest"),
    "S-1-5-10": ("NT AUTHORITY\\SELF", False, "The object itself"),
    "S-1-5-11": ("NT AUTHORITY\\Authenticated Users", True, "Users and computers with authenticated identities"),
    "S-1-5-12": ("NT AUTHORITY\\RESTRICTED", True, "Restricted code"),
    "S-1-5-13": ("NT AUTHORITY\\TERMINAL SERVER USER", True, "Users of a terminal server"),
    "S-1-5-14": ("NT AUTHORITY\\REMOTE INTERACTIVE LOGON", True, "Users who log on through Remote Desktop"),
    "S-1-5-15": ("NT AUTHORITY\\This Organization", True, "Users from the same organization"),
    "S-1-5-17": ("NT AUTHORITY\\IUSR", False, "IIS anonymous user"),
    "S-1-5-18": ("NT AUTHORITY\\SYSTEM", False, "The operating system"),
    "S-1-5-19": ("NT AUTHORITY\\LOCAL SERVICE", False, "Local service account"),
    "S-1-5-20": ("NT AUTHORITY\\NETWORK SERVICE", False, "Network service account"),
    "S-1-15-2-1": ("APPLICATION PACKAGE AUTHORITY\\ALL APPLICATION PACKAGES", True, "All app containers"),
    "S-1-15-2-2": (
        "APPLICATION PACKAGE AUTHORITY\\ALL RESTRICTED APPLICATION PACKAGES",
        True,
        "All restricted app containers",
    ),
}

# Upper-cased caption -> SID, including bare names for NT AUTHORITY entries
FAKE_PRINCIPALS_BY_CAPTION: dict[str, str] = {}
for _sid, (_caption, _, _) in FAKE_PRINCIPALS.items():
    FAKE_PRINCIPALS_BY_CAPTION[_caption.upper()] = _sid
    if "\\" in _caption:
        FAKE_PRINCIPALS_BY_CAPTION.setdefault(_caption.split("\\", 1)[1].upper(), _sid)

# Account domains that only ever hold pseudo principals
FAKE_DOMAINS = frozenset({"NT SERVICE", "APPLICATION PACKAGE AUTHORITY", "NT VIRTUAL MACHINE"})

# Domains whose principals are built in to every machine
BUILTIN_DOMAINS = frozenset({"BUILTIN", "NT AUTHORITY", "NT SERVICE", "APPLICATION PACKAGE AUTHORITY"})

CREATOR_OWNER_SID = "S-1-3-0"

# Principals that amount to "basically everyone" when granted write access
BROAD_ACCESS_SIDS = frozenset({"S-1-1-0", "S-1-5-11", "S-1-5-32-545"})
BROAD_ACCESS_RID_SUFFIXES = ("-513",)  # Domain Users
BROAD_ACCESS_NAMES = frozenset({
    "EVERYONE",
    "AUTHENTICATED USERS",
    "USERS",
    "DOMAIN USERS",
})

SID_PATTERN = re.compile(r"^S-1-\d+(-\d+)+$", re.IGNORECASE)

# Group members are expanded one level only. Nested groups are listed as
# members but their own members are not fetched.
MEMBER_EXPANSION_DEPTH = 1


class FileSystemRights(IntFlag):
    """NTFS file system rights bits."""

    READ_DATA = 0x1
    CREATE_FILES = 0x2
    APPEND_DATA = 0x4
    READ_EXTENDED_ATTRIBUTES = 0x8
    WRITE_EXTENDED_ATTRIBUTES = 0x10
    EXECUTE_FILE = 0x20
    DELETE_SUBDIRECTORIES_AND_FILES = 0x40
    READ_ATTRIBUTES = 0x80
    WRITE_ATTRIBUTES = 0x100
    DELETE = 0x10000
    READ_PERMISSIONS = 0x20000
    CHANGE_PERMISSIONS = 0x40000
    TAKE_OWNERSHIP = 0x80000
    SYNCHRONIZE = 0x100000

    # Generic rights, as stored in inherit-only ACEs
    GENERIC_ALL = 0x10000000
    GENERIC_EXECUTE = 0x20000000
    GENERIC_WRITE = 0x40000000
    GENERIC_READ = 0x80000000


_R = FileSystemRights

READ = _R.READ_DATA | _R.READ_EXTENDED_ATTRIBUTES | _R.READ_ATTRIBUTES | _R.READ_PERMISSIONS
WRITE = _R.CREATE_FILES | _R.APPEND_DATA | _R.WRITE_EXTENDED_ATTRIBUTES | _R.WRITE_ATTRIBUTES
READ_AND_EXECUTE = READ | _R.EXECUTE_FILE
MODIFY = READ_AND_EXECUTE | WRITE | _R.DELETE
FULL_CONTROL = (
    MODIFY
    | _R.DELETE_SUBDIRECTORIES_AND_FILES
    | _R.CHANGE_PERMISSIONS
    | _R.TAKE_OWNERSHIP
)

# Largest composite first so describe_rights() picks the coarsest name
NAMED_RIGHTS: list[tuple[str, int]] = [
    ("FullControl", int(FULL_CONTROL)),
    ("Modify", int(MODIFY)),
    ("ReadAndExecute", int(READ_AND_EXECUTE)),
    ("Read", int(READ)),
    ("Write", int(WRITE)),
]

WRITE_CAPABLE_RIGHTS = int(
    WRITE
    | _R.DELETE
    | _R.DELETE_SUBDIRECTORIES_AND_FILES
    | _R.CHANGE_PERMISSIONS
    | _R.TAKE_OWNERSHIP
    | _R.GENERIC_ALL
    | _R.GENERIC_WRITE
)

# SYNCHRONIZE is present on nearly every ACE and carries no meaning in reports
_IGNORED_BITS = int(_R.SYNCHRONIZE)


def describe_rights(mask: int) -> list[str]:
    """Return readable names for a rights bitmask.

    Composite rights (FullControl, Modify, ...) are matched first; any bits
    left over are listed individually.
    """
    remaining = mask & ~_IGNORED_BITS
    names: list[str] = []
    for name, bits in NAMED_RIGHTS:
        if bits and (remaining & bits) == bits:
            names.append(name)
            remaining &= ~bits
    for flag in FileSystemRights:
        if remaining & flag.value:
            names.append(_flag_display_name(flag))
            remaining &= ~flag.value
    if remaining:
        names.append(hex(remaining))
    return names or ["None"]


def _flag_display_name(flag: FileSystemRights) -> str:
    return "".join(part.capitalize() for part in (flag.name or "").split("_"))
