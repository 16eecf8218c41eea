"""Live NTFS collaborators.

``LocalTargetResolver`` passes local and UNC folders through unchanged
(DFS referral lookup is left to a dedicated resolver).
``WindowsAccessReader`` reads DACLs with ``win32security`` the same way
the security-descriptor collector does, walking a bounded number of
subfolder levels.
"""

from __future__ import annotations

import logging
import os
import re

from openacl.core.types import AccessControlEntry, AccessControlType
from openacl.exceptions import AdapterUnavailableError, FilesystemError

logger = logging.getLogger(__name__)

_UNC_PREFIX = re.compile(r"^[\\/]{2}")
_DRIVE_ROOT = re.compile(r"^[A-Za-z]:\\$")

# ACE header flags (winnt.h)
INHERITED_ACE = 0x10
_OBJECT_INHERIT_ACE = 0x1
_CONTAINER_INHERIT_ACE = 0x2
_NO_PROPAGATE_INHERIT_ACE = 0x4
_INHERIT_ONLY_ACE = 0x8

ACCESS_ALLOWED_ACE_TYPE = 0x0
ACCESS_DENIED_ACE_TYPE = 0x1


def normalize_path(path: str) -> str:
    """Normalize separators to backslashes and drop a trailing separator.

    ``//srv/share/dir/`` becomes ``\\\\srv\\share\\dir``; drive roots keep
    their separator (``C:\\``).
    """
    text = path.strip()
    unc = bool(_UNC_PREFIX.match(text))
    body = re.sub(r"[\\/]+", r"\\", text.lstrip("\\/") if unc else text)
    if not _DRIVE_ROOT.match(body):
        body = body.rstrip("\\") or body
    return "\\\\" + body if unc else body


def path_depth(path: str) -> int:
    """Number of path components below the root of *path*."""
    return len([part for part in normalize_path(path).split("\\") if part])


def server_from_path(path: str, local_server: str) -> str:
    """Return the server hosting *path*: the UNC host, or *local_server*."""
    normalized = normalize_path(path)
    if normalized.startswith("\\\\"):
        host = normalized[2:].split("\\", 1)[0]
        if host and host not in (".", "?"):
            return host
    return local_server


class LocalTargetResolver:
    """Resolve a path to itself (local folders and plain UNC shares)."""

    def resolve_targets(self, path: str) -> list[str]:
        return [normalize_path(path)]


class WindowsAccessReader:
    """Read NTFS DACLs with pywin32."""

    def __init__(self) -> None:
        try:
            import win32security
        except ImportError as e:
            raise AdapterUnavailableError(
                "pywin32 is required to read NTFS access lists",
                adapter_type="filesystem",
                operation="init",
            ) from e
        self._win32security = win32security

    def list_access_entries(self, folder_path: str, recurse_levels: int) -> list[AccessControlEntry]:
        root = normalize_path(folder_path)
        entries = self._read_folder(root)
        if recurse_levels > 0:
            for subfolder in self._walk(root, recurse_levels):
                try:
                    entries.extend(self._read_folder(subfolder))
                except FilesystemError as e:
                    # Subfolder failures are reported but never hide the rest of the tree
                    logger.warning("Skipping %s: %s", subfolder, e.message)
        return entries

    def _walk(self, root: str, levels: int) -> list[str]:
        folders: list[str] = []
        frontier = [root]
        for _ in range(levels):
            next_frontier: list[str] = []
            for parent in frontier:
                try:
                    with os.scandir(parent) as it:
                        for entry in it:
                            if entry.is_dir(follow_symlinks=False):
                                next_frontier.append(entry.path)
                except OSError as e:
                    logger.warning("Cannot enumerate %s: %s", parent, e)
            folders.extend(sorted(next_frontier, key=str.upper))
            frontier = next_frontier
            if not frontier:
                break
        return folders

    def _read_folder(self, path: str) -> list[AccessControlEntry]:
        win32security = self._win32security
        try:
            sd = win32security.GetFileSecurity(path, win32security.DACL_SECURITY_INFORMATION)
        except (OSError, win32security.error) as e:
            raise FilesystemError(f"Cannot read ACL: {e}", path=path, operation="GetFileSecurity") from e

        dacl = sd.GetSecurityDescriptorDacl()
        if dacl is None:
            return []

        entries: list[AccessControlEntry] = []
        for i in range(dacl.GetAceCount()):
            (ace_type, ace_flags), mask, sid = dacl.GetAce(i)[:3]
            if ace_type not in (ACCESS_ALLOWED_ACE_TYPE, ACCESS_DENIED_ACE_TYPE):
                continue
            entries.append(AccessControlEntry(
                source_path=path,
                identity_reference=self._identity_of(sid),
                access_control_type=(
                    AccessControlType.ALLOW if ace_type == ACCESS_ALLOWED_ACE_TYPE else AccessControlType.DENY
                ),
                rights=mask & 0xFFFFFFFF,
                is_inherited=bool(ace_flags & INHERITED_ACE),
                inheritance_flags=ace_flags & (_OBJECT_INHERIT_ACE | _CONTAINER_INHERIT_ACE),
                propagation_flags=(
                    (1 if ace_flags & _NO_PROPAGATE_INHERIT_ACE else 0)
                    | (2 if ace_flags & _INHERIT_ONLY_ACE else 0)
                ),
            ))
        return entries

    def _identity_of(self, sid) -> str:
        """NT-style ``DOMAIN\\name`` for a SID, or the string SID if the local lookup fails."""
        win32security = self._win32security
        try:
            name, domain, _ = win32security.LookupAccountSid(None, sid)
        except win32security.error:
            return win32security.ConvertSidToStringSid(sid)
        return f"{domain}\\{name}" if domain else name
