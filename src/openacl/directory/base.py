"""
Collaborator protocols consumed by the permission pipeline.

Provides:
- TargetResolver: maps a user-supplied path to the physical folders behind it
- AccessListReader: reads the ACEs of a folder and its subfolders
- DirectoryService: server discovery and principal lookups

The pipeline only depends on these protocols. Concrete implementations
live in :mod:`openacl.directory.snapshot` (offline document) and
:mod:`openacl.directory.filesystem` (live NTFS).
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from openacl.core.types import AccessControlEntry, DirectoryEntry, DirectoryServer, DomainInfo


@runtime_checkable
class TargetResolver(Protocol):
    """Protocol for resolving a path to its physical targets (DFS/UNC)."""

    def resolve_targets(self, path: str) -> list[str]:
        """Return the physical folder paths behind *path*.

        A plain local or UNC folder resolves to itself. A DFS namespace
        folder resolves to its active link targets.
        """
        ...


@runtime_checkable
class AccessListReader(Protocol):
    """Protocol for reading filesystem access-control lists."""

    def list_access_entries(
        self,
        folder_path: str,
        recurse_levels: int,
    ) -> list[AccessControlEntry]:
        """Read the DACL entries of a folder.

        Args:
            folder_path: Folder whose ACL is read
            recurse_levels: How many levels of subfolders to include
                (0 reads only the folder itself)

        Returns:
            ACEs of the folder and its subfolders, in traversal order

        Raises:
            FilesystemError: If the folder's ACL cannot be read
        """
        ...


@runtime_checkable
class DirectoryService(Protocol):
    """Protocol for directory-service discovery and lookups.

    Implementations are called concurrently from several worker threads
    and must be safe to share.
    """

    def discover_server(self, name: str) -> DirectoryServer:
        """Return metadata about a server: its domain and local accounts.

        Raises:
            DirectoryError: If the server cannot be found or contacted
        """
        ...

    def lookup_trusted_domains(self) -> list[DomainInfo]:
        """Return every domain trusted by the current domain."""
        ...

    def lookup_sid(self, sid: str, server: str) -> str | None:
        """Translate a SID to a ``DOMAIN\\name`` caption, or None if unknown."""
        ...

    def lookup_principal(self, name: str) -> DirectoryEntry | None:
        """Return a principal's directory entry, or None if it does not exist."""
        ...

    def list_group_members(self, name: str) -> list[DirectoryEntry]:
        """Return the direct members of a group (no recursion)."""
        ...
