"""
Core building blocks of the permission pipeline.

Usage:
    from openacl.core import CacheSet, Dispatcher

    caches = CacheSet()
    dispatcher = Dispatcher(worker_count=4, timeout=120)
    result = dispatcher.map(items, unit_of_work)
"""

from .cache import CacheSet, CacheStats, MemoCache
from .dispatcher import DispatchResult, Dispatcher, dispatch
from .types import (
    AccessControlEntry,
    AccessControlType,
    AccountAccess,
    AccountPermissionRow,
    ExpandedIdentity,
    FolderPermission,
    HealthStatus,
    NtfsIssue,
    PrincipalType,
    ResolutionStatus,
    ResolvedAce,
    ResolvedIdentity,
    SecurityPrincipal,
    Severity,
)

__all__ = [
    # Caches
    "CacheSet",
    "CacheStats",
    "MemoCache",
    # Dispatch
    "Dispatcher",
    "DispatchResult",
    "dispatch",
    # Types
    "AccessControlEntry",
    "AccessControlType",
    "AccountAccess",
    "AccountPermissionRow",
    "ExpandedIdentity",
    "FolderPermission",
    "HealthStatus",
    "NtfsIssue",
    "PrincipalType",
    "ResolutionStatus",
    "ResolvedAce",
    "ResolvedIdentity",
    "SecurityPrincipal",
    "Severity",
]
