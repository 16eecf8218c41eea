"""
Unified exception hierarchy for openacl.

All exception classes live here. No per-module exception files.

Hierarchy:
    OpenACLError (base)
    ├── DirectoryError
    │   ├── DirectoryLookupError
    │   └── ServerUnreachableError
    ├── AdapterError
    │   ├── AdapterUnavailableError
    │   └── FilesystemError
    │       └── TargetAccessError
    ├── DispatchError
    ├── ConfigurationError
    └── FeedDeliveryError

Only TargetAccessError is fatal to a report run. Everything else is logged
by the pipeline and degrades the affected identities or items.

Usage:
    from openacl.exceptions import DirectoryLookupError, TargetAccessError
"""

from __future__ import annotations

from typing import Any

# =============================================================================
# ROOT
# =============================================================================


class OpenACLError(Exception):
    """
    Base exception for all openacl errors.

    Attributes:
        message: Human-readable error description
        context: Additional context about what was being done
        details: Technical details (paths, server names, identities, etc.)
    """

    def __init__(
        self,
        message: str,
        context: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.context = context
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        parts = [self.message]
        if self.context:
            parts.append(f"Context: {self.context}")
        if self.details:
            detail_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            parts.append(f"Details: {detail_str}")
        return ". ".join(parts)


# =============================================================================
# DIRECTORY SERVICE
# =============================================================================


class DirectoryError(OpenACLError):
    """Raised when a directory-service query fails."""

    def __init__(
        self,
        message: str,
        server: str | None = None,
        identity: str | None = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", {})
        if server:
            details["server"] = server
        if identity:
            details["identity"] = identity
        super().__init__(message, details=details, **kwargs)
        self.server = server
        self.identity = identity


class DirectoryLookupError(DirectoryError):
    """A server, SID, or principal is not known to the directory."""

    pass


class ServerUnreachableError(DirectoryError):
    """A directory server could not be contacted."""

    pass


# =============================================================================
# ADAPTERS
# =============================================================================


class AdapterError(OpenACLError):
    """Raised when reading targets or access lists fails."""

    def __init__(
        self,
        message: str,
        adapter_type: str | None = None,
        operation: str | None = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", {})
        if adapter_type:
            details["adapter"] = adapter_type
        if operation:
            details["operation"] = operation
        super().__init__(message, details=details, **kwargs)
        self.adapter_type = adapter_type
        self.operation = operation


class AdapterUnavailableError(AdapterError):
    """Adapter cannot run on this platform (e.g. pywin32 missing)."""

    pass


class FilesystemError(AdapterError):
    """Filesystem access-list read error."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", {})
        if path:
            details["path"] = path
        kwargs.setdefault("adapter_type", "filesystem")
        super().__init__(message, details=details, **kwargs)
        self.path = path


class TargetAccessError(FilesystemError):
    """The access list of the initial target could not be read at all."""

    pass


# =============================================================================
# PIPELINE / CONFIG / FEED
# =============================================================================


class DispatchError(OpenACLError):
    """Invalid use of the concurrent dispatcher."""

    pass


class ConfigurationError(OpenACLError):
    """Invalid configuration value or unreadable configuration file."""

    def __init__(
        self,
        message: str,
        setting: str | None = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", {})
        if setting:
            details["setting"] = setting
        super().__init__(message, details=details, **kwargs)
        self.setting = setting


class FeedDeliveryError(OpenACLError):
    """Pushing the issue feed to the monitoring endpoint failed."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", {})
        if url:
            details["url"] = url
        if status_code:
            details["status_code"] = status_code
        super().__init__(message, details=details, **kwargs)
        self.url = url
        self.status_code = status_code


__all__ = [
    "OpenACLError",
    "DirectoryError",
    "DirectoryLookupError",
    "ServerUnreachableError",
    "AdapterError",
    "AdapterUnavailableError",
    "FilesystemError",
    "TargetAccessError",
    "DispatchError",
    "ConfigurationError",
    "FeedDeliveryError",
]
