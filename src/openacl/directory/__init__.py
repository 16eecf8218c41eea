"""Collaborators that supply targets, access lists and directory data."""

from openacl.directory.base import AccessListReader, DirectoryService, TargetResolver

__all__ = ["AccessListReader", "DirectoryService", "TargetResolver"]
