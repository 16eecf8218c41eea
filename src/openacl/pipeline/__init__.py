"""
Permission pipeline stages.

Usage:
    from openacl.pipeline import PermissionPipeline

    pipeline = PermissionPipeline(settings.pipeline, directory, resolver, reader)
    report = pipeline.run("\\\\FS01\\projects")
"""

from openacl.pipeline.aggregate import aggregate_by_folder, deduplicate, merge_accounts, strip_ignored_domain
from openacl.pipeline.discovery import DiscoveryResult, discover
from openacl.pipeline.expansion import expand_identities
from openacl.pipeline.flatten import flatten
from openacl.pipeline.issues import DEFAULT_RULES, IssueDetector, make_name_predicate
from openacl.pipeline.resolution import resolve_access_entries
from openacl.pipeline.runner import PermissionPipeline, PermissionReport

__all__ = [
    "discover",
    "DiscoveryResult",
    "resolve_access_entries",
    "expand_identities",
    "flatten",
    "strip_ignored_domain",
    "deduplicate",
    "merge_accounts",
    "aggregate_by_folder",
    "IssueDetector",
    "DEFAULT_RULES",
    "make_name_predicate",
    "PermissionPipeline",
    "PermissionReport",
]
