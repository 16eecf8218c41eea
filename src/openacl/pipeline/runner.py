"""
Permission report pipeline.

Runs the stages in order for one target path:

    targets -> access entries -> discovery -> resolution -> expansion
    -> flatten -> deduplicate -> aggregate by folder -> issues

Every run gets a fresh CacheSet and one Dispatcher that both parallel
stages share. The only error that aborts a run is TargetAccessError:
no access list could be read for the target at all.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from openacl.config import PipelineSettings
from openacl.core.cache import CacheSet
from openacl.core.dispatcher import Dispatcher
from openacl.core.types import (
    AccessControlEntry,
    AccountAccess,
    AccountPermissionRow,
    ExpandedIdentity,
    FolderPermission,
    HealthStatus,
    NtfsIssue,
    ResolvedAce,
    Severity,
)
from openacl.directory.base import AccessListReader, DirectoryService, TargetResolver
from openacl.directory.filesystem import normalize_path
from openacl.exceptions import FilesystemError, OpenACLError, TargetAccessError
from openacl.logging import ContextLogger, get_run_id, run_context
from openacl.pipeline.aggregate import aggregate_by_folder, deduplicate
from openacl.pipeline.discovery import DiscoveryResult, discover
from openacl.pipeline.expansion import expand_identities
from openacl.pipeline.flatten import flatten
from openacl.pipeline.issues import IssueDetector, make_name_predicate
from openacl.pipeline.resolution import resolve_access_entries
from openacl.reporting.feed import health_status

logger = logging.getLogger(__name__)


@dataclass
class PermissionReport:
    """Everything one pipeline run produced."""

    target_path: str
    targets: list[str] = field(default_factory=list)
    access_entries: list[AccessControlEntry] = field(default_factory=list)
    resolved: list[ResolvedAce] = field(default_factory=list)
    expanded: list[ExpandedIdentity] = field(default_factory=list)
    rows: list[AccountPermissionRow] = field(default_factory=list)
    accounts: list[AccountAccess] = field(default_factory=list)
    folders: list[FolderPermission] = field(default_factory=list)
    issues: list[NtfsIssue] = field(default_factory=list)
    discovery: DiscoveryResult = field(default_factory=DiscoveryResult)
    cache_stats: dict[str, dict[str, Any]] = field(default_factory=dict)
    timings: dict[str, float] = field(default_factory=dict)
    run_id: str | None = None

    @property
    def health(self) -> HealthStatus:
        return health_status(self.issues)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == Severity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == Severity.WARNING)

    def summary(self) -> dict[str, Any]:
        return {
            "target": self.target_path,
            "targets": self.targets,
            "run_id": self.run_id,
            "access_entries": len(self.access_entries),
            "principals": len(self.expanded),
            "accounts": len(self.accounts),
            "folders": len(self.folders),
            "issues": len(self.issues),
            "errors": self.error_count,
            "warnings": self.warning_count,
            "status": self.health.value,
            "unreachable_servers": self.discovery.unreachable,
            "timings": self.timings,
        }


class PermissionPipeline:
    """Produces a PermissionReport for a folder path."""

    def __init__(
        self,
        settings: PipelineSettings,
        directory: DirectoryService,
        target_resolver: TargetResolver,
        access_reader: AccessListReader,
        issue_detector: IssueDetector | None = None,
    ):
        self.settings = settings
        self.directory = directory
        self.target_resolver = target_resolver
        self.access_reader = access_reader
        if issue_detector is None:
            predicate = None
            if settings.group_naming_convention:
                predicate = make_name_predicate(settings.group_naming_convention)
            issue_detector = IssueDetector(group_name_predicate=predicate)
        self.issue_detector = issue_detector

    def run(self, target_path: str) -> PermissionReport:
        """Run every stage for *target_path*.

        Raises:
            TargetAccessError: If no access list can be read for the target
        """
        with run_context(get_run_id()) as run_id:
            return self._run(target_path, run_id)

    def _run(self, target_path: str, run_id: str) -> PermissionReport:
        settings = self.settings
        log = ContextLogger(__name__, target=target_path)
        report = PermissionReport(target_path=target_path, run_id=run_id)
        start = time.monotonic()

        with self._stage(report, "read", log):
            report.targets, report.access_entries = self._collect_entries(target_path)

        caches = CacheSet()
        dispatcher = Dispatcher(
            worker_count=settings.thread_count,
            timeout=settings.batch_timeout,
            name="pipeline",
        )
        local_server = settings.local_server_name

        with self._stage(report, "discover", log):
            report.discovery = discover(report.access_entries, caches, self.directory, local_server)
        with self._stage(report, "resolve", log):
            report.resolved = resolve_access_entries(
                report.access_entries, caches, self.directory, dispatcher, local_server
            )
        with self._stage(report, "expand", log):
            report.expanded = expand_identities(
                report.resolved,
                caches,
                self.directory,
                dispatcher,
                expand_group_members=settings.expand_group_members,
            )
        with self._stage(report, "flatten", log):
            report.rows = flatten(report.expanded, settings.expand_group_members)
        with self._stage(report, "aggregate", log):
            report.accounts = deduplicate(report.rows, settings.ignore_domains)
            report.folders = aggregate_by_folder(report.accounts)
        with self._stage(report, "issues", log):
            report.issues = self.issue_detector.detect(report.folders, root_paths=report.targets)

        report.cache_stats = caches.stats()
        report.timings["total"] = round(time.monotonic() - start, 3)
        log.info(
            "Report complete",
            status=report.health.value,
            issues=len(report.issues),
            seconds=report.timings["total"],
        )
        return report

    @contextmanager
    def _stage(self, report: PermissionReport, name: str, log: ContextLogger) -> Iterator[None]:
        stage_start = time.monotonic()
        yield
        elapsed = round(time.monotonic() - stage_start, 3)
        report.timings[name] = elapsed
        log.debug(f"Stage {name} finished", stage=name, seconds=elapsed)

    def _collect_entries(self, target_path: str) -> tuple[list[str], list[AccessControlEntry]]:
        """Read the access entries of every resolved target.

        A target that yields nothing (typically a share root whose resolved
        path cannot be listed) is retried once against the path as given.
        """
        original = normalize_path(target_path)
        try:
            targets = self.target_resolver.resolve_targets(target_path) or [original]
        except (OpenACLError, OSError) as e:
            logger.warning("Target resolution failed for %s, using it as is: %s", target_path, e)
            targets = [original]

        used: list[str] = []
        entries: list[AccessControlEntry] = []
        fallback_tried = False
        for target in targets:
            found = self._read(target)
            source = target
            if not found and not fallback_tried and target.upper() != original.upper():
                fallback_tried = True
                logger.info("No access entries for %s, retrying with %s", target, original)
                found = self._read(original)
                source = original
            if found and source not in used:
                used.append(source)
                entries.extend(found)

        if not entries:
            raise TargetAccessError(
                "No access list could be read for the target",
                path=target_path,
                operation="list_access_entries",
                details={"targets": targets},
            )
        logger.info("Read %d access entries from %d target(s)", len(entries), len(used))
        return used, entries

    def _read(self, folder_path: str) -> list[AccessControlEntry]:
        try:
            return self.access_reader.list_access_entries(folder_path, self.settings.recurse_levels)
        except (FilesystemError, OSError) as e:
            logger.warning("Cannot read access list of %s: %s", folder_path, e)
            return []
