"""NTFS misconfiguration rules.

Rules are plain functions registered with ``@register_rule``. Each takes
one aggregated folder and the detection context and yields NtfsIssues.
Adding a rule only requires defining the function here or passing it to
``IssueDetector(rules=...)``.

Usage::

    detector = IssueDetector(group_name_predicate=make_name_predicate(r"^GRP_"))
    issues = detector.detect(folders)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field

from openacl.core.constants import (
    BROAD_ACCESS_NAMES,
    BROAD_ACCESS_RID_SUFFIXES,
    BROAD_ACCESS_SIDS,
    BUILTIN_DOMAINS,
    CREATOR_OWNER_SID,
    WRITE_CAPABLE_RIGHTS,
    FileSystemRights,
)
from openacl.core.types import (
    AccessControlType,
    AccountPermissionRow,
    FolderPermission,
    NtfsIssue,
    PrincipalType,
    ResolutionStatus,
    Severity,
)
from openacl.directory.filesystem import path_depth
from openacl.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

NamePredicate = Callable[[str], bool]


@dataclass
class DetectionContext:
    """What rules know beyond the folder itself."""

    root_paths: frozenset[str] = field(default_factory=frozenset)  # upper-cased
    group_name_predicate: NamePredicate | None = None

    def is_root(self, folder_path: str) -> bool:
        return folder_path.upper() in self.root_paths


Rule = Callable[[FolderPermission, DetectionContext], Iterable[NtfsIssue]]

DEFAULT_RULES: dict[str, Rule] = {}


def register_rule(rule_id: str) -> Callable[[Rule], Rule]:
    """Decorator that adds a rule to DEFAULT_RULES under *rule_id*."""

    def decorator(func: Rule) -> Rule:
        if rule_id in DEFAULT_RULES:
            raise ValueError(f"Rule {rule_id!r} already registered by {DEFAULT_RULES[rule_id].__name__}")
        DEFAULT_RULES[rule_id] = func
        return func

    return decorator


def make_name_predicate(pattern: str) -> NamePredicate:
    """Build a group-naming predicate from a regular expression.

    The pattern is searched (not fully matched) against the account part
    of the group name, case-insensitively; anchor it to require a prefix.
    """
    try:
        compiled = re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        raise ConfigurationError(
            f"Invalid group naming convention: {e}",
            setting="group_naming_convention",
        ) from e
    return lambda name: compiled.search(name) is not None


# =============================================================================
# HELPERS
# =============================================================================


def _issue(folder: FolderPermission, account: str, rule_id: str, severity: Severity, message: str) -> NtfsIssue:
    return NtfsIssue(
        folder_path=folder.folder_path,
        account=account,
        rule_id=rule_id,
        severity=severity,
        message=message,
    )


def _by_account(rows: Iterable[AccountPermissionRow]) -> dict[str, list[AccountPermissionRow]]:
    accounts: dict[str, list[AccountPermissionRow]] = {}
    for row in rows:
        accounts.setdefault(row.name.upper(), []).append(row)
    return accounts


def _direct_rows(folder: FolderPermission) -> list[AccountPermissionRow]:
    return [row for row in folder.rows if row.listed_directly]


def _is_broad(row: AccountPermissionRow) -> bool:
    sid = (row.account.sid or "").upper()
    if sid in BROAD_ACCESS_SIDS:
        return True
    if sid.startswith("S-1-5-21-") and sid.endswith(BROAD_ACCESS_RID_SUFFIXES):
        return True
    return row.account.account_name.upper() in BROAD_ACCESS_NAMES


_MEANINGFUL_BITS = ~int(FileSystemRights.SYNCHRONIZE)


# =============================================================================
# RULES
# =============================================================================


@register_rule("group-naming")
def check_group_naming(folder: FolderPermission, context: DetectionContext) -> Iterable[NtfsIssue]:
    predicate = context.group_name_predicate
    if predicate is None:
        return
    for row in _direct_rows(folder):
        account = row.account
        if account.principal_type != PrincipalType.GROUP:
            continue
        if account.domain.upper() in BUILTIN_DOMAINS:
            continue
        if not predicate(account.account_name):
            yield _issue(
                folder, row.name, "group-naming", Severity.WARNING,
                f"Group {account.account_name} does not follow the naming convention",
            )


@register_rule("allow-deny-conflict")
def check_allow_deny(folder: FolderPermission, context: DetectionContext) -> Iterable[NtfsIssue]:
    for rows in _by_account(folder.rows).values():
        types = {row.source_ace.access_control_type for row in rows}
        if len(types) > 1:
            yield _issue(
                folder, rows[0].name, "allow-deny-conflict", Severity.WARNING,
                "Account is both allowed and denied access",
            )


@register_rule("inheritance-conflict")
def check_inheritance_conflict(folder: FolderPermission, context: DetectionContext) -> Iterable[NtfsIssue]:
    for rows in _by_account(folder.rows).values():
        explicit = {row.source_ace.access_control_type for row in rows if not row.source_ace.is_inherited}
        inherited = {row.source_ace.access_control_type for row in rows if row.source_ace.is_inherited}
        if (AccessControlType.ALLOW in explicit and AccessControlType.DENY in inherited) or (
            AccessControlType.DENY in explicit and AccessControlType.ALLOW in inherited
        ):
            yield _issue(
                folder, rows[0].name, "inheritance-conflict", Severity.ERROR,
                "Explicit entry contradicts an inherited entry",
            )


@register_rule("redundant-explicit")
def check_redundant_explicit(folder: FolderPermission, context: DetectionContext) -> Iterable[NtfsIssue]:
    for rows in _by_account(folder.rows).values():
        inherited = 0
        for row in rows:
            if row.source_ace.is_inherited and row.source_ace.is_allow:
                inherited |= row.source_ace.rights
        inherited &= _MEANINGFUL_BITS
        if not inherited:
            continue
        for row in rows:
            ace = row.source_ace
            if not row.listed_directly or ace.is_inherited or not ace.is_allow:
                continue
            if (ace.rights & _MEANINGFUL_BITS) & ~inherited == 0:
                yield _issue(
                    folder, row.name, "redundant-explicit", Severity.WARNING,
                    f"Explicit {', '.join(ace.rights_names)} is already inherited",
                )
                break


@register_rule("direct-user")
def check_direct_user(folder: FolderPermission, context: DetectionContext) -> Iterable[NtfsIssue]:
    for row in _direct_rows(folder):
        account = row.account
        if account.principal_type == PrincipalType.USER and account.status == ResolutionStatus.RESOLVED:
            yield _issue(
                folder, row.name, "direct-user", Severity.WARNING,
                "User is granted access directly instead of through a group",
            )


@register_rule("unresolved-sid")
def check_unresolved_sid(folder: FolderPermission, context: DetectionContext) -> Iterable[NtfsIssue]:
    for row in _direct_rows(folder):
        if row.account.status == ResolutionStatus.UNRESOLVED_SID:
            yield _issue(
                folder, row.name, "unresolved-sid", Severity.WARNING,
                f"Entry references unresolvable identity {row.source_ace.identity_reference}",
            )


@register_rule("broad-access")
def check_broad_access(folder: FolderPermission, context: DetectionContext) -> Iterable[NtfsIssue]:
    for row in _direct_rows(folder):
        ace = row.source_ace
        if ace.is_allow and ace.rights & WRITE_CAPABLE_RIGHTS and _is_broad(row):
            yield _issue(
                folder, row.name, "broad-access", Severity.WARNING,
                f"Broad group holds write access ({', '.join(ace.rights_names)})",
            )


@register_rule("creator-owner")
def check_creator_owner(folder: FolderPermission, context: DetectionContext) -> Iterable[NtfsIssue]:
    for row in _direct_rows(folder):
        if (row.account.sid or "").upper() == CREATOR_OWNER_SID or row.name.upper() == "CREATOR OWNER":
            yield _issue(
                folder, row.name, "creator-owner", Severity.WARNING,
                "CREATOR OWNER entry grants creators control of new content",
            )


@register_rule("inheritance-disabled")
def check_inheritance_disabled(folder: FolderPermission, context: DetectionContext) -> Iterable[NtfsIssue]:
    if context.is_root(folder.folder_path) or not folder.rows:
        return
    if not any(row.source_ace.is_inherited for row in folder.rows):
        yield _issue(
            folder, "", "inheritance-disabled", Severity.WARNING,
            "Folder does not inherit permissions from its parent",
        )


# =============================================================================
# DETECTOR
# =============================================================================


class IssueDetector:
    """Runs a set of rules over aggregated folders."""

    def __init__(
        self,
        rules: dict[str, Rule] | None = None,
        group_name_predicate: NamePredicate | None = None,
    ):
        self.rules = dict(DEFAULT_RULES if rules is None else rules)
        self.group_name_predicate = group_name_predicate

    def detect(
        self,
        folders: Sequence[FolderPermission],
        root_paths: Iterable[str] | None = None,
    ) -> list[NtfsIssue]:
        """Return the issues for *folders*, sorted by folder, account and rule.

        *root_paths* are the report roots, exempt from the
        inheritance-disabled rule. Defaults to the shallowest folders.
        """
        if root_paths is None:
            depth = min((path_depth(f.folder_path) for f in folders), default=0)
            root_paths = [f.folder_path for f in folders if path_depth(f.folder_path) == depth]
        context = DetectionContext(
            root_paths=frozenset(p.upper() for p in root_paths),
            group_name_predicate=self.group_name_predicate,
        )

        issues: set[NtfsIssue] = set()
        for folder in folders:
            for rule_id, rule in self.rules.items():
                try:
                    issues.update(rule(folder, context))
                except Exception as e:
                    logger.error("Rule %s failed on %s: %s", rule_id, folder.folder_path, e, exc_info=True)

        result = sorted(issues, key=lambda i: (i.folder_path.upper(), i.account.upper(), i.rule_id))
        logger.info(
            "Detected %d issues (%d errors) in %d folders",
            len(result),
            sum(1 for i in result if i.severity == Severity.ERROR),
            len(folders),
        )
        return result
