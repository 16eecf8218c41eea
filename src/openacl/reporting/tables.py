"""Tabular views of a permission report and the files written from them."""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from openacl.core.types import (
    AccessControlEntry,
    ExpandedIdentity,
    FolderPermission,
    ResolvedAce,
)
from openacl.reporting.feed import issues_to_xml

if TYPE_CHECKING:
    from openacl.pipeline.runner import PermissionReport

logger = logging.getLogger(__name__)

ACCESS_ENTRY_COLUMNS = ["folder", "identity", "type", "rights", "inherited"]
RESOLVED_COLUMNS = ["folder", "identity", "account", "sid", "status", "type", "rights", "inherited"]
EXPANDED_COLUMNS = ["account", "principal_type", "status", "sid", "members", "folder", "type", "rights", "inherited"]
FOLDER_COLUMNS = ["folder", "account", "via_group", "principal_type", "type", "rights", "inherited"]
ISSUE_COLUMNS = ["folder", "account", "rule", "severity", "message"]


def _ace_fields(ace: AccessControlEntry) -> dict[str, Any]:
    return {
        "folder": ace.source_path,
        "type": ace.access_control_type.value,
        "rights": ", ".join(ace.rights_names),
        "inherited": ace.is_inherited,
    }


def access_entry_table(entries: Iterable[AccessControlEntry]) -> list[dict[str, Any]]:
    return [{**_ace_fields(ace), "identity": ace.identity_reference} for ace in entries]


def resolved_table(resolved: Iterable[ResolvedAce]) -> list[dict[str, Any]]:
    return [
        {
            **_ace_fields(item.ace),
            "identity": item.ace.identity_reference,
            "account": item.identity.domain_qualified_name,
            "sid": item.identity.sid or "",
            "status": item.identity.status.value,
        }
        for item in resolved
    ]


def expanded_table(expanded: Iterable[ExpandedIdentity]) -> list[dict[str, Any]]:
    """One row per principal and ACE; group members are listed by name."""
    rows: list[dict[str, Any]] = []
    for item in expanded:
        principal = item.principal
        members = "; ".join(member.name for member in principal.members)
        for ace in item.access_entries:
            rows.append({
                **_ace_fields(ace),
                "account": principal.name,
                "principal_type": principal.principal_type.value,
                "status": principal.status.value,
                "sid": principal.sid or "",
                "members": members,
            })
    return rows


def folder_table(folders: Iterable[FolderPermission]) -> list[dict[str, Any]]:
    return [
        {
            **_ace_fields(row.source_ace),
            "folder": folder.folder_path,
            "account": row.name,
            "via_group": row.via_group or "",
            "principal_type": row.account.principal_type.value,
        }
        for folder in folders
        for row in folder.rows
    ]


def write_csv(path: str | Path, rows: list[dict[str, Any]], columns: list[str]) -> Path:
    """Write *rows* to a CSV file with a header row, even when empty."""
    path = Path(path)
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=columns, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)
    return path


def write_artifacts(report: PermissionReport, out_dir: str | Path) -> dict[str, Path]:
    """Write every intermediate table and the issue feed into *out_dir*.

    Returns:
        Artifact name -> written path
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    written = {
        "access_entries": write_csv(
            out_dir / "access_entries.csv", access_entry_table(report.access_entries), ACCESS_ENTRY_COLUMNS
        ),
        "resolved_entries": write_csv(
            out_dir / "resolved_entries.csv", resolved_table(report.resolved), RESOLVED_COLUMNS
        ),
        "expanded_entries": write_csv(
            out_dir / "expanded_entries.csv", expanded_table(report.expanded), EXPANDED_COLUMNS
        ),
        "folder_permissions": write_csv(
            out_dir / "folder_permissions.csv", folder_table(report.folders), FOLDER_COLUMNS
        ),
    }
    issues_path = out_dir / "issues.xml"
    issues_path.write_text(issues_to_xml(report.issues), encoding="utf-8")
    written["issues"] = issues_path

    logger.info("Wrote %d report artifacts to %s", len(written), out_dir)
    return written
