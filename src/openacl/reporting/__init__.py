"""Report tables, artifact files and the NTFS issue feed."""

from openacl.reporting.feed import health_status, issues_to_xml, parse_issue_xml, push_issue_feed
from openacl.reporting.tables import (
    access_entry_table,
    expanded_table,
    folder_table,
    resolved_table,
    write_artifacts,
    write_csv,
)

__all__ = [
    "health_status",
    "issues_to_xml",
    "parse_issue_xml",
    "push_issue_feed",
    "access_entry_table",
    "resolved_table",
    "expanded_table",
    "folder_table",
    "write_csv",
    "write_artifacts",
]
