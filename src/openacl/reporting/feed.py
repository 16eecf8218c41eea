"""
NTFS issue feed for monitoring consumers.

The feed is a flat XML document a monitoring system can poll or receive:

    <NtfsIssues count="2" errors="1" warnings="1" status="degraded">
      <Issue>
        <Folder>\\\\FS01\\projects\\hr</Folder>
        <Account>CONTOSO\\bob</Account>
        <Rule>inheritance-conflict</Rule>
        <Severity>Error</Severity>
        <Message>Explicit entry contradicts an inherited entry</Message>
      </Issue>
      ...
    </NtfsIssues>

Documents are written with the standard ElementTree and read back with
defusedxml, since a feed file may come from anywhere.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as StdET
from collections.abc import Iterable

import defusedxml
import defusedxml.ElementTree as ET
import httpx

from openacl.config import FeedSettings
from openacl.core.types import HealthStatus, NtfsIssue, Severity
from openacl.exceptions import ConfigurationError, FeedDeliveryError

logger = logging.getLogger(__name__)

ROOT_TAG = "NtfsIssues"
ISSUE_TAG = "Issue"

# XML element -> NtfsIssue.to_dict() key
_FIELDS = (
    ("Folder", "folder"),
    ("Account", "account"),
    ("Rule", "rule"),
    ("Severity", "severity"),
    ("Message", "message"),
)


def health_status(issues: Iterable[NtfsIssue]) -> HealthStatus:
    """DEGRADED if any issue has Error severity, otherwise OK."""
    if any(issue.severity == Severity.ERROR for issue in issues):
        return HealthStatus.DEGRADED
    return HealthStatus.OK


def issues_to_xml(issues: Iterable[NtfsIssue]) -> str:
    """Serialize issues to the feed document."""
    issues = list(issues)
    errors = sum(1 for issue in issues if issue.severity == Severity.ERROR)

    root = StdET.Element(ROOT_TAG, {
        "count": str(len(issues)),
        "errors": str(errors),
        "warnings": str(len(issues) - errors),
        "status": health_status(issues).value,
    })
    for issue in issues:
        element = StdET.SubElement(root, ISSUE_TAG)
        values = issue.to_dict()
        for tag, key in _FIELDS:
            StdET.SubElement(element, tag).text = values[key]

    StdET.indent(root)
    return StdET.tostring(root, encoding="unicode", xml_declaration=True)


def parse_issue_xml(text: str) -> list[NtfsIssue]:
    """Parse a feed document back into issues.

    Raises:
        ConfigurationError: If the document is malformed or unsafe
    """
    try:
        root = ET.fromstring(text)
    except (StdET.ParseError, defusedxml.DefusedXmlException) as e:
        raise ConfigurationError(f"Invalid issue feed: {e}", setting="feed") from e
    if root.tag != ROOT_TAG:
        raise ConfigurationError(f"Unexpected root element <{root.tag}>", setting="feed")

    issues: list[NtfsIssue] = []
    for element in root.findall(ISSUE_TAG):
        values = {key: (element.findtext(tag) or "") for tag, key in _FIELDS}
        try:
            severity = Severity(values["severity"])
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown severity {values['severity']!r}", setting="feed"
            ) from e
        issues.append(NtfsIssue(
            folder_path=values["folder"],
            account=values["account"],
            rule_id=values["rule"],
            severity=severity,
            message=values["message"],
        ))
    return issues


def push_issue_feed(xml: str, settings: FeedSettings) -> int:
    """POST the feed document to the configured endpoint.

    Returns:
        HTTP status code of the response

    Raises:
        FeedDeliveryError: On transport errors or a non-2xx response
    """
    if not settings.is_enabled:
        raise FeedDeliveryError("No feed URL configured")

    headers = {"Content-Type": "application/xml"}
    if settings.token:
        headers["Authorization"] = f"Bearer {settings.token}"

    try:
        with httpx.Client(timeout=settings.timeout, verify=settings.verify_ssl) as client:
            response = client.post(settings.url, content=xml.encode("utf-8"), headers=headers)
            response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise FeedDeliveryError(
            f"Feed endpoint rejected the document: HTTP {e.response.status_code}",
            url=settings.url,
            status_code=e.response.status_code,
        ) from e
    except httpx.HTTPError as e:
        raise FeedDeliveryError(f"Cannot deliver issue feed: {e}", url=settings.url) from e

    logger.info("Pushed issue feed to %s (HTTP %d)", settings.url, response.status_code)
    return response.status_code
