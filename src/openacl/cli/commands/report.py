"""
Report command: per-account folder permissions and NTFS issues for a path.
"""

from __future__ import annotations

import logging
import sys

import click

from openacl.cli.base import common_options, format_option, spinner
from openacl.cli.output import OutputFormatter
from openacl.config import PipelineSettings, Settings, get_settings
from openacl.core.types import HealthStatus
from openacl.exceptions import FeedDeliveryError, OpenACLError, TargetAccessError
from openacl.pipeline.runner import PermissionPipeline, PermissionReport
from openacl.reporting.feed import issues_to_xml, push_issue_feed
from openacl.reporting.tables import FOLDER_COLUMNS, ISSUE_COLUMNS, folder_table, write_artifacts

logger = logging.getLogger(__name__)

EXIT_FATAL = 1
EXIT_DEGRADED = 2


def build_pipeline(settings: PipelineSettings, snapshot: str | None) -> PermissionPipeline:
    """Wire the pipeline to a snapshot file, or to the live Windows APIs."""
    if snapshot:
        from openacl.directory.snapshot import DirectorySnapshot

        source = DirectorySnapshot.from_file(snapshot)
        return PermissionPipeline(settings, source, source, source)

    from openacl.directory.filesystem import LocalTargetResolver, WindowsAccessReader
    from openacl.directory.windows import WindowsDirectory

    return PermissionPipeline(
        settings,
        WindowsDirectory(settings.local_server_name),
        LocalTargetResolver(),
        WindowsAccessReader(),
    )


def _pipeline_settings(settings: Settings, **overrides: object) -> PipelineSettings:
    update = {key: value for key, value in overrides.items() if value is not None}
    return settings.pipeline.model_copy(update=update)


@click.command()
@click.argument("path")
@click.option("--snapshot", type=click.Path(exists=True, dir_okay=False),
              help="Directory/ACL snapshot (YAML or JSON) instead of live Windows lookups")
@click.option("--threads", type=click.IntRange(min=1), help="Worker threads for resolution and expansion")
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True),
              help="Batch timeout in seconds per parallel stage")
@click.option("--ignore-domain", "ignore_domains", multiple=True,
              help="Domain prefix to strip when merging accounts (repeatable)")
@click.option("--no-expand-groups", is_flag=True, help="List groups without their members")
@click.option("--naming-convention", help="Regex that directly listed group names must match")
@click.option("--recurse-levels", type=click.IntRange(min=0), help="Subfolder levels to read")
@format_option()
@click.option("--output-dir", type=click.Path(file_okay=False), help="Write CSV tables and issues.xml here")
@click.option("--push", is_flag=True, help="POST the issue feed to the configured endpoint")
@common_options
def report(
    path: str,
    snapshot: str | None,
    threads: int | None,
    timeout: float | None,
    ignore_domains: tuple[str, ...],
    no_expand_groups: bool,
    naming_convention: str | None,
    recurse_levels: int | None,
    output_format: str,
    output_dir: str | None,
    push: bool,
    quiet: bool,
):
    """Report who can access PATH and which NTFS issues it has.

    Exits with 2 when an Error-severity issue is found and 1 when the
    target cannot be read at all.

    \b
    Examples:
        openacl report \\\\FS01\\projects --threads 8 --ignore-domain CONTOSO
        openacl report \\\\FS01\\projects --snapshot site.yaml --format json
        openacl report D:\\Shares\\HR --output-dir out/ --push
    """
    fmt = OutputFormatter(output_format, quiet)
    settings = get_settings()
    pipeline_settings = _pipeline_settings(
        settings,
        thread_count=threads,
        batch_timeout=timeout,
        ignore_domains=list(ignore_domains) or None,
        expand_group_members=False if no_expand_groups else None,
        group_naming_convention=naming_convention,
        recurse_levels=recurse_levels,
    )

    try:
        pipeline = build_pipeline(pipeline_settings, snapshot)
        with spinner(f"Reporting {path}", quiet) as progress:
            progress.add_task(f"Reporting {path}", total=None)
            result = pipeline.run(path)
    except TargetAccessError as e:
        fmt.print_error(f"Cannot read {path}: {e.message}")
        sys.exit(EXIT_FATAL)
    except OpenACLError as e:
        fmt.print_error(str(e))
        sys.exit(EXIT_FATAL)

    _print_report(fmt, result)

    if output_dir:
        written = write_artifacts(result, output_dir)
        fmt.print_message(f"Wrote {len(written)} files to {output_dir}")

    if push:
        try:
            push_issue_feed(issues_to_xml(result.issues), settings.feed)
        except FeedDeliveryError as e:
            fmt.print_error(str(e))
            sys.exit(EXIT_FATAL)
        fmt.print_message(f"Pushed issue feed to {settings.feed.url}")

    fmt.print_message(
        f"{len(result.issues)} issues ({result.error_count} errors, "
        f"{result.warning_count} warnings), status: {result.health.value}"
    )
    if result.health == HealthStatus.DEGRADED:
        sys.exit(EXIT_DEGRADED)


def _print_report(fmt: OutputFormatter, result: PermissionReport) -> None:
    permissions = folder_table(result.folders)
    issues = [issue.to_dict() for issue in result.issues]

    if fmt.format == "json":
        fmt.print_single({"summary": result.summary(), "permissions": permissions, "issues": issues})
        return

    if fmt.format == "csv":
        fmt.print_table(permissions, FOLDER_COLUMNS)
        return

    fmt.print_table(permissions, FOLDER_COLUMNS, group_by="folder")
    if issues:
        click.echo("NTFS issues:")
        fmt.print_table(issues, ISSUE_COLUMNS)
