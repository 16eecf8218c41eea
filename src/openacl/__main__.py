"""
openacl CLI entry point.

Usage:
    openacl report PATH [--snapshot FILE] [--threads N] [--format table|json|csv]
    openacl config show
"""

from typing import Optional

import click

from openacl.cli.commands import config, report
from openacl.config import get_settings
from openacl.logging import setup_logging


@click.group()
@click.version_option(package_name="openacl")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
              default=None, help="Override the configured log level")
@click.option("--log-json", is_flag=True, help="Log JSON lines to stderr")
def cli(log_level: Optional[str], log_json: bool):
    """openacl - NTFS folder permission reports and issue feed"""
    settings = get_settings().logging
    setup_logging(
        level=log_level or settings.level,
        json_format=log_json or settings.json_format,
        log_file=settings.file,
    )


cli.add_command(report)
cli.add_command(config)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
