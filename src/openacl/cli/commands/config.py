"""
Configuration commands.
"""

import click


@click.group()
def config():
    """Configuration management."""
    pass


@config.command("show")
@click.option("--show-secrets", is_flag=True, help="Include the feed token")
def config_show(show_secrets: bool):
    """Display the effective configuration (defaults, config.yaml, environment)."""
    from openacl.config import get_settings

    settings = get_settings()
    exclude = None if show_secrets else {"feed": {"token"}}
    click.echo(settings.model_dump_json(indent=2, exclude=exclude))
