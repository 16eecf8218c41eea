"""
CLI command modules.
"""

# Configuration commands
from openacl.cli.commands.config import config

# Permission report command
from openacl.cli.commands.report import report

__all__ = [
    "config",
    "report",
]
