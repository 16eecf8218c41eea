"""
openacl CLI module.

Provides the shared option decorators and output formatting used by the
command modules.
"""

from openacl.cli.base import common_options, format_option, spinner
from openacl.cli.output import OutputFormatter

__all__ = [
    "common_options",
    "format_option",
    "spinner",
    "OutputFormatter",
]
