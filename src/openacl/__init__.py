"""
openacl - NTFS folder permission reporting

This package provides:
- Pipeline: resolves, expands, flattens and aggregates folder ACLs per account
- Issues: flags NTFS misconfigurations and publishes them as an XML feed
- CLI: command-line report tool backed by live Windows APIs or a snapshot
"""

__version__ = "0.1.0"
