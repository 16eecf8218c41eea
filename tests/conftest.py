"""
Shared test configuration for openacl.

The ``snapshot_data`` fixture describes a small file server estate:

    \\\\contoso.com\\dfs\\projects  ->  \\\\FS01\\projects
    \\\\FS01\\projects
        CONTOSO\\alice          Allow Read
        CONTOSO\\Admins         Allow FullControl   (members: CONTOSO\\bob)
        BUILTIN\\Administrators Allow FullControl   (inherited)
    \\\\FS01\\projects\\hr
        CONTOSO\\GRP_HR         Allow Modify        (members: CONTOSO\\alice, CONTOSO\\Admins)
        S-1-5-21-1000-2000-3000-9999  Allow Read   (deleted account)
"""

import copy

import pytest
import yaml

from openacl.config import PipelineSettings
from openacl.core.cache import CacheSet
from openacl.core.dispatcher import Dispatcher
from openacl.core.types import AccessControlEntry, AccessControlType
from openacl.directory.snapshot import DirectorySnapshot

DOMAIN_SID = "S-1-5-21-1000-2000-3000"

SNAPSHOT = {
    "domains": [
        {"netbios": "CONTOSO", "fqdn": "contoso.com", "sid": DOMAIN_SID},
    ],
    "servers": [
        {
            "name": "FS01",
            "domain": "CONTOSO",
            "local_accounts": [
                {
                    "caption": "BUILTIN\\Administrators",
                    "sid": "S-1-5-32-544",
                    "group": True,
                    "description": "Administrators have complete access",
                },
                {"caption": "BUILTIN\\Users", "sid": "S-1-5-32-545", "group": True},
            ],
        },
        {"name": "FS02", "domain": "CONTOSO", "unreachable": True},
    ],
    "principals": [
        {
            "name": "CONTOSO\\alice",
            "sid": f"{DOMAIN_SID}-1101",
            "type": "User",
            "attributes": {"full_name": "Alice Example", "department": "HR"},
        },
        {
            "name": "CONTOSO\\bob",
            "sid": f"{DOMAIN_SID}-1102",
            "type": "User",
            "attributes": {"full_name": "Bob Example"},
        },
        {
            "name": "CONTOSO\\Admins",
            "sid": f"{DOMAIN_SID}-1200",
            "type": "Group",
            "attributes": {"description": "File server admins"},
            "members": ["CONTOSO\\bob"],
        },
        {
            "name": "CONTOSO\\GRP_HR",
            "sid": f"{DOMAIN_SID}-1201",
            "type": "Group",
            "members": ["CONTOSO\\alice", "CONTOSO\\Admins"],
        },
    ],
    "targets": {
        "\\\\contoso.com\\dfs\\projects": ["\\\\FS01\\projects"],
    },
    "access": {
        "\\\\FS01\\projects": [
            {"identity": "CONTOSO\\alice", "type": "Allow", "rights": "Read"},
            {"identity": "CONTOSO\\Admins", "type": "Allow", "rights": "FullControl"},
            {"identity": "S-1-5-32-544", "type": "Allow", "rights": "FullControl", "inherited": True},
        ],
        "\\\\FS01\\projects\\hr": [
            {"identity": "CONTOSO\\GRP_HR", "type": "Allow", "rights": "Modify"},
            {"identity": f"{DOMAIN_SID}-9999", "type": "Allow", "rights": "Read"},
        ],
    },
}


def make_ace(
    identity: str,
    path: str = "\\\\FS01\\projects",
    access_type: AccessControlType = AccessControlType.ALLOW,
    rights: int = 0x1F01FF,
    inherited: bool = False,
) -> AccessControlEntry:
    """Build an ACE with sensible defaults."""
    return AccessControlEntry(
        source_path=path,
        identity_reference=identity,
        access_control_type=access_type,
        rights=rights,
        is_inherited=inherited,
    )


@pytest.fixture
def snapshot_data():
    """A fresh, mutable copy of the sample estate."""
    return copy.deepcopy(SNAPSHOT)


@pytest.fixture
def snapshot(snapshot_data):
    """DirectorySnapshot over the sample estate."""
    return DirectorySnapshot(snapshot_data)


@pytest.fixture
def snapshot_file(tmp_path, snapshot_data):
    """The sample estate written to a YAML file."""
    path = tmp_path / "estate.yaml"
    path.write_text(yaml.safe_dump(snapshot_data), encoding="utf-8")
    return path


@pytest.fixture
def caches():
    return CacheSet()


@pytest.fixture
def sequential():
    return Dispatcher(worker_count=1)


@pytest.fixture
def pipeline_settings():
    return PipelineSettings(thread_count=1, local_server_name="FS01")


@pytest.fixture
def ace():
    """Factory for AccessControlEntry objects (see make_ace)."""
    return make_ace
