"""Tests for identity expansion."""

from unittest.mock import MagicMock

import pytest

from openacl.core.dispatcher import Dispatcher
from openacl.core.types import (
    DirectoryEntry,
    PrincipalType,
    ResolutionStatus,
    ResolvedAce,
    ResolvedIdentity,
)
from openacl.exceptions import DirectoryLookupError
from openacl.pipeline.discovery import discover
from openacl.pipeline.expansion import IdentityExpander, expand_identities, group_by_principal, shell_principal
from openacl.pipeline.resolution import resolve_access_entries

DOMAIN_SID = "S-1-5-21-1000-2000-3000"


def _identity(name, status=ResolutionStatus.RESOLVED, sid=None):
    return ResolvedIdentity(identity_reference=name, domain_qualified_name=name, sid=sid, status=status)


@pytest.fixture
def resolved(snapshot, caches, sequential):
    entries = snapshot.list_access_entries("\\\\FS01\\projects", 999)
    discover(entries, caches, snapshot, "FS01")
    return resolve_access_entries(entries, caches, snapshot, sequential, "FS01")


# =============================================================================
# SHELLS AND GROUPING
# =============================================================================


class TestShellPrincipal:
    def test_fake_group(self):
        principal = shell_principal(_identity("Everyone", ResolutionStatus.FAKE, "S-1-1-0"))

        assert principal.principal_type == PrincipalType.FAKE_GROUP
        assert principal.status == ResolutionStatus.FAKE
        assert principal.attributes["description"]

    def test_fake_user(self):
        principal = shell_principal(_identity("CREATOR OWNER", ResolutionStatus.FAKE, "S-1-3-0"))
        assert principal.principal_type == PrincipalType.FAKE_USER

    def test_fake_without_known_sid(self):
        principal = shell_principal(_identity("NT SERVICE\\TrustedInstaller", ResolutionStatus.FAKE))

        assert principal.principal_type == PrincipalType.FAKE_USER
        assert principal.attributes == {}

    def test_unresolved_shell_is_a_user(self):
        principal = shell_principal(
            _identity(f"CONTOSO\\{DOMAIN_SID}-9999", ResolutionStatus.UNRESOLVED_SID, f"{DOMAIN_SID}-9999")
        )

        assert principal.principal_type == PrincipalType.USER
        assert principal.status == ResolutionStatus.UNRESOLVED_SID
        assert principal.members == []


class TestGroupByPrincipal:
    def test_case_insensitive(self, ace):
        items = [
            ResolvedAce(ace("CONTOSO\\alice"), _identity("CONTOSO\\alice")),
            ResolvedAce(ace("contoso\\ALICE", path="\\\\FS01\\projects\\hr"), _identity("contoso\\ALICE")),
        ]
        groups = group_by_principal(items)
        assert list(groups) == ["CONTOSO\\ALICE"]
        assert len(groups["CONTOSO\\ALICE"]) == 2


# =============================================================================
# EXPANDER
# =============================================================================


class TestIdentityExpander:
    def test_user_gets_directory_attributes(self, snapshot, caches):
        principal = IdentityExpander(caches, snapshot).expand(_identity("CONTOSO\\alice"))

        assert principal.principal_type == PrincipalType.USER
        assert principal.sid == f"{DOMAIN_SID}-1101"
        assert principal.attributes["full_name"] == "Alice Example"

    def test_group_members_one_level_deep(self, snapshot, caches):
        principal = IdentityExpander(caches, snapshot).expand(_identity("CONTOSO\\GRP_HR"))

        assert [m.name for m in principal.members] == ["CONTOSO\\alice", "CONTOSO\\Admins"]
        nested = principal.members[1]
        assert nested.is_group
        assert nested.members == []

    def test_member_expansion_disabled(self, snapshot, caches):
        expander = IdentityExpander(caches, snapshot, expand_group_members=False)
        assert expander.expand(_identity("CONTOSO\\GRP_HR")).members == []

    def test_members_seed_directory_cache(self, caches):
        directory = MagicMock()
        directory.lookup_principal.return_value = DirectoryEntry(
            "CONTOSO\\Admins", f"{DOMAIN_SID}-1200", PrincipalType.GROUP
        )
        directory.list_group_members.return_value = [
            DirectoryEntry("CONTOSO\\bob", f"{DOMAIN_SID}-1102", PrincipalType.USER),
        ]
        expander = IdentityExpander(caches, directory)

        expander.expand(_identity("CONTOSO\\Admins"))
        bob = expander.expand(_identity("CONTOSO\\bob"))

        assert bob.sid == f"{DOMAIN_SID}-1102"
        directory.lookup_principal.assert_called_once_with("CONTOSO\\Admins")

    def test_duplicate_members_collapsed(self, caches):
        directory = MagicMock()
        directory.lookup_principal.return_value = DirectoryEntry("CONTOSO\\G", None, PrincipalType.GROUP)
        directory.list_group_members.return_value = [
            DirectoryEntry("CONTOSO\\bob", None, PrincipalType.USER),
            DirectoryEntry("contoso\\BOB", None, PrincipalType.USER),
        ]

        principal = IdentityExpander(caches, directory).expand(_identity("CONTOSO\\G"))

        assert len(principal.members) == 1

    def test_member_listing_failure_keeps_group(self, caches):
        directory = MagicMock()
        directory.lookup_principal.return_value = DirectoryEntry("CONTOSO\\G", None, PrincipalType.GROUP)
        directory.list_group_members.side_effect = DirectoryLookupError("no such group")

        principal = IdentityExpander(caches, directory).expand(_identity("CONTOSO\\G"))

        assert principal.is_group
        assert principal.members == []

    def test_lookup_failure_gives_shell(self, caches):
        directory = MagicMock()
        directory.lookup_principal.side_effect = DirectoryLookupError("DC unavailable")

        principal = IdentityExpander(caches, directory).expand(_identity("CONTOSO\\carol"))

        assert principal.name == "CONTOSO\\carol"
        assert principal.principal_type == PrincipalType.USER
        assert principal.status == ResolutionStatus.UNRESOLVED_SID

    def test_missing_directory_entry_gives_unresolved_shell(self, caches):
        directory = MagicMock()
        directory.lookup_principal.return_value = None

        principal = IdentityExpander(caches, directory).expand(_identity("CONTOSO\\ghost"))

        assert principal.name == "CONTOSO\\ghost"
        assert principal.status == ResolutionStatus.UNRESOLVED_SID
        assert principal.attributes == {}
        assert principal.members == []

    def test_non_resolved_identity_is_not_looked_up(self, caches):
        directory = MagicMock()
        IdentityExpander(caches, directory).expand(_identity("Everyone", ResolutionStatus.FAKE, "S-1-1-0"))
        directory.lookup_principal.assert_not_called()


# =============================================================================
# STAGE
# =============================================================================


class TestExpandIdentities:
    def test_one_expanded_identity_per_principal(self, resolved, snapshot, caches, sequential):
        expanded = expand_identities(resolved, caches, snapshot, sequential)

        assert [item.principal.name for item in expanded] == [
            "BUILTIN\\Administrators",
            "CONTOSO\\Admins",
            "CONTOSO\\alice",
            "CONTOSO\\GRP_HR",
            f"CONTOSO\\{DOMAIN_SID}-9999",
        ]
        assert sum(len(item.access_entries) for item in expanded) == len(resolved)

    def test_builtin_group_from_local_accounts(self, resolved, snapshot, caches, sequential):
        expanded = expand_identities(resolved, caches, snapshot, sequential)
        administrators = expanded[0].principal

        assert administrators.principal_type == PrincipalType.GROUP
        assert administrators.sid == "S-1-5-32-544"

    def test_parallel_matches_sequential(self, resolved, snapshot, caches):
        sequential = expand_identities(resolved, caches, snapshot, Dispatcher(1))
        parallel = expand_identities(resolved, caches, snapshot, Dispatcher(4))

        def shape(items):
            return [
                (item.principal.name, [m.name for m in item.principal.members], item.access_entries)
                for item in items
            ]

        assert shape(parallel) == shape(sequential)

    def test_each_principal_looked_up_once(self, resolved, snapshot, caches):
        directory = MagicMock(wraps=snapshot)

        expand_identities(resolved * 3, caches, directory, Dispatcher(4))

        names = [call.args[0] for call in directory.lookup_principal.call_args_list]
        assert len(names) == len(set(n.upper() for n in names))
