"""Tests for deduplication and per-folder aggregation."""

from openacl.core.constants import READ
from openacl.core.types import (
    AccountAccess,
    AccountPermissionRow,
    ExpandedIdentity,
    PrincipalType,
    SecurityPrincipal,
)
from openacl.pipeline.aggregate import (
    aggregate_by_folder,
    deduplicate,
    merge_accounts,
    strip_ignored_domain,
)
from openacl.pipeline.flatten import flatten


def _principal(name, **attributes):
    return SecurityPrincipal(name, None, PrincipalType.USER, attributes=attributes)


class TestStripIgnoredDomain:
    def test_ignored_domain_removed(self):
        assert strip_ignored_domain("contoso1\\svc", ["CONTOSO1"]) == "svc"

    def test_other_domain_kept(self):
        assert strip_ignored_domain("FABRIKAM\\svc", ["CONTOSO1"]) == "FABRIKAM\\svc"

    def test_bare_name_kept(self):
        assert strip_ignored_domain("Everyone", ["CONTOSO1"]) == "Everyone"


# =============================================================================
# DEDUPLICATION
# =============================================================================


class TestDeduplicate:
    def test_merges_accounts_across_ignored_domains(self, ace):
        first = AccountPermissionRow(_principal("CONTOSO1\\svc"), ace("CONTOSO1\\svc"))
        second = AccountPermissionRow(
            _principal("CONTOSO2\\svc", full_name="Service"),
            ace("CONTOSO2\\svc", path="\\\\FS01\\projects\\hr"),
        )

        accounts = deduplicate([first, second], ["CONTOSO1", "CONTOSO2"])

        assert len(accounts) == 1
        merged = accounts[0]
        assert merged.name == "svc"
        assert merged.account.name == "CONTOSO2\\svc"
        assert [row.source_ace.source_path for row in merged.rows] == [
            "\\\\FS01\\projects",
            "\\\\FS01\\projects\\hr",
        ]
        assert all(row.name == "svc" for row in merged.rows)
        assert all(row.account is merged.account for row in merged.rows)

    def test_tie_keeps_first_representative(self, ace):
        rows = [
            AccountPermissionRow(_principal("CONTOSO1\\svc", mail="a"), ace("CONTOSO1\\svc")),
            AccountPermissionRow(_principal("CONTOSO2\\svc", mail="b"), ace("CONTOSO2\\svc")),
        ]
        assert deduplicate(rows, ["CONTOSO1", "CONTOSO2"])[0].account.name == "CONTOSO1\\svc"

    def test_without_ignored_domains_accounts_stay_apart(self, ace):
        rows = [
            AccountPermissionRow(_principal("CONTOSO1\\svc"), ace("CONTOSO1\\svc")),
            AccountPermissionRow(_principal("CONTOSO2\\svc"), ace("CONTOSO2\\svc")),
        ]
        assert [a.name for a in deduplicate(rows)] == ["CONTOSO1\\svc", "CONTOSO2\\svc"]

    def test_same_grant_counted_once(self, ace):
        entry = ace("CONTOSO\\GRP")
        rows = [
            AccountPermissionRow(_principal("CONTOSO\\bob"), entry, via_group="CONTOSO\\GRP"),
            AccountPermissionRow(_principal("contoso\\BOB"), entry, via_group="contoso\\grp"),
        ]
        accounts = deduplicate(rows)
        assert len(accounts) == 1
        assert len(accounts[0].rows) == 1

    def test_via_group_loses_ignored_domain(self, ace):
        entry = ace("CONTOSO1\\Admins")
        rows = [
            AccountPermissionRow(_principal("CONTOSO1\\bob"), entry, via_group="CONTOSO1\\Admins"),
            AccountPermissionRow(_principal("FABRIKAM\\eve"), entry, via_group="FABRIKAM\\Admins"),
        ]

        accounts = deduplicate(rows, ["contoso1"])

        assert [(a.name, a.rows[0].via_group) for a in accounts] == [
            ("bob", "Admins"),
            ("FABRIKAM\\eve", "FABRIKAM\\Admins"),
        ]
        assert merge_accounts(accounts, ["CONTOSO1"])[0].rows[0].via_group == "Admins"

    def test_merge_is_idempotent(self, ace):
        rows = [
            AccountPermissionRow(_principal("CONTOSO1\\svc"), ace("CONTOSO1\\svc")),
            AccountPermissionRow(_principal("CONTOSO2\\svc", full_name="x"), ace("CONTOSO2\\svc")),
            AccountPermissionRow(_principal("CONTOSO\\alice"), ace("CONTOSO\\alice")),
        ]
        once = deduplicate(rows, ["CONTOSO1", "CONTOSO2"])
        twice = merge_accounts(once, ["CONTOSO1", "CONTOSO2"])

        assert [(a.name, a.account.name, len(a.rows)) for a in twice] == [
            (a.name, a.account.name, len(a.rows)) for a in once
        ]
        assert [r.access_key for a in twice for r in a.rows] == [r.access_key for a in once for r in a.rows]

    def test_accounts_keep_first_seen_order(self, ace):
        rows = [
            AccountPermissionRow(_principal("CONTOSO\\zed"), ace("CONTOSO\\zed")),
            AccountPermissionRow(_principal("CONTOSO\\amy"), ace("CONTOSO\\amy")),
        ]
        assert [a.name for a in deduplicate(rows)] == ["CONTOSO\\zed", "CONTOSO\\amy"]


# =============================================================================
# AGGREGATION
# =============================================================================


class TestAggregateByFolder:
    def test_groups_rows_by_folder(self, ace):
        bob = _principal("CONTOSO\\bob")
        admins = SecurityPrincipal("CONTOSO\\Admins", None, PrincipalType.GROUP, members=[bob])
        alice = _principal("CONTOSO\\alice")
        expanded = [
            ExpandedIdentity(alice, [ace("CONTOSO\\alice", rights=int(READ))]),
            ExpandedIdentity(admins, [ace("CONTOSO\\Admins"), ace("CONTOSO\\Admins", path="\\\\FS01\\projects\\hr")]),
        ]

        folders = aggregate_by_folder(deduplicate(flatten(expanded)))

        assert [f.folder_path for f in folders] == ["\\\\FS01\\projects", "\\\\FS01\\projects\\hr"]
        assert [r.name for r in folders[0].rows] == ["CONTOSO\\Admins", "CONTOSO\\alice", "CONTOSO\\bob"]
        assert [r.name for r in folders[1].rows] == ["CONTOSO\\Admins", "CONTOSO\\bob"]

    def test_folder_path_case_insensitive(self, ace):
        rows = [
            AccountPermissionRow(_principal("CONTOSO\\a"), ace("CONTOSO\\a", path="\\\\FS01\\Projects")),
            AccountPermissionRow(_principal("CONTOSO\\b"), ace("CONTOSO\\b", path="\\\\fs01\\projects")),
        ]
        folders = aggregate_by_folder(deduplicate(rows))
        assert len(folders) == 1
        assert len(folders[0].rows) == 2

    def test_every_row_appears_exactly_once(self, ace):
        bob = _principal("CONTOSO\\bob")
        admins = SecurityPrincipal("CONTOSO\\Admins", None, PrincipalType.GROUP, members=[bob])
        expanded = [
            ExpandedIdentity(admins, [ace("CONTOSO\\Admins", path=f"\\\\FS01\\projects\\{i}") for i in range(3)]),
            ExpandedIdentity(bob, [ace("CONTOSO\\bob", path="\\\\FS01\\projects\\1")]),
        ]
        rows = flatten(expanded)
        accounts = deduplicate(rows)

        folders = aggregate_by_folder(accounts)

        from_folders = sorted((r.name, r.source_ace.source_path, r.via_group or "") for f in folders for r in f.rows)
        from_accounts = sorted((r.name, r.source_ace.source_path, r.via_group or "") for a in accounts for r in a.rows)
        assert from_folders == from_accounts
        assert len(from_folders) == len(rows)

    def test_rows_of_one_account_keep_ace_order(self, ace):
        principal = _principal("CONTOSO\\alice")
        first = ace("CONTOSO\\alice", rights=int(READ))
        second = ace("CONTOSO\\alice", rights=0x1F01FF, inherited=True)
        access = AccountAccess("CONTOSO\\alice", principal, [
            AccountPermissionRow(principal, first),
            AccountPermissionRow(principal, second),
        ])

        folders = aggregate_by_folder([access])

        assert [r.source_ace for r in folders[0].rows] == [first, second]
