"""Tests for flattening expanded identities into rows."""

from openacl.core.constants import READ
from openacl.core.types import ExpandedIdentity, PrincipalType, SecurityPrincipal
from openacl.pipeline.flatten import flatten


def _alice_and_admins(ace):
    bob = SecurityPrincipal("CONTOSO\\bob", None, PrincipalType.USER)
    admins = SecurityPrincipal("CONTOSO\\Admins", None, PrincipalType.GROUP, members=[bob])
    alice = SecurityPrincipal("CONTOSO\\alice", None, PrincipalType.USER)
    return [
        ExpandedIdentity(alice, [ace("CONTOSO\\alice", rights=int(READ))]),
        ExpandedIdentity(admins, [ace("CONTOSO\\Admins")]),
    ]


class TestFlatten:
    def test_group_rows_and_member_rows(self, ace):
        rows = flatten(_alice_and_admins(ace))

        assert [(r.name, r.via_group, r.source_ace.rights_names) for r in rows] == [
            ("CONTOSO\\alice", None, ["Read"]),
            ("CONTOSO\\Admins", None, ["FullControl"]),
            ("CONTOSO\\bob", "CONTOSO\\Admins", ["FullControl"]),
        ]

    def test_member_row_shares_group_ace(self, ace):
        rows = flatten(_alice_and_admins(ace))
        assert rows[2].source_ace is rows[1].source_ace
        assert not rows[2].listed_directly

    def test_expansion_disabled(self, ace):
        rows = flatten(_alice_and_admins(ace), expand_group_members=False)
        assert [r.name for r in rows] == ["CONTOSO\\alice", "CONTOSO\\Admins"]

    def test_one_row_set_per_ace(self, ace):
        bob = SecurityPrincipal("CONTOSO\\bob", None, PrincipalType.USER)
        admins = SecurityPrincipal("CONTOSO\\Admins", None, PrincipalType.GROUP, members=[bob])
        item = ExpandedIdentity(
            admins,
            [ace("CONTOSO\\Admins"), ace("CONTOSO\\Admins", path="\\\\FS01\\projects\\hr")],
        )

        rows = flatten([item])

        assert len(rows) == 4
        assert {r.source_ace.source_path for r in rows if r.name == "CONTOSO\\bob"} == {
            "\\\\FS01\\projects",
            "\\\\FS01\\projects\\hr",
        }

    def test_fake_group_members_not_expanded_when_empty(self, ace):
        everyone = SecurityPrincipal("Everyone", "S-1-1-0", PrincipalType.FAKE_GROUP)
        rows = flatten([ExpandedIdentity(everyone, [ace("Everyone")])])
        assert [r.name for r in rows] == ["Everyone"]
