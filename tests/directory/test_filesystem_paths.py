"""Tests for path helpers and the live NTFS reader (pywin32 mocked)."""

import sys
from unittest.mock import MagicMock, patch

import pytest

from openacl.core.types import AccessControlType
from openacl.directory.filesystem import (
    LocalTargetResolver,
    WindowsAccessReader,
    normalize_path,
    path_depth,
    server_from_path,
)
from openacl.exceptions import AdapterUnavailableError, FilesystemError


class FakeWin32Error(Exception):
    def __init__(self, winerror=5, funcname="", strerror="Access is denied."):
        super().__init__(winerror, funcname, strerror)
        self.winerror = winerror


# =============================================================================
# PATH HELPERS
# =============================================================================


class TestNormalizePath:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("//srv/share/dir/", "\\\\srv\\share\\dir"),
            ("\\\\FS01\\projects\\\\hr\\", "\\\\FS01\\projects\\hr"),
            ("C:/data/", "C:\\data"),
            ("C:\\", "C:\\"),
            ("  \\\\FS01\\projects  ", "\\\\FS01\\projects"),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_path(raw) == expected

    def test_path_depth(self):
        assert path_depth("\\\\FS01\\projects") == 2
        assert path_depth("\\\\FS01\\projects\\hr") == 3
        assert path_depth("C:\\") == 1


class TestServerFromPath:
    def test_unc_host(self):
        assert server_from_path("\\\\FS01\\projects\\hr", "LOCALBOX") == "FS01"

    def test_local_path_uses_local_server(self):
        assert server_from_path("D:\\shares\\projects", "LOCALBOX") == "LOCALBOX"

    def test_device_path_uses_local_server(self):
        assert server_from_path("\\\\?\\D:\\shares", "LOCALBOX") == "LOCALBOX"


class TestLocalTargetResolver:
    def test_resolves_to_itself(self):
        assert LocalTargetResolver().resolve_targets("//FS01/projects/") == ["\\\\FS01\\projects"]


# =============================================================================
# WINDOWS ACCESS READER
# =============================================================================


@pytest.fixture
def win32security():
    module = MagicMock()
    module.error = FakeWin32Error
    module.DACL_SECURITY_INFORMATION = 4
    module.LookupAccountSid.return_value = ("alice", "CONTOSO", 1)
    with patch.dict(sys.modules, {"win32security": module}):
        yield module


def _dacl(*aces):
    dacl = MagicMock()
    dacl.GetAceCount.return_value = len(aces)
    dacl.GetAce.side_effect = lambda i: aces[i]
    return dacl


class TestWindowsAccessReader:
    def test_unavailable_without_pywin32(self):
        with patch.dict(sys.modules, {"win32security": None}):
            with pytest.raises(AdapterUnavailableError) as exc_info:
                WindowsAccessReader()
        assert exc_info.value.adapter_type == "filesystem"

    def test_reads_allow_and_deny_entries(self, win32security):
        sd = win32security.GetFileSecurity.return_value
        sd.GetSecurityDescriptorDacl.return_value = _dacl(
            ((0x0, 0x10 | 0x3), 0x1F01FF, object()),
            ((0x1, 0x0), 0x120089, object()),
            ((0x2, 0x0), 0x120089, object()),  # audit ACE type, skipped
        )

        entries = WindowsAccessReader().list_access_entries("//FS01/projects", 0)

        assert len(entries) == 2
        allow, deny = entries
        assert allow.source_path == "\\\\FS01\\projects"
        assert allow.identity_reference == "CONTOSO\\alice"
        assert allow.access_control_type == AccessControlType.ALLOW
        assert allow.is_inherited
        assert allow.inheritance_flags == 0x3
        assert deny.access_control_type == AccessControlType.DENY
        assert not deny.is_inherited

    def test_unmapped_sid_falls_back_to_string_sid(self, win32security):
        win32security.LookupAccountSid.side_effect = FakeWin32Error(1332)
        win32security.ConvertSidToStringSid.return_value = "S-1-5-21-1-2-3-9999"
        sd = win32security.GetFileSecurity.return_value
        sd.GetSecurityDescriptorDacl.return_value = _dacl(((0x0, 0x0), 0x120089, object()))

        entries = WindowsAccessReader().list_access_entries("\\\\FS01\\projects", 0)

        assert entries[0].identity_reference == "S-1-5-21-1-2-3-9999"

    def test_null_dacl_has_no_entries(self, win32security):
        win32security.GetFileSecurity.return_value.GetSecurityDescriptorDacl.return_value = None
        assert WindowsAccessReader().list_access_entries("\\\\FS01\\projects", 0) == []

    def test_root_read_failure_raises(self, win32security):
        win32security.GetFileSecurity.side_effect = FakeWin32Error(5)

        with pytest.raises(FilesystemError) as exc_info:
            WindowsAccessReader().list_access_entries("\\\\FS01\\projects", 0)
        assert exc_info.value.path == "\\\\FS01\\projects"

    def test_subfolder_failure_is_skipped(self, win32security):
        good = MagicMock()
        good.GetSecurityDescriptorDacl.return_value = _dacl(((0x0, 0x0), 0x120089, object()))
        win32security.GetFileSecurity.side_effect = [good, FakeWin32Error(5)]
        reader = WindowsAccessReader()

        with patch.object(reader, "_walk", return_value=["\\\\FS01\\projects\\locked"]):
            entries = reader.list_access_entries("\\\\FS01\\projects", 1)

        assert [e.source_path for e in entries] == ["\\\\FS01\\projects"]
