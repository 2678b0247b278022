import os
import stat

import pytest

from sshkeysync.hooks import PosixPlatform, WindowsPlatform, default_platform


def test_posix_platform(tmp_path):
    path = tmp_path / 'alice'
    path.write_text('')
    path.chmod(0o644)

    platform = PosixPlatform(str(tmp_path))
    assert platform.ssh_root_directory() == str(tmp_path)
    platform.harden_permissions(str(path))
    assert stat.S_IMODE(os.stat(str(path)).st_mode) == 0o600


def test_posix_platform_default_root():
    assert PosixPlatform().ssh_root_directory() == '/etc/ssh'


def test_windows_platform(monkeypatch):
    monkeypatch.setenv('ProgramData', 'C:\\ProgramData')
    assert WindowsPlatform().ssh_root_directory() == os.path.join(
        'C:\\ProgramData', 'ssh'
    )
    assert WindowsPlatform('D:\\ssh').ssh_root_directory() == 'D:\\ssh'


def test_windows_platform_lookup_error(monkeypatch):
    monkeypatch.delenv('ProgramData', raising=False)
    with pytest.raises(OSError):
        WindowsPlatform().ssh_root_directory()


def test_default_platform(monkeypatch):
    monkeypatch.setattr(os, 'name', 'posix')
    assert default_platform().ssh_root_directory() == '/etc/ssh'
    assert default_platform('/srv/ssh').ssh_root_directory() == '/srv/ssh'
    monkeypatch.setattr(os, 'name', 'nt')
    assert isinstance(default_platform(), WindowsPlatform)


def test_windows_platform_relies_on_inherited_acls(tmp_path):
    path = tmp_path / 'alice'
    path.write_text('')
    path.chmod(0o644)
    WindowsPlatform(str(tmp_path)).harden_permissions(str(path))
    assert stat.S_IMODE(os.stat(str(path)).st_mode) == 0o644
