import json
import os

import pytest

from sshkeysync.__main__ import main
from sshkeysync.state import AUTHORIZED_KEYS_FILE_HEADER


@pytest.fixture(autouse=True)
def no_logging_setup(mocker):
    return mocker.patch('sshkeysync.log.setup_logging')


@pytest.fixture
def metadata_file(tmp_path):
    path = tmp_path / 'metadata.json'
    path.write_text(json.dumps({
        'instance': {'attributes': {'ssh-keys': 'alice:ssh-rsa AAA'}},
        'project': {'attributes': {'ssh-keys': 'bob:ssh-rsa BBB'}},
    }))
    return path


def test_main_applies_metadata(sshconf, ssh_root, keys_dir, metadata_file,
                               tmp_path):
    metrics = tmp_path / 'sshkeysync.prom'
    sshconf('sshkeysync', ssh_root=str(ssh_root),
            metrics_textfile=str(metrics))

    assert main(['-m', str(metadata_file)]) == 0
    assert sorted(os.listdir(str(keys_dir))) == ['alice', 'bob']
    assert (keys_dir / 'bob').read_text() == (
        AUTHORIZED_KEYS_FILE_HEADER + '\nssh-rsa BBB\n'
    )
    assert 'sshkeysync_passes_total' in metrics.read_text()


def test_main_metadata_path_from_config(sshconf, ssh_root, keys_dir,
                                        metadata_file):
    sshconf('sshkeysync', ssh_root=str(ssh_root),
            metadata_path=str(metadata_file))
    assert main([]) == 0
    assert (keys_dir / 'alice').exists()


def test_main_removes_stale_files(sshconf, ssh_root, keys_dir,
                                  metadata_file):
    keys_dir.mkdir()
    (keys_dir / 'carol').write_text(
        AUTHORIZED_KEYS_FILE_HEADER + '\nssh-rsa CCC\n'
    )
    sshconf('sshkeysync', ssh_root=str(ssh_root))
    assert main(['-m', str(metadata_file)]) == 0
    assert sorted(os.listdir(str(keys_dir))) == ['alice', 'bob']


def test_main_without_metadata(sshconf, ssh_root):
    sshconf('sshkeysync', ssh_root=str(ssh_root))
    assert main([]) == 2


def test_main_unreadable_metadata(sshconf, ssh_root, tmp_path):
    sshconf('sshkeysync', ssh_root=str(ssh_root))
    assert main(['-m', str(tmp_path / 'missing.json')]) == 1


def test_main_reports_user_failures(sshconf, ssh_root, keys_dir,
                                    metadata_file):
    keys_dir.mkdir()
    (keys_dir / 'bob').mkdir()
    (keys_dir / 'bob' / 'keep').write_text('')
    sshconf('sshkeysync', ssh_root=str(ssh_root))
    assert main(['-m', str(metadata_file)]) == 1
    assert (keys_dir / 'alice').exists()
