import datetime

import pytest

from sshkeysync.hooks import Platform

NOW = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)


class FakePlatform(Platform):
    """Platform hooks working in a temporary directory and recording calls.
    """

    def __init__(self, ssh_root):
        self.ssh_root = str(ssh_root)
        self.hardened = []
        self.lookup_error = None
        self.harden_error = None

    def ssh_root_directory(self):
        if self.lookup_error is not None:
            raise self.lookup_error
        return self.ssh_root

    def harden_permissions(self, path):
        self.hardened.append(path)
        if self.harden_error is not None:
            raise self.harden_error


@pytest.fixture
def sshconf(mocker):
    """Mocks :func:`sshkeysync.config.load` for a given profile.

    Usage::

        def test_something(sshconf):
            sshconf("sshkeysync", metadata_path="/tmp/metadata.json")
            ...
    """
    config_registry = {}

    def mocked_loader(profile):
        try:
            return config_registry[profile]
        except KeyError:
            raise KeyError(
                f"Application loads config profile '{profile}', which is not "
                f"configured in sshconf fixture."
            ) from None

    def configure_func(profile, **kwargs):
        config_registry[profile] = kwargs

    config_load = mocker.patch("sshkeysync.config.load")
    config_load.side_effect = mocked_loader
    yield configure_func


@pytest.fixture
def ssh_root(tmp_path):
    root = tmp_path / "ssh"
    root.mkdir()
    return root


@pytest.fixture
def platform(ssh_root):
    return FakePlatform(ssh_root)


@pytest.fixture
def keys_dir(ssh_root):
    return ssh_root / "google_compute_authorized_keys"


def expiring_key(key, expire_on):
    return (
        f'{key} google-ssh '
        f'{{"userName":"someone","expireOn":"{expire_on}"}}'
    )
