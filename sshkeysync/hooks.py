# SPDX-License-Identifier: GPL-2.0-or-later
"""Operating system specific hooks: where the SSH server keeps its
configuration, and how a freshly written authorized keys file is made
acceptable to it.
"""

import os
import os.path

FILE_PERMISSIONS = 0o600


class Platform:
    """Capability handed to the reconciler. Subclasses implement both hooks.
    """

    def ssh_root_directory(self):
        """Return the base configuration directory of the SSH server.

        The directory does not have to exist. Raise OSError if it cannot be
        looked up.
        """
        raise NotImplementedError()

    def harden_permissions(self, path):
        """Restrict ownership and permissions of the key file at `path`.

        Raise OSError on failure.
        """
        raise NotImplementedError()


class PosixPlatform(Platform):
    def __init__(self, ssh_root='/etc/ssh'):
        self.ssh_root = ssh_root

    def ssh_root_directory(self):
        return self.ssh_root

    def harden_permissions(self, path):
        os.chmod(path, FILE_PERMISSIONS)


class WindowsPlatform(Platform):
    """OpenSSH for Windows, configured under %ProgramData%\\ssh.

    Key files are not hardened: files created in the managed directory
    inherit the ACLs of %ProgramData%\\ssh, which only grant access to
    SYSTEM and Administrators, as sshd requires.
    """

    def __init__(self, ssh_root=None):
        self.ssh_root = ssh_root

    def ssh_root_directory(self):
        if self.ssh_root is not None:
            return self.ssh_root
        program_data = os.environ.get('ProgramData')
        if not program_data:
            raise FileNotFoundError('ProgramData folder is not known')
        return os.path.join(program_data, 'ssh')

    def harden_permissions(self, path):
        pass


def default_platform(ssh_root=None):
    """Return the platform matching the running system.

    `ssh_root` overrides the SSH configuration directory.
    """
    if os.name == 'nt':
        return WindowsPlatform(ssh_root)
    if ssh_root is None:
        return PosixPlatform()
    return PosixPlatform(ssh_root)
