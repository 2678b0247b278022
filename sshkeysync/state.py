# SPDX-License-Identifier: GPL-2.0-or-later
"""Authorized keys files managed on behalf of the metadata, and the in-memory
record of what has been written to them.
"""

import logging
import os
import os.path
import stat
import tempfile
from typing import Dict, List, Optional

from sshkeysync.keys import UserRecord, key_expire_time, min_time
from sshkeysync.keys import is_valid_username

AUTHORIZED_KEYS_FILE_HEADER = '# Added by Google Compute Engine'
GOOGLE_SSH_SUBDIRECTORY = 'google_compute_authorized_keys'
DIRECTORY_PERMISSIONS = 0o700
FILE_PERMISSIONS = 0o600


class KeysDirectoryError(Exception):
    """The managed directory could not be created."""


class UserUpdateError(Exception):
    """The authorized keys file of a user could not be updated."""

    def __init__(self, username, cause):
        super().__init__('cannot update keys of {}: {}'.format(username,
                                                               cause))
        self.username = username
        self.cause = cause


class AtomicFile:
    """Write to `filepath` using a temporary file in the same directory as a
    buffer, so that the destination file is replaced in one step.
    """

    def __init__(self, filepath, perms):
        self.filepath = filepath
        fd, self.temp_path = tempfile.mkstemp(
            prefix='.{}.'.format(os.path.basename(filepath)),
            dir=os.path.dirname(filepath),
        )
        try:
            os.chmod(self.temp_path, perms)
            self.f = os.fdopen(fd, 'w', encoding='utf-8')
        except BaseException:
            os.close(fd)
            os.unlink(self.temp_path)
            raise

    def __enter__(self):
        return self.f

    def __exit__(self, type, value, traceback):
        try:
            self.f.close()
            if type is None:
                os.replace(self.temp_path, self.filepath)
        finally:
            if os.path.exists(self.temp_path):
                os.unlink(self.temp_path)


def authorized_keys_content(keys):
    lines = [AUTHORIZED_KEYS_FILE_HEADER] + list(keys)
    return ''.join(line + '\n' for line in lines)


def read_authorized_keys_file(path) -> Optional[UserRecord]:
    """Parse a managed authorized keys file back into a UserRecord.

    Return None if the file does not start with our header. Keys are kept as
    found, expired ones included, so that the record describes the file.
    """
    with open(path, 'r', encoding='utf-8') as f:
        lines = f.read().split('\n')
    if not lines or lines[0] != AUTHORIZED_KEYS_FILE_HEADER:
        return None

    keys = []
    earliest = None
    for key in lines[1:]:
        if not key:
            continue
        keys.append(key)
        earliest = min_time(earliest, key_expire_time(key))
    return UserRecord(tuple(keys), earliest)


class UserState:
    """What has been written to the managed directory so far.

    An empty `authorized_keys_dir` means the synchronisation is inactive.
    """

    def __init__(self, authorized_keys_dir=''):
        self.authorized_keys_dir = authorized_keys_dir
        self.mapping: Dict[str, UserRecord] = {}
        self.earliest_expire_time = None

    def reset(self, authorized_keys_dir=''):
        self.authorized_keys_dir = authorized_keys_dir
        self.mapping = {}
        self.earliest_expire_time = None

    @staticmethod
    def resolve_directory(platform):
        """Return the managed directory, or '' if SSH is not installed.

        Raise NotADirectoryError if the SSH root is not a directory, and let
        lookup errors propagate.
        """
        ssh_dir = platform.ssh_root_directory()
        try:
            st = os.stat(ssh_dir)
        except FileNotFoundError:
            return ''
        if not stat.S_ISDIR(st.st_mode):
            raise NotADirectoryError('not a directory: {}'.format(ssh_dir))
        return os.path.join(ssh_dir, GOOGLE_SSH_SUBDIRECTORY)

    def setup_directory(self):
        try:
            os.mkdir(self.authorized_keys_dir, DIRECTORY_PERMISSIONS)
        except FileExistsError:
            pass
        except OSError as e:
            raise KeysDirectoryError(
                'cannot create {}: {}'.format(self.authorized_keys_dir, e)
            ) from e

    def user_path(self, username):
        return os.path.join(self.authorized_keys_dir, username)

    def usernames_to_update(self, desired) -> List[str]:
        to_update = set()
        for username, record in desired.items():
            if record != self.mapping.get(username):
                to_update.add(username)
        for username in self.mapping:
            record = desired.get(username)
            if record is None or not record.keys:
                to_update.add(username)
        return sorted(to_update)

    def update_user(self, username, record, platform):
        """Make the key file of `username` match `record`.

        An absent or empty `record` removes the file. Raise UserUpdateError on
        failure; the tracked mapping only changes once the file is written.
        """
        path = self.user_path(username)
        if record is None or not record.keys:
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
            except OSError as e:
                raise UserUpdateError(username, e) from e
            self.mapping.pop(username, None)
            logging.info('Removed authorized keys of %s', username)
            return

        try:
            with AtomicFile(path, FILE_PERMISSIONS) as f:
                f.write(authorized_keys_content(record.keys))
        except (OSError, ValueError) as e:
            # ValueError covers unencodable keys and unusable file names.
            raise UserUpdateError(username, e) from e
        self.mapping[username] = record
        logging.info('Wrote %d authorized keys for %s', len(record.keys),
                     username)

        try:
            platform.harden_permissions(path)
        except OSError as e:
            raise UserUpdateError(username, e) from e

    def update_expire_time(self):
        self.earliest_expire_time = None
        for record in self.mapping.values():
            self.earliest_expire_time = min_time(self.earliest_expire_time,
                                                 record.earliest_expire_time)

    def adopt_existing_files(self):
        """Track the managed files already present in the directory.

        Files we did not write, or that cannot be read, are left alone. A
        managed file holding no key stands for a user without keys and is
        removed.
        """
        self.mapping = {}
        try:
            names = os.listdir(self.authorized_keys_dir)
        except FileNotFoundError:
            names = []
        for username in names:
            path = self.user_path(username)
            if not is_valid_username(username) or not os.path.isfile(path):
                continue
            try:
                record = read_authorized_keys_file(path)
            except (OSError, UnicodeDecodeError) as e:
                logging.warning('Cannot read %s: %s', path, e)
                continue
            if record is None:
                continue
            if not record.keys:
                try:
                    os.remove(path)
                except OSError as e:
                    logging.warning('Cannot remove %s: %s', path, e)
                continue
            self.mapping[username] = record
        self.update_expire_time()
        logging.info('Adopted %d existing authorized keys files',
                     len(self.mapping))
