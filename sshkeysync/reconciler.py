# SPDX-License-Identifier: GPL-2.0-or-later
"""One reconciliation pass between the metadata and the managed directory.

The reconciler does not decide when to run: the caller owns the schedule and
uses `needs_pass` (metadata changed, or a key expired since the last pass) to
decide whether to call `run_pass`. Passes must not overlap.
"""

import dataclasses
import logging
from typing import List, Tuple

from sshkeysync.keys import desired_key_mapping, time_has_expired, utcnow
from sshkeysync.monitoring import (
    sshkeysync_passes_total,
    sshkeysync_user_updates_total,
    sshkeysync_user_update_failures_total,
    sshkeysync_managed_users,
    sshkeysync_earliest_expiration_timestamp_seconds,
    sshkeysync_pass_latency_seconds,
)
from sshkeysync.state import KeysDirectoryError, UserState, UserUpdateError


@dataclasses.dataclass
class PassResult:
    """Outcome of a reconciliation pass."""

    skipped: bool = False
    updated: List[str] = dataclasses.field(default_factory=list)
    failures: List[Tuple[str, Exception]] = dataclasses.field(
        default_factory=list
    )

    @property
    def ok(self):
        return not self.failures


def metadata_changed(old, new):
    """Return whether the SSH related parts of the metadata differ."""
    if old is None:
        return True
    return (old.block_project_ssh_keys != new.block_project_ssh_keys
            or old.instance_ssh_keys != new.instance_ssh_keys
            or old.project_ssh_keys != new.project_ssh_keys)


class Reconciler:
    def __init__(self, platform, adopt_existing=False, clock=utcnow):
        self.platform = platform
        self.adopt_existing = adopt_existing
        self.clock = clock

    def expiration_due(self, state: UserState):
        return time_has_expired(state.earliest_expire_time, self.clock())

    def needs_pass(self, state, old_metadata, new_metadata):
        return (metadata_changed(old_metadata, new_metadata)
                or self.expiration_due(state))

    def disabled(self, state: UserState):
        """Follow the SSH installation, resetting `state` when it moves.

        Return True if there is nothing to manage on this host.
        """
        try:
            keys_dir = state.resolve_directory(self.platform)
        except OSError as e:
            logging.error('Cannot locate the SSH directory: %s', e)
            state.reset()
            return True
        if not keys_dir:
            logging.info('OpenSSH is not installed')
            state.reset()
            return True
        if keys_dir != state.authorized_keys_dir:
            logging.info('OpenSSH now installed at %s', keys_dir)
            state.reset(keys_dir)
            if self.adopt_existing:
                state.adopt_existing_files()
        return False

    @sshkeysync_pass_latency_seconds.time()
    def run_pass(self, state: UserState, metadata):
        """Converge the managed directory to the keys listed in `metadata`.

        Per-user failures are collected in the returned PassResult. Raise
        KeysDirectoryError if the managed directory cannot be created.
        """
        if self.disabled(state):
            sshkeysync_passes_total.labels('skipped').inc()
            return PassResult(skipped=True)

        desired = desired_key_mapping(metadata, self.clock())
        to_update = state.usernames_to_update(desired)
        if not to_update:
            logging.info('No users need to have their authorized keys '
                         'updated')
            sshkeysync_passes_total.labels('noop').inc()
            return PassResult()

        try:
            state.setup_directory()
        except KeysDirectoryError:
            sshkeysync_passes_total.labels('failed').inc()
            raise

        result = PassResult()
        for username in to_update:
            try:
                state.update_user(username, desired.get(username),
                                  self.platform)
            except UserUpdateError as e:
                logging.error('%s', e)
                result.failures.append((username, e.cause))
            else:
                result.updated.append(username)
        state.update_expire_time()

        sshkeysync_user_updates_total.inc(len(result.updated))
        sshkeysync_user_update_failures_total.inc(len(result.failures))
        sshkeysync_managed_users.set(len(state.mapping))
        expire = state.earliest_expire_time
        sshkeysync_earliest_expiration_timestamp_seconds.set(
            expire.timestamp() if expire is not None else 0
        )
        sshkeysync_passes_total.labels(
            'success' if result.ok else 'partial'
        ).inc()

        if result.failures:
            logging.warning('Updated %d users, %d failed',
                            len(result.updated), len(result.failures))
        else:
            logging.info('Updated authorized keys of %d users',
                         len(result.updated))
        return result
