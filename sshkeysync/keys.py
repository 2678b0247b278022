# SPDX-License-Identifier: GPL-2.0-or-later
"""Parsing of the `user:key` lines published in instance metadata and
computation of the desired authorized keys of every user.

Keys may carry an expiration date in their comment field, using this
Google-specific convention:

    ssh-rsa AAAA... google-ssh {"userName":"alice","expireOn":"2038-01-01T00:00:00+0000"}

The convention is still subject to change, so anything that does not match it
exactly leaves the key valid forever: bad metadata must never prevent a key
from being installed, at worst its expiration is not enforced.
"""

import collections
import datetime
import json
import logging

EXPIRE_SCHEMA = 'google-ssh'
EXPIRE_FORMAT = '%Y-%m-%dT%H:%M:%S+0000'

KeyEntry = collections.namedtuple('KeyEntry', 'username key expire_time')

# `keys` is a tuple so that records compare by value.
UserRecord = collections.namedtuple('UserRecord', 'keys earliest_expire_time')


def utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


def time_has_expired(expire_time, now=None):
    """Return whether `expire_time` is in the past. None never expires."""
    if expire_time is None:
        return False
    if now is None:
        now = utcnow()
    return expire_time < now


def min_time(t1, t2):
    """Earliest of two expiration times, None standing for "unbounded"."""
    if t1 is None:
        return t2
    if t2 is None or t1 < t2:
        return t1
    return t2


def key_expire_time(key):
    """Return the expiration time embedded in `key`'s comment, or None."""
    split_key = key.split(' ', 3)
    if len(split_key) != 4:
        return None
    schema, payload = split_key[2], split_key[3]

    if schema != EXPIRE_SCHEMA:
        logging.debug('Unknown key comment schema %r, no expiration', schema)
        return None

    try:
        data = json.loads(payload)
    except ValueError:
        logging.debug('Invalid JSON in key comment: %r', payload)
        return None

    expire_on = data.get('expireOn') if isinstance(data, dict) else None
    if not isinstance(expire_on, str):
        logging.debug('No expiration date in key comment: %r', payload)
        return None

    try:
        expire_time = datetime.datetime.strptime(expire_on, EXPIRE_FORMAT)
    except ValueError:
        logging.debug('Bad expiration date in key comment: %r', expire_on)
        return None
    return expire_time.replace(tzinfo=datetime.timezone.utc)


def is_valid_username(username):
    # The username becomes a file name in the managed directory.
    if not username or username in ('.', '..'):
        return False
    if '/' in username or '\\' in username:
        return False
    return not any(ord(c) < 0x20 or ord(c) == 0x7f for c in username)


def parse_key_entry(line):
    """Parse one `username:key` metadata line into a KeyEntry.

    Return None for blank or malformed lines.
    """
    line = line.strip()
    if not line:
        return None

    username, sep, key = line.partition(':')
    if not sep:
        logging.debug('Ignoring metadata line without a username: %r', line)
        return None
    if not is_valid_username(username) or not key:
        logging.debug('Ignoring malformed metadata line: %r', line)
        return None

    return KeyEntry(username, key, key_expire_time(key))


def add_keys_from_attributes(mapping, ssh_keys, now=None):
    """Add the live keys of the newline separated `ssh_keys` to `mapping`.

    `mapping` maps usernames to (list of keys, earliest expire time) pairs and
    is updated in place.
    """
    for line in ssh_keys.split('\n'):
        entry = parse_key_entry(line)
        if entry is None:
            continue
        if time_has_expired(entry.expire_time, now):
            logging.info('Skipping expired key for %s', entry.username)
            continue

        keys, earliest = mapping.get(entry.username, ([], None))
        keys.append(entry.key)
        mapping[entry.username] = (keys,
                                   min_time(earliest, entry.expire_time))


def desired_key_mapping(metadata, now=None):
    """Return a dict username -> UserRecord of the keys `metadata` asks for.

    Instance keys come first, followed by project keys unless the instance
    blocks them.
    """
    mapping = {}
    add_keys_from_attributes(mapping, metadata.instance_ssh_keys, now)
    if not metadata.block_project_ssh_keys:
        add_keys_from_attributes(mapping, metadata.project_ssh_keys, now)
    return {
        username: UserRecord(tuple(keys), earliest)
        for username, (keys, earliest) in mapping.items()
    }
