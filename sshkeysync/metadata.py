# SPDX-License-Identifier: GPL-2.0-or-later
"""The subset of the instance metadata document the key synchronisation
depends on.

Fetching the document is left to the caller; this module only knows how to
read it once it is a JSON object, as returned by the metadata server with
`?recursive=true`.
"""

import collections
import json

# Attribute names as published by the metadata server, then as seen in the
# agent's own structures.
SSH_KEYS_ATTRIBUTES = ('ssh-keys', 'sshKeys')
BLOCK_PROJECT_KEYS_ATTRIBUTES = ('block-project-ssh-keys',
                                 'blockProjectSSHKeys')


def _attribute(attributes, names):
    for name in names:
        value = attributes.get(name)
        if isinstance(value, str):
            return value
    return ''


def _attributes(document, scope):
    section = document.get(scope)
    if not isinstance(section, dict):
        return {}
    attributes = section.get('attributes')
    return attributes if isinstance(attributes, dict) else {}


class Metadata(collections.namedtuple(
        'Metadata', 'instance_ssh_keys project_ssh_keys block_project_flag')):
    """Raw SSH key attributes of the instance and project scopes."""

    __slots__ = ()

    def __new__(cls, instance_ssh_keys='', project_ssh_keys='',
                block_project_flag=''):
        return super().__new__(cls, instance_ssh_keys, project_ssh_keys,
                               block_project_flag)

    @property
    def block_project_ssh_keys(self):
        return self.block_project_flag.lower() == 'true'

    @classmethod
    def from_json(cls, document):
        """Build a Metadata from a decoded metadata document.

        Missing scopes or attributes are treated as empty strings.
        """
        if not isinstance(document, dict):
            raise ValueError('metadata document must be a JSON object')
        instance = _attributes(document, 'instance')
        project = _attributes(document, 'project')
        return cls(
            instance_ssh_keys=_attribute(instance, SSH_KEYS_ATTRIBUTES),
            project_ssh_keys=_attribute(project, SSH_KEYS_ATTRIBUTES),
            block_project_flag=_attribute(instance,
                                          BLOCK_PROJECT_KEYS_ATTRIBUTES),
        )

    @classmethod
    def load(cls, path):
        """Read a metadata document from the JSON file at `path`."""
        with open(path, 'r', encoding='utf-8') as fp:
            return cls.from_json(json.load(fp))
