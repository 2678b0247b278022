# SPDX-License-Identifier: GPL-2.0-or-later
"""Configuration profile loading."""

import os
import os.path
import yaml

DEFAULT_CFG_DIR = '/etc/sshkeysync'
LOADED_CONFIGS = {}


class ConfigReadError(Exception):
    pass


def load(profile):
    """Load (if needed) and return the configuration file for `profile`.

    Profile configurations are cached. Look for configuration profiles in the
    "CFG_DIR" environment variable if it is set, or in the DEFAULT_CFG_DIR
    otherwise. Raise a ConfigReadError if no such file exist or if it does not
    hold a mapping.
    """

    try:
        return LOADED_CONFIGS[profile]
    except KeyError:
        pass

    cfg_filename = '{}.yml'.format(profile)
    cfg_directory = os.environ.get('CFG_DIR', DEFAULT_CFG_DIR)
    cfg_path = os.path.join(cfg_directory, cfg_filename)

    try:
        with open(cfg_path, 'r') as cfg_fp:
            cfg = yaml.safe_load(cfg_fp)
    except IOError:
        raise ConfigReadError("%s does not exist (specify CFG_DIR?)"
                              % cfg_path)

    if cfg is None:
        cfg = {}
    if not isinstance(cfg, dict):
        raise ConfigReadError("%s must contain a mapping" % cfg_path)

    LOADED_CONFIGS[profile] = cfg

    return cfg
