# SPDX-License-Identifier: GPL-2.0-or-later
import logging
import optparse
import sys

import sshkeysync.config
import sshkeysync.log

from .hooks import default_platform
from .metadata import Metadata
from .monitoring import monitoring_write
from .reconciler import Reconciler
from .state import KeysDirectoryError, UserState


def main(argv=None):
    parser = optparse.OptionParser()
    parser.add_option('-l', '--local-logging', action='store_true',
                      dest='local_logging', default=False,
                      help='Activate logging to stderr.')
    parser.add_option('-v', '--verbose', action='store_true',
                      dest='verbose', default=False,
                      help='Verbose mode.')
    parser.add_option('-m', '--metadata', dest='metadata_path',
                      default=None,
                      help='JSON metadata document to apply.')
    options, args = parser.parse_args(argv)

    sshkeysync.log.setup_logging('sshkeysync', verbose=options.verbose,
                                 local=options.local_logging)

    config = sshkeysync.config.load('sshkeysync')
    metadata_path = options.metadata_path or config.get('metadata_path')
    if not metadata_path:
        logging.error('No metadata document given')
        return 2

    try:
        metadata = Metadata.load(metadata_path)
    except (OSError, ValueError) as e:
        logging.error('Cannot read metadata from %s: %s', metadata_path, e)
        return 1

    reconciler = Reconciler(
        default_platform(config.get('ssh_root')),
        adopt_existing=config.get('adopt_existing', True),
    )
    state = UserState()

    try:
        result = reconciler.run_pass(state, metadata)
    except KeysDirectoryError as e:
        logging.error('%s', e)
        return 1
    finally:
        textfile = config.get('metrics_textfile')
        if textfile:
            monitoring_write(textfile)

    return 0 if result.ok else 1


if __name__ == '__main__':
    sys.exit(main())
