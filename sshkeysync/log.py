# SPDX-License-Identifier: GPL-2.0-or-later
import os

import logging
import logging.handlers


# Do not log to stderr if started by systemd
LOG_STDERR = os.getppid() != 1

SYSLOG_SOCKET = '/dev/log'


def setup_logging(program, verbose=False, local=LOG_STDERR):
    """Sets up the default Python logger.

    Log to syslog when its socket is available, optionaly log to stderr.

    Args:
      program: Name of the program logging informations.
      verbose: If true, log more messages (DEBUG instead of INFO).
      local: If true, log to stderr as well as syslog.
    """
    loggers = []
    if os.path.exists(SYSLOG_SOCKET):
        loggers.append(logging.handlers.SysLogHandler(SYSLOG_SOCKET))
    if local or not loggers:
        loggers.append(logging.StreamHandler())
    for logger in loggers:
        logger.setFormatter(logging.Formatter(
            program + ': [%(levelname)s] %(message)s'
        ))
        logging.getLogger('').addHandler(logger)
    logging.getLogger('').setLevel(logging.DEBUG if verbose else logging.INFO)
