# SPDX-License-Identifier: GPL-2.0-or-later
from prometheus_client import REGISTRY, Counter, Gauge, Summary
from prometheus_client import write_to_textfile

sshkeysync_passes_total = Counter(
    'sshkeysync_passes_total',
    'Number of reconciliation passes',
    ['outcome'],
)

sshkeysync_user_updates_total = Counter(
    'sshkeysync_user_updates_total',
    'Number of authorized keys files written or removed',
)

sshkeysync_user_update_failures_total = Counter(
    'sshkeysync_user_update_failures_total',
    'Number of authorized keys files that could not be updated',
)

sshkeysync_managed_users = Gauge(
    'sshkeysync_managed_users',
    'Number of users with a managed authorized keys file',
)

sshkeysync_earliest_expiration_timestamp_seconds = Gauge(
    'sshkeysync_earliest_expiration_timestamp_seconds',
    'Earliest key expiration among managed users, 0 if none',
)

sshkeysync_pass_latency_seconds = Summary(
    'sshkeysync_pass_latency_seconds',
    'Latency of a reconciliation pass',
)


def monitoring_write(path):
    """Dump all metrics to `path`, for the node exporter textfile collector.
    """
    write_to_textfile(path, REGISTRY)
