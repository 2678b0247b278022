# SPDX-License-Identifier: GPL-2.0-or-later
"""Reconcile SSH keys published in instance metadata with per-user authorized
keys files.
"""
